"""Exception hierarchy for the tone mapping core."""

from __future__ import annotations

from dataclasses import dataclass


class TonemapError(RuntimeError):
    """Base class for all tone mapping failures crossing the engine boundary."""


class DisplayModelError(TonemapError):
    """Raised when display function or display size parameters are invalid."""


@dataclass
class TonemapConfigError(TonemapError):
    """Raised when tone mapping options fail validation."""

    field: str
    problem: str

    def __str__(self) -> str:
        return f"{self.field}: {self.problem}"
