from typing import Protocol, Optional, Any, runtime_checkable
from dataclasses import dataclass, field
from hdrtmo.domain.types import ImageBuffer


@runtime_checkable
class IProgress(Protocol):
    """
    Progress reporting and cooperative cancellation handle.
    """

    maximum: int

    def post_progress(self, value: float) -> None: ...

    def request_termination(self, value: bool = True) -> None: ...

    def is_termination_requested(self) -> bool: ...


@dataclass
class PipelineContext:
    """
    Shared state passed through the tone mapping pipeline.
    """

    source_hash: str = ""
    # Metrics gathered by the stages (curve, density, timings)
    metrics: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ITonemapOperator(Protocol):
    """
    Interface for a tone mapping operator: linear RGB in, display codes out.
    Returns None when the computation was cancelled.
    """

    def process(
        self, image: ImageBuffer, context: PipelineContext, progress: IProgress
    ) -> Optional[ImageBuffer]: ...
