from enum import Enum


class TmoStatus(Enum):
    """
    Outcome of a numeric stage. ABORTED is a normal outcome (the caller
    asked to stop), ERROR means the input or the system was degenerate.
    """

    OK = "ok"
    ABORTED = "aborted"
    ERROR = "error"
