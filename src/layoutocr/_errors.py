from typing import Dict, Optional


class LayoutOCRError(Exception):
    """Base class for all errors raised by layoutocr."""


class InputError(LayoutOCRError, ValueError):
    """The input image could not be read or has an unsupported layout."""


class StageError(LayoutOCRError):
    """
    A pipeline stage failed.

    Attributes
    ----------
    stage : str
        Name of the failing stage (``"preprocess"``, ``"detection"``, ...).
    progress : dict
        Counters reached before the failure (regions, lines, blocks,
        recognized lines).
    """

    def __init__(
        self,
        stage: str,
        message: str,
        progress: Optional[Dict[str, int]] = None,
    ):
        self.stage = stage
        self.progress = dict(progress or {})
        self.reason = message
        super().__init__(f"{stage} stage failed: {message}")


class InferenceError(StageError, RuntimeError):
    """An inference engine call failed or returned a malformed tensor."""
