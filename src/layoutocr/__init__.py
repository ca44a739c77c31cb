import logging

from ._config import PipelineConfig
from ._errors import InferenceError, InputError, LayoutOCRError, StageError
from ._pipeline import Pipeline, PipelineRun, PipelineState
from .data import Document, TextBlock, TextLine, TextRegion
from .detectors import TextDetector
from .recognizers import TextRecognizer
from .utils import read_image, visualize_document

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Pipeline",
    "PipelineRun",
    "PipelineState",
    "PipelineConfig",
    "TextDetector",
    "TextRecognizer",
    "Document",
    "TextBlock",
    "TextLine",
    "TextRegion",
    "LayoutOCRError",
    "InputError",
    "StageError",
    "InferenceError",
    "read_image",
    "visualize_document",
]
