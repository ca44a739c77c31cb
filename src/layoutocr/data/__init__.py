from ._types import (
    Baseline,
    Document,
    PipelineStats,
    Point,
    RecognizedChar,
    RecognizedWord,
    RotatedRect,
    TextBlock,
    TextLine,
    TextRegion,
)

__all__ = [
    "Point",
    "RotatedRect",
    "TextRegion",
    "Baseline",
    "RecognizedChar",
    "RecognizedWord",
    "TextLine",
    "TextBlock",
    "PipelineStats",
    "Document",
]
