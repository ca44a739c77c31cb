import math
from typing import Dict, Iterator, Literal, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

Point = Tuple[float, float]


def _wrap_angle(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return (value + math.pi / 2) % math.pi - math.pi / 2


class _Frozen(BaseModel):
    # Child sequences are tuples so nested nodes cannot be edited in place either.
    model_config = ConfigDict(frozen=True)


class RotatedRect(_Frozen):
    """
    Rectangle rotated around its center.

    ``width`` runs along the axis ``(cos(angle), sin(angle))`` and ``height``
    along ``(-sin(angle), cos(angle))``. Image coordinates are y-down, so an
    angle of zero is an upright, axis-aligned box.
    """

    center: Point = Field(..., description="Rectangle center (x, y) in pixels")
    width: float = Field(..., ge=0.0, description="Extent along the angle axis")
    height: float = Field(..., ge=0.0, description="Extent across the angle axis")
    angle: float = Field(
        0.0, description="Rotation in radians, normalized to [-pi/2, pi/2)"
    )

    @field_validator("angle")
    @classmethod
    def _normalize_angle(cls, value: float) -> float:
        return _wrap_angle(value)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def axes(self) -> Tuple[np.ndarray, np.ndarray]:
        """Unit vectors along the width and height of the rectangle."""
        c, s = math.cos(self.angle), math.sin(self.angle)
        return np.array([c, s]), np.array([-s, c])

    def corners(self) -> np.ndarray:
        """Corner points as a ``(4, 2)`` array ordered TL, TR, BR, BL."""
        u, v = self.axes
        cx, cy = self.center
        center = np.array([cx, cy], dtype=np.float64)
        hw = u * (self.width / 2.0)
        hh = v * (self.height / 2.0)
        return np.stack(
            [
                center - hw - hh,
                center + hw - hh,
                center + hw + hh,
                center - hw + hh,
            ]
        )

    def bounds(self) -> Tuple[float, float, float, float]:
        """Axis-aligned bounds ``(x_min, y_min, x_max, y_max)``."""
        pts = self.corners()
        x_min, y_min = pts.min(axis=0)
        x_max, y_max = pts.max(axis=0)
        return float(x_min), float(y_min), float(x_max), float(y_max)


class TextRegion(_Frozen):
    """
    A single connected detection of probable text, before grouping.
    """

    polygon: Tuple[Point, ...] = Field(
        ...,
        min_length=3,
        description="Outer boundary of the detected component (pixel centers)",
    )
    rect: RotatedRect = Field(..., description="Minimum-area rectangle of the region")
    confidence: float = Field(
        ..., ge=0.0, le=1.0, description="Mean detection probability inside the region"
    )
    touches_border: bool = Field(
        False, description="True when the component touches the edge of the map"
    )


class Baseline(_Frozen):
    start: Point
    end: Point

    @property
    def angle(self) -> float:
        dx = self.end[0] - self.start[0]
        dy = self.end[1] - self.start[1]
        if dx == 0.0 and dy == 0.0:
            return 0.0
        return _wrap_angle(math.atan2(dy, dx))


class RecognizedChar(_Frozen):
    text: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    x_range: Tuple[float, float] = Field(
        ..., description="Offsets from the leading edge of the parent line rectangle"
    )


class RecognizedWord(_Frozen):
    text: str
    chars: Tuple[RecognizedChar, ...] = Field(default_factory=tuple)
    confidence: float = Field(..., ge=0.0, le=1.0)
    x_range: Tuple[float, float] = Field(
        ..., description="Offsets from the leading edge of the parent line rectangle"
    )
    rect: RotatedRect
    order: Optional[int] = Field(
        None, description="Word position inside the line. None before assembly."
    )


class TextLine(_Frozen):
    """
    A sequence of regions sharing a baseline, plus the text recognized in it.
    """

    regions: Tuple[TextRegion, ...]
    baseline: Baseline
    rect: RotatedRect
    direction: Literal["ltr", "rtl", "ttb"] = "ltr"
    words: Tuple[RecognizedWord, ...] = Field(default_factory=tuple)
    confidence: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        description="Mean recognition confidence. None when recognition did not run.",
    )
    low_confidence: bool = False
    order: Optional[int] = Field(
        None,
        description="Line position inside its block after sorting. None before sorting.",
    )

    @property
    def text(self) -> str:
        return " ".join(w.text for w in self.words if w.text)

    @property
    def detection_confidence(self) -> float:
        if not self.regions:
            return 0.0
        return float(np.mean([r.confidence for r in self.regions]))


class TextBlock(_Frozen):
    """
    A logical text block (paragraph-like stack of lines).
    """

    lines: Tuple[TextLine, ...]
    rect: RotatedRect
    order: Optional[int] = Field(
        None, description="Block reading-order position. None before sorting."
    )

    @property
    def confidence(self) -> float:
        if not self.lines:
            return 0.0
        scores = [
            ln.confidence if ln.confidence is not None else ln.detection_confidence
            for ln in self.lines
        ]
        return float(np.mean(scores))


class PipelineStats(_Frozen):
    timings: Dict[str, float] = Field(
        default_factory=dict, description="Wall time per stage, in seconds"
    )
    region_count: int = 0
    line_count: int = 0
    block_count: int = 0
    word_count: int = 0
    low_confidence_line_count: int = 0


class Document(_Frozen):
    """
    Root of the recognized document: blocks in reading order.
    """

    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)
    blocks: Tuple[TextBlock, ...] = Field(default_factory=tuple)
    stats: PipelineStats = Field(default_factory=PipelineStats)

    def iter_blocks(self) -> Iterator[TextBlock]:
        return iter(self.blocks)

    def iter_lines(self) -> Iterator[TextLine]:
        for block in self.blocks:
            yield from block.lines

    def iter_words(self) -> Iterator[RecognizedWord]:
        for line in self.iter_lines():
            yield from line.words

    @property
    def confidence(self) -> float:
        if not self.blocks:
            return 0.0
        return float(np.mean([b.confidence for b in self.blocks]))
