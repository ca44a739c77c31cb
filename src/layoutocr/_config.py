import os
from typing import Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PipelineConfig(BaseModel):
    """
    Immutable thresholds and ratios used by every pipeline stage.

    A single instance is passed to the pipeline at construction time; derive
    variants with ``config.model_copy(update={...})``.

    Examples
    --------
    >>> from layoutocr import PipelineConfig
    >>> config = PipelineConfig(detection_threshold=0.4, confidence_floor=0.6)
    >>> strict = config.model_copy(update={"line_gap_ratio": 1.0})
    """

    model_config = ConfigDict(frozen=True)

    # Region extraction
    detection_threshold: float = Field(
        0.3, ge=0.0, le=1.0, description="Probability above which a pixel is text"
    )
    min_region_area: int = Field(
        10, ge=1, description="Components with fewer pixels are discarded as noise"
    )
    connectivity: int = Field(8, description="Pixel connectivity, 4 or 8")
    size_multiple: int = Field(
        32, ge=1, description="Padding multiple for models with dynamic input size"
    )

    # Line grouping
    line_y_tolerance: float = Field(
        0.5, gt=0.0, description="Max center offset as a fraction of mean height"
    )
    line_gap_ratio: float = Field(
        1.5, ge=0.0, description="Max edge-to-edge gap as a multiple of mean height"
    )
    writing_direction: Literal["ltr", "rtl"] = "ltr"

    # Block grouping and reading order
    block_gap_ratio: float = Field(
        1.0, ge=0.0, description="Max vertical gap as a multiple of mean line height"
    )
    block_min_overlap: float = Field(
        0.3, ge=0.0, le=1.0, description="Min horizontal overlap of the narrower line"
    )
    alignment_tolerance: float = Field(
        2.0, ge=0.0, description="Max edge/center misalignment in mean char widths"
    )
    char_width_ratio: float = Field(
        0.5, gt=0.0, description="Mean character width as a fraction of line height"
    )
    column_overlap_ratio: float = Field(
        0.5,
        ge=0.0,
        le=1.0,
        description="Vertical overlap above which two blocks are read as columns",
    )

    # Recognition and assembly
    crop_margin: float = Field(
        0.1, ge=0.0, description="Margin added around a line before cropping"
    )
    confidence_floor: float = Field(
        0.5, ge=0.0, le=1.0, description="Lines below this are marked low-confidence"
    )
    max_workers: Optional[int] = Field(
        None, ge=1, description="Recognition worker threads. None lets the executor decide."
    )

    @field_validator("connectivity")
    @classmethod
    def _check_connectivity(cls, value: int) -> int:
        if value not in (4, 8):
            raise ValueError(f"connectivity must be 4 or 8, got {value}")
        return value

    @classmethod
    def from_env(
        cls,
        prefix: str = "LAYOUTOCR_",
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "PipelineConfig":
        """
        Build a configuration from environment variables.

        Every field can be set through ``<prefix><FIELD_NAME>``, for example
        ``LAYOUTOCR_DETECTION_THRESHOLD=0.4``. Keyword ``overrides`` win over
        the environment.
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, object] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{prefix}{name.upper()}")
            if raw is None or raw == "":
                continue
            if name == "max_workers" and raw.lower() == "none":
                values[name] = None
            else:
                values[name] = raw
        values.update(overrides)
        return cls(**values)
