"""Common utilities for layoutocr."""

# I/O utilities
from .io import encode_png, read_image

# Geometry utilities
from .geometry import (
    area,
    convex_hull,
    expand,
    fit_baseline,
    intersection_area,
    iou,
    min_area_rect,
    normalize_angle,
    oriented_bounding_rect,
    polygon_area,
    union_area,
)

# Layout analysis
from .sorting import (
    analyze_layout,
    compare_blocks,
    group_blocks,
    group_lines,
    sort_reading_order,
)

# Export and visualization
from .export import document_to_dict, document_to_json, document_to_text
from .visualization import visualize_document


__all__ = [
    # I/O
    "read_image",
    "encode_png",
    # Geometry
    "area",
    "convex_hull",
    "expand",
    "fit_baseline",
    "intersection_area",
    "iou",
    "min_area_rect",
    "normalize_angle",
    "oriented_bounding_rect",
    "polygon_area",
    "union_area",
    # Layout
    "analyze_layout",
    "compare_blocks",
    "group_blocks",
    "group_lines",
    "sort_reading_order",
    # Export
    "document_to_dict",
    "document_to_json",
    "document_to_text",
    "visualize_document",
]
