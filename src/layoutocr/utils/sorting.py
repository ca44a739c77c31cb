"""Layout grouping: regions into lines, lines into blocks, blocks into reading order.

Grouping is greedy but deterministic. Inputs are first put in a canonical
order with a total sort key, and every ambiguous assignment is resolved by
nearest distance, then by creation index, never by input position.
"""

import functools
import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .._config import PipelineConfig
from ..data import Baseline, TextBlock, TextLine, TextRegion
from .geometry import (
    axis_gap,
    bottom_center,
    center_offset,
    fit_baseline,
    normalize_angle,
    oriented_bounding_rect,
    union_bounds,
)

logger = logging.getLogger(__name__)


def region_sort_key(region: TextRegion) -> Tuple:
    """Total order on regions: left edge first, then every remaining attribute."""
    x_min, _, x_max, y_max = region.rect.bounds()
    rect = region.rect
    return (
        x_min,
        rect.center[1],
        x_max,
        y_max,
        rect.width,
        rect.height,
        rect.angle,
        tuple(region.polygon),
        region.confidence,
        region.touches_border,
    )


def _mean_angle(a: float, b: float) -> float:
    if b - a > math.pi / 2:
        b -= math.pi
    elif a - b > math.pi / 2:
        b += math.pi
    return normalize_angle((a + b) / 2.0)


def _line_key(line: TextLine, rtl: bool) -> Tuple:
    x0, y0, x1, y1 = line.rect.bounds()
    lead, trail = (-x1, -x0) if rtl else (x0, x1)
    return (y0, lead, y1, trail, tuple(region_sort_key(r) for r in line.regions))


def _block_key(block: TextBlock, rtl: bool) -> Tuple:
    x0, y0, x1, y1 = block.rect.bounds()
    lead, trail = (-x1, -x0) if rtl else (x0, x1)
    return (y0, lead, y1, trail, tuple(_line_key(ln, rtl) for ln in block.lines))


# ============================================================================
# Lines
# ============================================================================


def build_line(
    regions: Sequence[TextRegion], config: Optional[PipelineConfig] = None
) -> TextLine:
    """
    Build a TextLine from regions already known to share a line.

    The baseline runs through the bottom-center points of the regions; a
    single region uses the bottom edge of its rectangle. The baseline angle
    decides the direction: steeper than 45 degrees reads top-to-bottom,
    otherwise ``config.writing_direction`` applies. Members are ordered along
    that direction and the line rectangle is aligned with the baseline.
    """
    config = config or PipelineConfig()
    regions = list(regions)

    if len(regions) == 1:
        corners = regions[0].rect.corners()
        baseline = Baseline(
            start=(float(corners[3, 0]), float(corners[3, 1])),
            end=(float(corners[2, 0]), float(corners[2, 1])),
        )
    else:
        points = np.array([bottom_center(r.rect) for r in regions])
        baseline = fit_baseline(points)

    if baseline.start == baseline.end:
        angle = regions[0].rect.angle
    else:
        angle = baseline.angle

    if abs(angle) > math.pi / 4:
        direction = "ttb"
        ordered = sorted(regions, key=lambda r: (r.rect.center[1], region_sort_key(r)))
    else:
        direction = config.writing_direction
        u = np.array([math.cos(angle), math.sin(angle)])
        sign = -1.0 if direction == "rtl" else 1.0
        ordered = sorted(
            regions,
            key=lambda r: (sign * float(np.asarray(r.rect.center) @ u), region_sort_key(r)),
        )

    corners = np.concatenate([r.rect.corners() for r in ordered], axis=0)
    return TextLine(
        regions=ordered,
        baseline=baseline,
        rect=oriented_bounding_rect(corners, angle),
        direction=direction,
    )


def group_lines(
    regions: Sequence[TextRegion], config: Optional[PipelineConfig] = None
) -> List[TextLine]:
    """
    Group regions into text lines.

    Regions are visited left to right. A region joins a line when, compared
    with the line's most recent region:

    - their centers differ across the text direction by less than
      ``line_y_tolerance`` times their mean height, and
    - their edge-to-edge gap along the text direction is below
      ``line_gap_ratio`` times their mean height.

    When several lines qualify, the smallest center offset wins, then the
    smallest gap, then the line created first.

    Parameters
    ----------
    regions : sequence of TextRegion
        Regions in any order; the result does not depend on it.
    config : PipelineConfig, optional
        Grouping thresholds.

    Returns
    -------
    list of TextLine
        Lines sorted top-to-bottom. Empty input gives an empty list.

    Examples
    --------
    >>> lines = group_lines(regions)
    >>> [len(ln.regions) for ln in lines]
    [3, 2]
    """
    config = config or PipelineConfig()
    groups: List[List[TextRegion]] = []

    for region in sorted(regions, key=region_sort_key):
        best_idx = None
        best_key = None
        for idx, members in enumerate(groups):
            last = members[-1]
            angle = _mean_angle(last.rect.angle, region.rect.angle)
            mean_h = (last.rect.height + region.rect.height) / 2.0
            offset = center_offset(last.rect, region.rect, angle)
            if offset >= config.line_y_tolerance * mean_h:
                continue
            gap = axis_gap(last.rect, region.rect, angle)
            if gap >= config.line_gap_ratio * mean_h:
                continue
            key = (offset, gap, idx)
            if best_key is None or key < best_key:
                best_idx, best_key = idx, key

        if best_idx is None:
            groups.append([region])
        else:
            groups[best_idx].append(region)

    rtl = config.writing_direction == "rtl"
    lines = [build_line(members, config) for members in groups]
    lines.sort(key=lambda ln: _line_key(ln, rtl))
    return lines


# ============================================================================
# Blocks
# ============================================================================


def _make_block(lines: Sequence[TextLine]) -> TextBlock:
    ordered = [ln.model_copy(update={"order": i}) for i, ln in enumerate(lines)]
    return TextBlock(lines=ordered, rect=union_bounds(ln.rect for ln in ordered))


def group_blocks(
    lines: Sequence[TextLine], config: Optional[PipelineConfig] = None
) -> List[TextBlock]:
    """
    Group lines into paragraph-like blocks.

    Lines are visited top to bottom. A line joins a block when, compared with
    the block's last line, all of the following hold:

    - the vertical gap is below ``block_gap_ratio`` times the mean line height,
    - the horizontal overlap is at least ``block_min_overlap`` of the narrower
      line's width,
    - the left edges (right edges for right-to-left text) or the centers
      align within ``alignment_tolerance`` mean character widths.

    The alignment rule keeps side-by-side columns apart. Lines that match no
    block start a new one, so a lone line always survives as a singleton
    block. Ties go to the smallest gap, then the best alignment, then the
    oldest block.
    """
    config = config or PipelineConfig()
    rtl = config.writing_direction == "rtl"
    groups: List[List[TextLine]] = []

    for line in sorted(lines, key=lambda ln: _line_key(ln, rtl)):
        x0, y0, x1, _ = line.rect.bounds()
        best_idx = None
        best_key = None
        for idx, members in enumerate(groups):
            last = members[-1]
            lx0, _, lx1, ly1 = last.rect.bounds()
            mean_h = (line.rect.height + last.rect.height) / 2.0

            gap = y0 - ly1
            if gap >= config.block_gap_ratio * mean_h:
                continue

            overlap = min(x1, lx1) - max(x0, lx0)
            narrower = min(x1 - x0, lx1 - lx0)
            if narrower > 0:
                overlap_ratio = overlap / narrower
            else:
                overlap_ratio = 1.0 if overlap >= 0 else 0.0
            if overlap_ratio < config.block_min_overlap:
                continue

            char_w = config.char_width_ratio * mean_h
            edge_offset = abs(x1 - lx1) if rtl else abs(x0 - lx0)
            center_shift = abs((x0 + x1) / 2.0 - (lx0 + lx1) / 2.0)
            alignment = min(edge_offset, center_shift)
            if alignment > config.alignment_tolerance * char_w:
                continue

            key = (gap, alignment, idx)
            if best_key is None or key < best_key:
                best_idx, best_key = idx, key

        if best_idx is None:
            groups.append([line])
        else:
            groups[best_idx].append(line)

    return [_make_block(members) for members in groups]


# ============================================================================
# Reading order
# ============================================================================


def compare_blocks(
    a: TextBlock, b: TextBlock, config: Optional[PipelineConfig] = None
) -> int:
    """
    Reading-order comparison of two blocks: -1 if ``a`` comes first, 1 if ``b``
    does, 0 only for geometrically and textually identical blocks.

    Blocks whose vertical ranges overlap by at least ``column_overlap_ratio``
    of the shorter one sit side by side and are ordered by their leading
    edge; all others are ordered by their top edge. This is a best-effort
    approximation of multi-column reading order.
    """
    config = config or PipelineConfig()
    rtl = config.writing_direction == "rtl"
    ax0, ay0, ax1, ay1 = a.rect.bounds()
    bx0, by0, bx1, by1 = b.rect.bounds()

    shorter = min(ay1 - ay0, by1 - by0)
    v_overlap = min(ay1, by1) - max(ay0, by0)
    side_by_side = shorter > 0 and v_overlap / shorter >= config.column_overlap_ratio

    a_lead = -ax1 if rtl else ax0
    b_lead = -bx1 if rtl else bx0
    if side_by_side:
        ka = (a_lead, ay0)
        kb = (b_lead, by0)
    else:
        ka = (ay0, a_lead)
        kb = (by0, b_lead)
    ka = ka + _block_key(a, rtl)
    kb = kb + _block_key(b, rtl)
    return (ka > kb) - (ka < kb)


def sort_reading_order(
    blocks: Sequence[TextBlock], config: Optional[PipelineConfig] = None
) -> List[TextBlock]:
    """
    Order blocks for reading and number them.

    Blocks are put in canonical order first and the canonical position is the
    last tie-break, so the result does not depend on input order and no pair
    of blocks is left unordered.
    """
    config = config or PipelineConfig()
    rtl = config.writing_direction == "rtl"
    indexed = list(enumerate(sorted(blocks, key=lambda b: _block_key(b, rtl))))

    def _cmp(x, y):
        result = compare_blocks(x[1], y[1], config)
        if result:
            return result
        return (x[0] > y[0]) - (x[0] < y[0])

    ordered = [b for _, b in sorted(indexed, key=functools.cmp_to_key(_cmp))]
    return [b.model_copy(update={"order": i}) for i, b in enumerate(ordered)]


def analyze_layout(
    regions: Sequence[TextRegion], config: Optional[PipelineConfig] = None
) -> List[TextBlock]:
    """
    Turn unordered regions into ordered blocks of ordered lines.

    Never raises on valid input: no regions give no blocks, and regions that
    cannot be grouped end up in singleton lines and blocks.

    Examples
    --------
    >>> blocks = analyze_layout(result["regions"])
    >>> [len(b.lines) for b in blocks]
    [4, 1, 7]
    """
    config = config or PipelineConfig()
    if not regions:
        return []
    lines = group_lines(regions, config)
    blocks = group_blocks(lines, config)
    ordered = sort_reading_order(blocks, config)
    logger.debug(
        "Layout: %d regions -> %d lines -> %d blocks",
        len(regions),
        len(lines),
        len(ordered),
    )
    return ordered
