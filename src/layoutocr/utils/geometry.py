"""Geometric primitives for layout analysis.

All functions are pure and tolerate degenerate input: zero-length edges,
empty point sets and collinear points produce zero-area results instead of
exceptions.
"""

import math
from typing import Iterable, Sequence, Tuple, Union

import numpy as np
from shapely.geometry import MultiPoint, Polygon

from ..data import Baseline, RotatedRect
from ._polyclip import convex_intersection_area, signed_area

PointsLike = Union[np.ndarray, Sequence[Tuple[float, float]]]

_AREA_TIE_EPS = 1e-9


def normalize_angle(angle: float) -> float:
    """Wrap an angle in radians into ``[-pi/2, pi/2)``."""
    if not math.isfinite(angle):
        return 0.0
    return (angle + math.pi / 2) % math.pi - math.pi / 2


def _as_points(points: PointsLike) -> np.ndarray:
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    return arr.reshape(-1, 2)


def _as_ccw(poly: np.ndarray) -> np.ndarray:
    poly = np.ascontiguousarray(poly, dtype=np.float64)
    if poly.shape[0] >= 3 and signed_area(poly) < 0:
        poly = np.ascontiguousarray(poly[::-1])
    return poly


def area(rect: RotatedRect) -> float:
    return rect.width * rect.height


def intersection_area(a: RotatedRect, b: RotatedRect) -> float:
    """
    Area of the intersection of two rotated rectangles.

    Both rectangles are convex, so the overlap is computed by clipping the
    corners of ``a`` against every edge of ``b``.

    Examples
    --------
    >>> a = RotatedRect(center=(2, 2), width=4, height=4)
    >>> b = RotatedRect(center=(4, 4), width=4, height=4)
    >>> intersection_area(a, b)
    4.0
    """
    if a.area <= 0.0 or b.area <= 0.0:
        return 0.0
    return float(convex_intersection_area(_as_ccw(a.corners()), _as_ccw(b.corners())))


def union_area(a: RotatedRect, b: RotatedRect) -> float:
    return area(a) + area(b) - intersection_area(a, b)


def iou(a: RotatedRect, b: RotatedRect) -> float:
    """
    Intersection over union of two rotated rectangles.

    Returns 0.0 when the union is empty.
    """
    inter = intersection_area(a, b)
    union = area(a) + area(b) - inter
    if union <= 0.0:
        return 0.0
    return min(1.0, max(0.0, inter / union))


def polygon_area(points: PointsLike) -> float:
    """Area of a polygon; self-intersecting or degenerate polygons give 0.0."""
    pts = _as_points(points)
    if len(pts) < 3:
        return 0.0
    poly = Polygon(pts)
    if not poly.is_valid:
        return 0.0
    return float(poly.area)


def convex_hull(points: PointsLike) -> np.ndarray:
    """Convex hull vertices (without the closing point) as an ``(N, 2)`` array."""
    pts = _as_points(points)
    if len(pts) == 0:
        return pts
    hull = MultiPoint([tuple(p) for p in pts]).convex_hull
    if hull.geom_type == "Point":
        return np.array([[hull.x, hull.y]], dtype=np.float64)
    if hull.geom_type == "LineString":
        return np.asarray(hull.coords, dtype=np.float64)
    return np.asarray(hull.exterior.coords, dtype=np.float64)[:-1]


def project_extent(points: np.ndarray, axis: np.ndarray) -> Tuple[float, float]:
    proj = points @ axis
    return float(proj.min()), float(proj.max())


def oriented_bounding_rect(points: PointsLike, angle: float) -> RotatedRect:
    """Smallest rectangle at a fixed ``angle`` that contains all ``points``."""
    pts = _as_points(points)
    angle = normalize_angle(angle)
    if len(pts) == 0:
        return RotatedRect(center=(0.0, 0.0), width=0.0, height=0.0, angle=angle)
    u = np.array([math.cos(angle), math.sin(angle)])
    v = np.array([-math.sin(angle), math.cos(angle)])
    u_lo, u_hi = project_extent(pts, u)
    v_lo, v_hi = project_extent(pts, v)
    center = u * (u_lo + u_hi) / 2.0 + v * (v_lo + v_hi) / 2.0
    return RotatedRect(
        center=(float(center[0]), float(center[1])),
        width=max(0.0, u_hi - u_lo),
        height=max(0.0, v_hi - v_lo),
        angle=angle,
    )


def axis_aligned_rect(points: PointsLike) -> RotatedRect:
    return oriented_bounding_rect(points, 0.0)


def min_area_rect(points: PointsLike) -> RotatedRect:
    """
    Fit the minimum-area rotated rectangle enclosing a point set.

    Parameters
    ----------
    points : array-like
        Polygon or arbitrary point set with shape ``(N, 2)``.

    Returns
    -------
    RotatedRect
        Rectangle with ``angle`` in ``[-pi/4, pi/4)``. Among rectangles of
        equal area the one with the smallest ``abs(angle)`` is returned.

    Notes
    -----
    Candidate orientations come from the edges of the convex hull, reduced
    modulo ``pi/2``; the hull does not depend on input ordering, so neither
    does the result. Empty input yields a zero rectangle at the origin and
    collinear input a rectangle of zero height.
    """
    hull = convex_hull(points)
    if len(hull) == 0:
        return RotatedRect(center=(0.0, 0.0), width=0.0, height=0.0, angle=0.0)
    if len(hull) == 1:
        x, y = hull[0]
        return RotatedRect(center=(float(x), float(y)), width=0.0, height=0.0, angle=0.0)

    candidates = [0.0]
    n = len(hull)
    for i in range(n):
        dx, dy = hull[(i + 1) % n] - hull[i]
        if dx == 0.0 and dy == 0.0:
            continue
        theta = math.atan2(dy, dx)
        candidates.append((theta + math.pi / 4) % (math.pi / 2) - math.pi / 4)

    best = None
    best_key = None
    for theta in candidates:
        rect = oriented_bounding_rect(hull, theta)
        tol = _AREA_TIE_EPS * max(1.0, rect.area)
        if best is None or rect.area < best_key[0] - tol:
            best, best_key = rect, (rect.area, abs(theta))
        elif abs(rect.area - best_key[0]) <= tol and abs(theta) < best_key[1]:
            best, best_key = rect, (rect.area, abs(theta))
    return best


def expand(rect: RotatedRect, margin_ratio: float) -> RotatedRect:
    """
    Grow a rectangle by a ratio of its own dimensions, keeping center and angle.

    ``margin_ratio=0.1`` adds 10% to both width and height, split evenly on
    both sides. Negative ratios shrink; the result never goes below zero.
    """
    scale = max(0.0, 1.0 + margin_ratio)
    return RotatedRect(
        center=rect.center,
        width=rect.width * scale,
        height=rect.height * scale,
        angle=rect.angle,
    )


def bottom_center(rect: RotatedRect) -> np.ndarray:
    _, v = rect.axes
    return np.asarray(rect.center, dtype=np.float64) + v * (rect.height / 2.0)


def axis_gap(a: RotatedRect, b: RotatedRect, angle: float) -> float:
    """
    Edge-to-edge distance between two rectangles along ``angle``.

    Negative values mean the projections overlap.
    """
    axis = np.array([math.cos(angle), math.sin(angle)])
    a_lo, a_hi = project_extent(a.corners(), axis)
    b_lo, b_hi = project_extent(b.corners(), axis)
    return max(b_lo - a_hi, a_lo - b_hi)


def center_offset(a: RotatedRect, b: RotatedRect, angle: float) -> float:
    """Distance between rectangle centers measured across ``angle``."""
    axis = np.array([-math.sin(angle), math.cos(angle)])
    delta = np.asarray(b.center) - np.asarray(a.center)
    return abs(float(delta @ axis))


def fit_baseline(points: PointsLike) -> Baseline:
    """
    Fit a straight baseline through a set of points.

    Two or fewer points are joined directly; three or more are fitted by
    least squares. Point sets that are taller than wide are fitted as
    ``x = f(y)`` so that vertical lines do not produce infinite slopes.
    """
    pts = _as_points(points)
    if len(pts) == 0:
        return Baseline(start=(0.0, 0.0), end=(0.0, 0.0))
    if len(pts) == 1:
        p = (float(pts[0, 0]), float(pts[0, 1]))
        return Baseline(start=p, end=p)

    xs, ys = pts[:, 0], pts[:, 1]
    x_span = float(xs.max() - xs.min())
    y_span = float(ys.max() - ys.min())

    if x_span == 0.0 and y_span == 0.0:
        p = (float(xs[0]), float(ys[0]))
        return Baseline(start=p, end=p)

    if len(pts) == 2:
        order = np.argsort(ys if y_span > x_span else xs, kind="stable")
        start, end = pts[order[0]], pts[order[1]]
        return Baseline(
            start=(float(start[0]), float(start[1])),
            end=(float(end[0]), float(end[1])),
        )

    if y_span > x_span:
        slope, intercept = np.polyfit(ys, xs, 1)
        y0, y1 = float(ys.min()), float(ys.max())
        return Baseline(
            start=(float(slope * y0 + intercept), y0),
            end=(float(slope * y1 + intercept), y1),
        )

    slope, intercept = np.polyfit(xs, ys, 1)
    x0, x1 = float(xs.min()), float(xs.max())
    return Baseline(
        start=(x0, float(slope * x0 + intercept)),
        end=(x1, float(slope * x1 + intercept)),
    )


def sub_rect(rect: RotatedRect, start: float, end: float) -> RotatedRect:
    """Slice of ``rect`` between two offsets measured from its leading edge."""
    start = min(max(start, 0.0), rect.width)
    end = min(max(end, start), rect.width)
    u, _ = rect.axes
    mid = (start + end) / 2.0 - rect.width / 2.0
    center = np.asarray(rect.center, dtype=np.float64) + u * mid
    return RotatedRect(
        center=(float(center[0]), float(center[1])),
        width=end - start,
        height=rect.height,
        angle=rect.angle,
    )


def union_bounds(rects: Iterable[RotatedRect]) -> RotatedRect:
    """Axis-aligned rectangle covering the corners of all ``rects``."""
    corners = [r.corners() for r in rects]
    if not corners:
        return RotatedRect(center=(0.0, 0.0), width=0.0, height=0.0, angle=0.0)
    return axis_aligned_rect(np.concatenate(corners, axis=0))
