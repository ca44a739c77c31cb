"""Convex polygon clipping kernels (Sutherland-Hodgman), compiled with numba.

Polygons are ``(N, 2)`` float64 arrays with positive signed area. Callers are
responsible for orientation; see ``geometry._as_ccw``.
"""

import numpy as np

from numba import float64, int64, njit
from numba.types import Tuple

_EPS = 1e-9


@njit("float64(float64[:,:])")
def signed_area(poly):
    area = 0.0
    n = poly.shape[0]
    for i in range(n):
        j = (i + 1) % n
        area += poly[i, 0] * poly[j, 1] - poly[j, 0] * poly[i, 1]
    return area / 2.0


@njit("float64[:](float64[:], float64[:], float64[:], float64[:])")
def segment_line_intersection(p, q, a, b):
    # Point where segment p->q crosses the infinite line a->b.
    rx = q[0] - p[0]
    ry = q[1] - p[1]
    sx = b[0] - a[0]
    sy = b[1] - a[1]
    denom = rx * sy - ry * sx
    if denom == 0.0:
        return p.copy()
    t = ((a[0] - p[0]) * sy - (a[1] - p[1]) * sx) / denom
    out = np.empty(2, dtype=np.float64)
    out[0] = p[0] + t * rx
    out[1] = p[1] + t * ry
    return out


@njit(Tuple((float64[:, :], int64))(float64[:, :], float64[:], float64[:]))
def clip_by_edge(subject, a, b):
    n = subject.shape[0]
    out = np.empty((2 * n + 2, 2), dtype=np.float64)
    count = 0
    ex = b[0] - a[0]
    ey = b[1] - a[1]
    for i in range(n):
        curr = subject[i]
        prev = subject[(i - 1) % n]
        curr_in = ex * (curr[1] - a[1]) - ey * (curr[0] - a[0]) >= -_EPS
        prev_in = ex * (prev[1] - a[1]) - ey * (prev[0] - a[0]) >= -_EPS
        if curr_in:
            if not prev_in:
                out[count] = segment_line_intersection(prev, curr, a, b)
                count += 1
            out[count] = curr
            count += 1
        elif prev_in:
            out[count] = segment_line_intersection(prev, curr, a, b)
            count += 1
    return out[:count], count


@njit("float64(float64[:,:], float64[:,:])")
def convex_intersection_area(subject, clip):
    current = subject
    m = clip.shape[0]
    for i in range(m):
        if current.shape[0] == 0:
            return 0.0
        a = clip[i]
        b = clip[(i + 1) % m]
        if a[0] == b[0] and a[1] == b[1]:
            continue
        current, _ = clip_by_edge(current, a, b)
    if current.shape[0] < 3:
        return 0.0
    return abs(signed_area(current))
