from typing import List, Optional, Tuple

import cv2
import numpy as np

from ...data import RotatedRect, TextRegion
from ...utils.geometry import min_area_rect


class AffineTransform:
    """
    2x3 affine map between two pixel spaces.

    Used to carry detections from probability-map space back to the source
    image with the exact inverse of the preprocessing transform.
    """

    def __init__(self, matrix: np.ndarray):
        self.matrix = np.asarray(matrix, dtype=np.float64).reshape(2, 3)

    @classmethod
    def scale(cls, sx: float, sy: float) -> "AffineTransform":
        return cls(np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0]]))

    def then(self, other: "AffineTransform") -> "AffineTransform":
        """Compose: apply ``self`` first, then ``other``."""
        a = np.vstack([self.matrix, [0.0, 0.0, 1.0]])
        b = np.vstack([other.matrix, [0.0, 0.0, 1.0]])
        return AffineTransform((b @ a)[:2])

    def inverse(self) -> "AffineTransform":
        return AffineTransform(cv2.invertAffineTransform(self.matrix))

    def apply(self, points: np.ndarray) -> np.ndarray:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return pts @ self.matrix[:, :2].T + self.matrix[:, 2]

    def apply_rect(self, rect: RotatedRect) -> RotatedRect:
        return min_area_rect(self.apply(rect.corners()))

    def apply_region(self, region: TextRegion) -> TextRegion:
        polygon = self.apply(np.asarray(region.polygon))
        return TextRegion(
            polygon=[(float(x), float(y)) for x, y in polygon],
            rect=self.apply_rect(region.rect),
            confidence=region.confidence,
            touches_border=region.touches_border,
        )

    def __repr__(self) -> str:
        return f"AffineTransform({self.matrix.tolist()})"


# Probability maps may overshoot [0, 1] by this much from float rounding.
_PROBABILITY_TOLERANCE = 1e-3


def to_probability_map(
    output: np.ndarray, logits: Optional[bool] = None
) -> np.ndarray:
    """
    Reduce a detector output tensor to a 2D probability map.

    Leading singleton axes are squeezed.

    Parameters
    ----------
    output : np.ndarray
        Raw detector output.
    logits : bool or None, optional
        True passes the map through a sigmoid, False clips it to ``[0, 1]``.
        None decides from the values: only maps reaching clearly outside
        ``[0, 1]`` are read as logits, anything within rounding distance of
        the range is clipped.
    """
    prob = np.asarray(output, dtype=np.float32)
    while prob.ndim > 2 and prob.shape[0] == 1:
        prob = prob[0]
    if prob.ndim != 2:
        raise ValueError(f"Expected a 2D probability map, got shape {output.shape}")
    if logits is None:
        logits = bool(
            prob.size
            and (
                prob.min() < -_PROBABILITY_TOLERANCE
                or prob.max() > 1.0 + _PROBABILITY_TOLERANCE
            )
        )
    if logits:
        return 1.0 / (1.0 + np.exp(-prob))
    return np.clip(prob, 0.0, 1.0)


def _component_polygon(
    component: np.ndarray, x0: int, y0: int
) -> List[Tuple[float, float]]:
    contours, _ = cv2.findContours(
        component, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
    )
    if not contours:
        return []
    contour = max(contours, key=lambda c: (len(c), cv2.contourArea(c)))
    # Contours run through pixel indices; +0.5 moves them to pixel centers.
    return [(float(x + x0) + 0.5, float(y + y0) + 0.5) for x, y in contour[:, 0, :]]


def extract_regions(
    probability_map: np.ndarray,
    threshold: float = 0.3,
    min_area: int = 10,
    connectivity: int = 8,
) -> List[TextRegion]:
    """
    Convert a text-probability map into candidate text regions.

    Parameters
    ----------
    probability_map : np.ndarray
        2D float array with per-pixel text probability.
    threshold : float, default=0.3
        Pixels strictly above this value are text.
    min_area : int, default=10
        Components with fewer pixels are discarded as noise.
    connectivity : {4, 8}, default=8
        Pixel connectivity for connected components. 8 keeps diagonal strokes
        in one piece.

    Returns
    -------
    list of TextRegion
        Regions in map coordinates, in component label (raster scan) order.
        An empty map or one without text yields an empty list.

    Notes
    -----
    Each region's rectangle is the minimum-area rectangle of its contour
    grown by one pixel in both dimensions, so that it covers the pixels and
    not only their centers. Components touching the map edge are kept and
    flagged with ``touches_border``.

    Examples
    --------
    >>> prob = np.zeros((32, 64), dtype=np.float32)
    >>> prob[8:16, 4:30] = 0.9
    >>> regions = extract_regions(prob, threshold=0.5)
    >>> len(regions), round(regions[0].rect.width)
    (1, 26)
    """
    prob = np.asarray(probability_map, dtype=np.float32)
    if prob.ndim != 2 or prob.size == 0:
        return []

    mask = (prob > threshold).astype(np.uint8)
    if not mask.any():
        return []

    num_labels, labels, stats, _ = cv2.connectedComponentsWithStats(
        mask, connectivity=connectivity
    )
    map_h, map_w = prob.shape

    regions: List[TextRegion] = []
    for label in range(1, num_labels):
        x0 = int(stats[label, cv2.CC_STAT_LEFT])
        y0 = int(stats[label, cv2.CC_STAT_TOP])
        w = int(stats[label, cv2.CC_STAT_WIDTH])
        h = int(stats[label, cv2.CC_STAT_HEIGHT])
        pixel_count = int(stats[label, cv2.CC_STAT_AREA])
        if pixel_count < min_area:
            continue

        window = labels[y0 : y0 + h, x0 : x0 + w] == label
        component = window.astype(np.uint8)
        confidence = float(np.clip(prob[y0 : y0 + h, x0 : x0 + w][window].mean(), 0.0, 1.0))

        polygon = _component_polygon(component, x0, y0)
        fitted = min_area_rect(polygon) if polygon else None
        if fitted is None:
            continue
        rect = RotatedRect(
            center=fitted.center,
            width=fitted.width + 1.0,
            height=fitted.height + 1.0,
            angle=fitted.angle,
        )
        if len(polygon) < 3:
            polygon = [(float(x), float(y)) for x, y in rect.corners()]

        touches_border = x0 == 0 or y0 == 0 or x0 + w == map_w or y0 + h == map_h
        regions.append(
            TextRegion(
                polygon=polygon,
                rect=rect,
                confidence=confidence,
                touches_border=touches_border,
            )
        )
    return regions
