from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, ImageDraw

from ..data import Document
from .io import read_image

_GOLDEN_RATIO = 0.618033988749895


def _palette_color(idx: int, offset: float = 0.0, saturation: int = 220) -> Tuple[int, int, int]:
    """Distinct RGB color for ``idx``, spread over hues by the golden ratio."""
    hue = ((idx * _GOLDEN_RATIO) + offset) % 1.0
    hsv = np.uint8([[[int(hue * 179), saturation, 255]]])
    rgb = cv2.cvtColor(hsv, cv2.COLOR_HSV2RGB)[0][0]
    return tuple(map(int, rgb))


def visualize_document(
    image: Union[str, Path, np.ndarray, Image.Image],
    document: Document,
    region_color: Tuple[int, int, int] = (0, 255, 0),
    thickness: int = 2,
    dark_alpha: float = 0.3,
    show_regions: bool = True,
    show_order: bool = True,
    number_bg: Tuple[int, int, int] = (255, 255, 255),
    number_color: Tuple[int, int, int] = (0, 0, 0),
    max_size: Optional[int] = 4096,
) -> Image.Image:
    """
    Draw the layout of a document over its source image.

    Blocks are shaded with a semi-transparent fill, each line is outlined by
    its rotated rectangle in its own color, and region polygons are outlined
    in ``region_color``. With ``show_order`` every block gets its reading-order
    number at the top-left corner.

    Parameters
    ----------
    image : str, Path, np.ndarray, or PIL.Image
        Source image the document was produced from.
    document : Document
        Result of :meth:`layoutocr.Pipeline.predict`.
    region_color : tuple of int, default=(0, 255, 0)
        RGB color for region outlines.
    thickness : int, default=2
        Outline thickness in pixels.
    dark_alpha : float, default=0.3
        Darkening applied outside text lines (0 keeps the image as is).
    show_regions : bool, default=True
        Outline individual detected regions.
    show_order : bool, default=True
        Number blocks in reading order.
    number_bg, number_color : tuple of int
        Colors of the order labels.
    max_size : int or None, default=4096
        Longest side of the output; larger images are downscaled.

    Returns
    -------
    PIL.Image.Image

    Examples
    --------
    >>> result = pipeline.predict("document.jpg")
    >>> vis = visualize_document("document.jpg", result["document"])
    >>> vis.save("layout.png")
    """
    if isinstance(image, Image.Image):
        img = np.array(image.convert("RGB"))
    else:
        img = read_image(image).copy()

    scale = 1.0
    if max_size is not None and max(img.shape[:2]) > max_size:
        scale = max_size / max(img.shape[:2])
        h, w = img.shape[:2]
        img = cv2.resize(img, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_AREA)

    def to_px(points: np.ndarray) -> np.ndarray:
        return np.round(np.asarray(points, dtype=np.float64) * scale).astype(np.int32)

    line_polys = [to_px(line.rect.corners()) for line in document.iter_lines()]
    if not line_polys:
        return Image.fromarray(img)

    # Keep text lines bright and darken the background
    overlay = img
    if dark_alpha > 0:
        mask = np.zeros(img.shape[:2], dtype=np.uint8)
        cv2.fillPoly(mask, line_polys, 255)
        background = (img * (1 - dark_alpha)).astype(np.uint8)
        overlay = np.where(mask[:, :, np.newaxis] > 0, img, background).astype(np.uint8)

    for block in document.blocks:
        block_overlay = overlay.copy()
        x0, y0, x1, y1 = block.rect.bounds()
        cv2.rectangle(
            block_overlay,
            (int(x0 * scale), int(y0 * scale)),
            (int(x1 * scale), int(y1 * scale)),
            _palette_color(block.order or 0, offset=0.5, saturation=200),
            -1,
        )
        overlay = cv2.addWeighted(overlay, 0.85, block_overlay, 0.15, 0)

    for line_idx, poly in enumerate(line_polys):
        cv2.polylines(overlay, [poly], isClosed=True, color=_palette_color(line_idx), thickness=thickness)

    if show_regions:
        for line in document.iter_lines():
            for region in line.regions:
                cv2.polylines(
                    overlay,
                    [to_px(region.polygon)],
                    isClosed=True,
                    color=region_color,
                    thickness=max(1, thickness // 2),
                )

    out = Image.fromarray(overlay)
    if show_order:
        draw = ImageDraw.Draw(out)
        for block in document.blocks:
            x0, y0, _, _ = block.rect.bounds()
            cx, cy = x0 * scale, y0 * scale
            draw.rectangle([cx, cy, cx + 24, cy + 20], fill=number_bg)
            draw.text((cx + 6, cy + 4), str((block.order or 0) + 1), fill=number_color)
    return out
