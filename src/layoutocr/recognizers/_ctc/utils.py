import cv2
import numpy as np

from ...data import RotatedRect


def extract_line_image(
    image: np.ndarray, rect: RotatedRect, flip: bool = False
) -> np.ndarray:
    """
    Cut a rotated rectangle out of an image and straighten it.

    The rectangle's width axis becomes the horizontal axis of the crop, which
    undoes the rotation of a skewed text line. Pixels outside the image are
    filled by replicating the border.

    Parameters
    ----------
    image : np.ndarray
        Source image, ``(H, W)`` or ``(H, W, C)``.
    rect : RotatedRect
        Area to extract, usually an expanded line rectangle.
    flip : bool, default=False
        Rotate the crop by 180 degrees. Used for top-to-bottom lines whose
        normalized angle points upwards.

    Returns
    -------
    np.ndarray
        Crop of shape ``(round(rect.height), round(rect.width))`` plus
        channels, at least one pixel in each dimension.
    """
    out_w = max(1, int(round(rect.width)))
    out_h = max(1, int(round(rect.height)))
    tl, tr, br, bl = rect.corners()
    if flip:
        src = np.array([br, bl, tr], dtype=np.float32)
    else:
        src = np.array([tl, tr, bl], dtype=np.float32)
    dst = np.array([[0, 0], [out_w, 0], [0, out_h]], dtype=np.float32)

    if rect.width <= 0 or rect.height <= 0:
        cx, cy = rect.center
        x = int(np.clip(round(cx), 0, image.shape[1] - 1))
        y = int(np.clip(round(cy), 0, image.shape[0] - 1))
        return np.ascontiguousarray(image[y : y + 1, x : x + 1])

    matrix = cv2.getAffineTransform(src, dst)
    return cv2.warpAffine(
        image,
        matrix,
        (out_w, out_h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_REPLICATE,
    )
