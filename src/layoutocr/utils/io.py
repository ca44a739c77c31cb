import io
from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image

from .._errors import InputError

ImageLike = Union[str, Path, bytes, np.ndarray, Image.Image]


def _to_rgb_uint8(img: np.ndarray) -> np.ndarray:
    if img.size == 0 or img.ndim not in (2, 3):
        raise InputError(f"Expected a non-empty (H, W) or (H, W, C) image, got shape {img.shape}")
    if img.dtype != np.uint8:
        if np.issubdtype(img.dtype, np.floating) and img.max(initial=0.0) <= 1.0:
            img = img * 255.0
        img = np.clip(img, 0, 255).astype(np.uint8)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    channels = img.shape[2]
    if channels == 1:
        return cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2RGB)
    if channels == 4:
        return cv2.cvtColor(img, cv2.COLOR_RGBA2RGB)
    if channels == 3:
        return img
    raise InputError(f"Unsupported channel count: {channels}")


def read_image(img_or_path: ImageLike) -> np.ndarray:
    """
    Universal image reading with support for multiple input types.

    Parameters
    ----------
    img_or_path : str, Path, bytes, np.ndarray, or PIL.Image
        Image source in one of the following formats:
        - File path (str or Path) - supports Unicode paths
        - Bytes buffer (e.g., from HTTP response)
        - NumPy array, grayscale, RGB or RGBA
        - PIL Image object

    Returns
    -------
    np.ndarray
        RGB image as numpy array with shape (H, W, 3) and dtype uint8.

    Raises
    ------
    InputError
        If the source cannot be decoded, has an unsupported type, or has an
        unsupported array layout.

    Examples
    --------
    >>> img = read_image("scan.png")
    >>> img.shape
    (1100, 850, 3)

    >>> with open("scan.png", "rb") as f:
    ...     img = read_image(f.read())
    """
    if isinstance(img_or_path, (str, Path)):
        path = Path(img_or_path)
        if not path.is_file():
            raise InputError(f"Image file not found: {path}")
        # np.fromfile handles Unicode paths on Windows
        data = np.fromfile(str(path), dtype=np.uint8)
        img = cv2.imdecode(data, cv2.IMREAD_COLOR)

        # Fallback to PIL for formats OpenCV does not decode (some TIFFs, etc.)
        if img is None:
            try:
                with Image.open(str(path)) as pil_img:
                    return np.array(pil_img.convert("RGB"))
            except (OSError, ValueError) as exc:
                raise InputError(f"Cannot read image with cv2 or PIL: {path}") from exc
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    if isinstance(img_or_path, bytes):
        arr = np.frombuffer(img_or_path, dtype=np.uint8)
        img = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size else None
        if img is None:
            raise InputError("Failed to decode image from bytes")
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    if isinstance(img_or_path, np.ndarray):
        return _to_rgb_uint8(img_or_path)

    if isinstance(img_or_path, Image.Image):
        return np.array(img_or_path.convert("RGB"))

    raise InputError(
        f"Unsupported type for image input: {type(img_or_path)}. "
        f"Expected str, Path, bytes, numpy.ndarray, or PIL.Image"
    )


def encode_png(image: Union[np.ndarray, Image.Image]) -> bytes:
    """Encode an RGB array or PIL image as PNG bytes."""
    pil_img = image if isinstance(image, Image.Image) else Image.fromarray(_to_rgb_uint8(image))
    buffer = io.BytesIO()
    pil_img.save(buffer, format="PNG")
    return buffer.getvalue()
