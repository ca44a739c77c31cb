"""Pytest configuration and fixtures."""

import numpy as np
import pytest

from layoutocr.data import RotatedRect, TextRegion
from layoutocr.inference import FunctionInferenceEngine
from layoutocr.recognizers import DEFAULT_ALPHABET


def make_region(x, y, w, h, angle=0.0, confidence=0.9, touches_border=False):
    """Axis-aligned (or rotated) region given by its top-left corner and size."""
    rect = RotatedRect(center=(x + w / 2.0, y + h / 2.0), width=w, height=h, angle=angle)
    return TextRegion(
        polygon=[(float(px), float(py)) for px, py in rect.corners()],
        rect=rect,
        confidence=confidence,
        touches_border=touches_border,
    )


def draw_bars(shape, boxes):
    """White RGB image with black filled boxes ``(x, y, w, h)``."""
    img = np.full(shape + (3,), 255, dtype=np.uint8)
    for x, y, w, h in boxes:
        img[y : y + h, x : x + w] = 0
    return img


def dark_pixel_infer(handle, tensor):
    """Detection model stand-in: dark input pixels are text."""
    gray = tensor[0].mean(axis=0)
    return (gray < 0.0).astype(np.float32)[np.newaxis, np.newaxis]


@pytest.fixture
def region_factory():
    return make_region


@pytest.fixture
def paragraph_regions():
    """Two lines of three words each, followed by a separate block far below."""
    return [
        make_region(20, 90, 60, 20),
        make_region(85, 90, 60, 20),
        make_region(150, 90, 60, 20),
        make_region(20, 115, 60, 20),
        make_region(85, 115, 60, 20),
        make_region(150, 115, 40, 20),
        make_region(20, 300, 120, 20),
    ]


def ctc_scores(text, steps, alphabet=DEFAULT_ALPHABET):
    """Logits that decode to ``text``, characters spread evenly with blanks between."""
    num_classes = len(alphabet) + 1
    scores = np.full((steps, num_classes), -10.0, dtype=np.float32)
    scores[:, 0] = 10.0
    slots = 2 * len(text) + 1
    for k, ch in enumerate(text):
        t = (2 * k + 1) * steps // slots
        scores[t, 0] = -10.0
        scores[t, alphabet.index(ch) + 1] = 10.0
    return scores


def text_engine(text, input_shape=(1, 1, 32, None)):
    """Recognition model stand-in that reads ``text`` in every crop and records input shapes."""
    calls = []

    def infer(handle, tensor):
        calls.append(tensor.shape)
        n, _, _, w = tensor.shape
        steps = max(w // 4, 2 * len(text) + 1)
        return np.stack([ctc_scores(text, steps)] * n)

    engine = FunctionInferenceEngine(infer, input_shape=input_shape)
    engine.calls = calls
    return engine
