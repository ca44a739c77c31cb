import math

import numpy as np
import pytest

from conftest import ctc_scores, text_engine
from layoutocr.data import RecognizedChar, RotatedRect
from layoutocr.inference import FunctionInferenceEngine
from layoutocr.recognizers import (
    DEFAULT_ALPHABET,
    TextRecognizer,
    ctc_greedy_decode,
    extract_line_image,
    split_words,
)
from layoutocr.recognizers._ctc.decoding import UNKNOWN_CHAR, softmax


# ============================================================================
# Decoding
# ============================================================================


class TestCTCGreedyDecode:
    def test_collapse_and_blank(self):
        probs = np.eye(4)[[1, 1, 0, 1, 3]]
        decoded = ctc_greedy_decode(probs, alphabet="abc")
        assert [c for c, *_ in decoded] == ["a", "a", "c"]
        assert [(start, end) for _, _, start, end in decoded] == [(0, 1), (3, 3), (4, 4)]

    def test_confidence_is_max_of_run(self):
        probs = np.array(
            [
                [0.1, 0.6, 0.3],
                [0.05, 0.9, 0.05],
                [0.2, 0.7, 0.1],
            ]
        )
        decoded = ctc_greedy_decode(probs, alphabet="ab")
        assert len(decoded) == 1
        assert decoded[0][1] == pytest.approx(0.9)

    def test_unknown_class(self):
        probs = np.eye(5)[[4]]
        decoded = ctc_greedy_decode(probs, alphabet="ab")
        assert decoded[0][0] == UNKNOWN_CHAR

    def test_all_blank(self):
        assert ctc_greedy_decode(np.eye(3)[[0, 0, 0]], alphabet="ab") == []

    def test_empty(self):
        assert ctc_greedy_decode(np.zeros((0, 3)), alphabet="ab") == []

    def test_softmax_rows_sum_to_one(self):
        probs = softmax(np.random.default_rng(0).normal(size=(7, 11)))
        np.testing.assert_allclose(probs.sum(axis=-1), 1.0, rtol=1e-6)


class TestSplitWords:
    def _chars(self, text):
        return [RecognizedChar(text=c, confidence=0.9, x_range=(i, i + 1)) for i, c in enumerate(text)]

    def test_split(self):
        words = split_words(self._chars("ab  cd e"))
        assert ["".join(c.text for c in w) for w in words] == ["ab", "cd", "e"]

    def test_leading_and_trailing_spaces(self):
        words = split_words(self._chars(" ab "))
        assert len(words) == 1

    def test_empty(self):
        assert split_words([]) == []


# ============================================================================
# Line extraction
# ============================================================================


class TestExtractLineImage:
    @pytest.fixture
    def image(self):
        rng = np.random.default_rng(5)
        return rng.integers(0, 255, size=(60, 100, 3), dtype=np.uint8)

    def test_axis_aligned_crop(self, image):
        rect = RotatedRect(center=(50, 20), width=40, height=10)
        crop = extract_line_image(image, rect)
        assert crop.shape == (10, 40, 3)
        np.testing.assert_array_equal(crop, image[15:25, 30:70])

    def test_rotated_crop_shape(self, image):
        rect = RotatedRect(center=(50, 30), width=40, height=10, angle=math.pi / 6)
        crop = extract_line_image(image, rect)
        assert crop.shape == (10, 40, 3)

    def test_flip(self):
        image = np.zeros((20, 40, 3), dtype=np.uint8)
        image[:, 20:] = 255
        rect = RotatedRect(center=(20, 10), width=40, height=20)
        crop = extract_line_image(image, rect)
        flipped = extract_line_image(image, rect, flip=True)
        assert crop[:, :10].mean() < 10 and crop[:, 30:].mean() > 245
        assert flipped[:, :10].mean() > 245 and flipped[:, 30:].mean() < 10

    def test_degenerate_rect(self, image):
        rect = RotatedRect(center=(10, 10), width=0, height=5)
        crop = extract_line_image(image, rect)
        assert crop.shape[:2] == (1, 1)

    def test_outside_image(self, image):
        rect = RotatedRect(center=(-50, -50), width=20, height=8)
        crop = extract_line_image(image, rect)
        assert crop.shape == (8, 20, 3)


# ============================================================================
# TextRecognizer
# ============================================================================


class TestTextRecognizer:
    """Tests for TextRecognizer with stand-in engines"""

    def test_shape_is_read_once(self):
        recognizer = TextRecognizer(text_engine("a", input_shape=(1, 3, 48, 256)))
        assert recognizer.channels == 3
        assert recognizer.input_height == 48
        assert recognizer.input_width == 256

    def test_dynamic_height_defaults(self):
        recognizer = TextRecognizer(text_engine("a", input_shape=(1, 1, None, None)))
        assert recognizer.input_height == 64
        assert recognizer.input_width is None

    def test_invalid_channels(self):
        with pytest.raises(ValueError):
            TextRecognizer(text_engine("a", input_shape=(1, 2, 32, None)))

    def test_preprocess_dynamic_width(self):
        recognizer = TextRecognizer(text_engine("a"))
        tensor, scale_x = recognizer.preprocess(np.zeros((20, 100, 3), dtype=np.uint8))
        assert tensor.shape == (1, 1, 32, 160)
        assert scale_x == pytest.approx(1.6)
        assert tensor.min() >= -1.0 and tensor.max() <= 1.0

    def test_preprocess_fixed_width_pads_white(self):
        recognizer = TextRecognizer(text_engine("a", input_shape=(1, 3, 32, 128)))
        tensor, scale_x = recognizer.preprocess(np.zeros((32, 32, 3), dtype=np.uint8))
        assert tensor.shape == (1, 3, 32, 128)
        assert scale_x == pytest.approx(1.0)
        assert tensor[0, :, :, :32].max() == pytest.approx(-1.0)
        assert tensor[0, :, :, 32:].min() == pytest.approx(1.0)

    def test_predict_text_and_chars(self):
        recognizer = TextRecognizer(text_engine("hello world"))
        crop = np.full((20, 200, 3), 255, dtype=np.uint8)
        result = recognizer.predict(crop)[0]

        assert result["text"] == "hello world"
        assert result["confidence"] == pytest.approx(1.0, abs=1e-3)
        chars = result["chars"]
        assert "".join(c.text for c in chars) == "hello world"
        starts = [c.x_range[0] for c in chars]
        assert starts == sorted(starts)
        assert all(0.0 <= c.x_range[0] <= c.x_range[1] <= 200.0 for c in chars)
        assert [len(w) for w in split_words(chars)] == [5, 5]

    def test_predict_batch_fixed_width(self):
        engine = text_engine("ok", input_shape=(1, 3, 32, 128))
        recognizer = TextRecognizer(engine)
        crops = [np.full((32, 128, 3), 255, dtype=np.uint8) for _ in range(5)]
        results = recognizer.predict(crops, batch_size=2)
        assert len(results) == 5
        assert [r["text"] for r in results] == ["ok"] * 5
        assert [shape[0] for shape in engine.calls] == [2, 2, 1]

    def test_predict_dynamic_width_runs_per_crop(self):
        engine = text_engine("ok")
        recognizer = TextRecognizer(engine)
        recognizer.predict([np.zeros((16, 40), dtype=np.uint8), np.zeros((16, 80), dtype=np.uint8)])
        assert [shape[3] for shape in engine.calls] == [80, 160]

    def test_padding_chars_are_dropped(self):
        """Characters decoded beyond the crop content are not reported"""
        recognizer = TextRecognizer(text_engine("abcd", input_shape=(1, 1, 32, 128)))
        result = recognizer.predict(np.zeros((32, 32), dtype=np.uint8))[0]
        # Content spans the first quarter of the canvas
        assert result["text"] == "a"

    def test_sequence_first_output(self):
        def infer(handle, tensor):
            scores = ctc_scores("hi", 16)
            return np.stack([scores] * tensor.shape[0]).transpose(1, 0, 2)

        engine = FunctionInferenceEngine(infer, input_shape=(1, 1, 32, 64))
        results = TextRecognizer(engine).predict([np.zeros((32, 64), dtype=np.uint8)] * 3)
        assert [r["text"] for r in results] == ["hi", "hi", "hi"]

    def test_empty_prediction(self):
        def infer(handle, tensor):
            out = np.zeros((tensor.shape[0], 10, len(DEFAULT_ALPHABET) + 1), dtype=np.float32)
            out[:, :, 0] = 5.0
            return out

        engine = FunctionInferenceEngine(infer, input_shape=(1, 1, 32, None))
        result = TextRecognizer(engine).predict(np.zeros((32, 32), dtype=np.uint8))[0]
        assert result["text"] == ""
        assert result["confidence"] == 0.0
        assert result["chars"] == []
