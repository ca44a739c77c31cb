import logging
from typing import Any, Dict, List, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from ...data import RecognizedChar
from ...inference import InferenceEngine
from ...utils.io import read_image
from .decoding import DEFAULT_ALPHABET, ctc_greedy_decode, softmax

logger = logging.getLogger(__name__)


class TextRecognizer:
    _DEFAULT_HEIGHT = 64

    def __init__(
        self,
        engine: InferenceEngine,
        alphabet: str = DEFAULT_ALPHABET,
    ):
        """
        CTC text-line recognizer.

        Parameters
        ----------
        engine : InferenceEngine
            Model mapping an ``(N, C, H, W)`` line image to per-step class
            scores ``(N, T, num_classes)``. Class 0 is the CTC blank. The
            input shape is read once, here; ``W`` may be dynamic.
        alphabet : str, optional
            Characters for classes ``1..num_classes-1``.

        Examples
        --------
        >>> from layoutocr.inference import OnnxInferenceEngine
        >>> from layoutocr.recognizers import TextRecognizer
        >>> recognizer = TextRecognizer(OnnxInferenceEngine("text-recognition.onnx"))
        >>> recognizer.predict(line_crop)[0]["text"]
        'Hello world'
        """
        self.engine = engine
        self.alphabet = alphabet

        shape = tuple(engine.input_shape)
        if len(shape) == 4:
            channels, in_h, in_w = shape[1:]
        elif len(shape) == 3:
            channels, in_h, in_w = shape
        else:
            raise ValueError(
                f"Recognition model input must be (N, C, H, W) or (C, H, W), got {shape}"
            )
        self.channels = channels or 1
        if self.channels not in (1, 3):
            raise ValueError(f"Unsupported recognition input channels: {self.channels}")
        self.input_height = in_h or self._DEFAULT_HEIGHT
        self.input_width = in_w

    def preprocess(
        self, image: Union[np.ndarray, Image.Image]
    ) -> Tuple[np.ndarray, float]:
        """
        Prepare a line crop for the model.

        The crop is resized to the model height keeping its aspect ratio,
        left-aligned on a white canvas when the model width is fixed, and
        normalized with mean=0.5, std=0.5.

        Returns
        -------
        tensor : np.ndarray
            Float32 array of shape ``(1, C, H, W)``.
        scale_x : float
            Horizontal scale from crop pixels to tensor pixels.
        """
        img = read_image(image)
        h, w = img.shape[:2]
        scale = self.input_height / max(h, 1)
        new_w = max(1, int(round(w * scale)))
        if self.input_width:
            new_w = min(new_w, self.input_width)

        interp = cv2.INTER_AREA if self.input_height < h else cv2.INTER_LINEAR
        resized = cv2.resize(img, (new_w, self.input_height), interpolation=interp)
        if self.channels == 1:
            resized = cv2.cvtColor(resized, cv2.COLOR_RGB2GRAY)[:, :, np.newaxis]

        canvas_w = self.input_width or new_w
        canvas = np.full((self.input_height, canvas_w, self.channels), 255, dtype=np.uint8)
        canvas[:, :new_w] = resized

        img_normalized = (canvas.astype(np.float32) - 127.5) / 127.5
        img_chw = np.transpose(img_normalized, (2, 0, 1))
        return np.expand_dims(img_chw, axis=0), new_w / max(w, 1)

    def _split_outputs(self, output: np.ndarray, batch: int) -> np.ndarray:
        scores = np.asarray(output, dtype=np.float32)
        if scores.ndim == 2:
            scores = scores[np.newaxis]
        if scores.ndim != 3:
            raise ValueError(f"Expected (N, T, C) recognition output, got shape {scores.shape}")
        if scores.shape[0] != batch and scores.shape[1] == batch:
            # Sequence-first layout (T, N, C)
            scores = scores.transpose(1, 0, 2)
        if scores.shape[0] != batch:
            raise ValueError(
                f"Recognition output batch {scores.shape[0]} does not match input batch {batch}"
            )
        return scores

    def _decode(self, scores: np.ndarray, tensor_width: int, scale_x: float, crop_width: int) -> Dict[str, Any]:
        probs = softmax(scores, axis=-1)
        steps = probs.shape[0]
        step_w = tensor_width / max(steps, 1)

        chars: List[RecognizedChar] = []
        for char, conf, first, last in ctc_greedy_decode(probs, self.alphabet):
            x0 = first * step_w / scale_x
            if x0 >= crop_width:
                # Decoded from the white padding of a fixed-width input
                continue
            x1 = min((last + 1) * step_w / scale_x, crop_width)
            chars.append(
                RecognizedChar(
                    text=char,
                    confidence=float(np.clip(conf, 0.0, 1.0)),
                    x_range=(float(x0), float(max(x0, x1))),
                )
            )

        scored = [c.confidence for c in chars if not c.text.isspace()]
        return {
            "text": "".join(c.text for c in chars).strip(),
            "confidence": float(np.mean(scored)) if scored else 0.0,
            "chars": chars,
        }

    def predict(
        self,
        images: Union[np.ndarray, Image.Image, List[Union[np.ndarray, Image.Image]]],
        batch_size: int = 32,
    ) -> List[Dict[str, Any]]:
        """
        Recognize text in one or more line images.

        Parameters
        ----------
        images : numpy.ndarray, PIL.Image, or list thereof
            Rectified line crops.
        batch_size : int, optional
            Crops per engine call when the model width is fixed. Models with
            dynamic width are called once per crop. Default is 32.

        Returns
        -------
        list of dict
            One dict per image with keys:

            - ``"text"`` : str, recognized text
            - ``"confidence"`` : float, mean confidence of non-space characters
            - ``"chars"`` : list of RecognizedChar, x ranges in crop pixels
        """
        if not isinstance(images, list):
            images = [images]

        step = batch_size if self.input_width else 1
        results: List[Dict[str, Any]] = []
        for i in range(0, len(images), step):
            batch_images = images[i : i + step]
            prepared = [self.preprocess(img) for img in batch_images]
            batch_input = np.concatenate([t for t, _ in prepared], axis=0)

            scores = self._split_outputs(self.engine.run(batch_input), len(batch_images))
            tensor_width = batch_input.shape[3]
            for j, img in enumerate(batch_images):
                crop_width = np.asarray(img).shape[1]
                _, scale_x = prepared[j]
                results.append(self._decode(scores[j], tensor_width, scale_x, crop_width))
        logger.debug("Recognized %d line images", len(results))
        return results
