import logging
import math
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from ..._config import PipelineConfig
from ...inference import InferenceEngine
from ...utils.io import read_image
from .utils import AffineTransform, extract_regions, to_probability_map

logger = logging.getLogger(__name__)


class TextDetector:
    def __init__(
        self,
        engine: InferenceEngine,
        config: Optional[PipelineConfig] = None,
        output_logits: Optional[bool] = None,
    ):
        """
        Text detector turning an image into candidate text regions.

        Parameters
        ----------
        engine : InferenceEngine
            Model producing a per-pixel text-probability map from an
            ``(N, C, H, W)`` image tensor. Its input shape is read once, here.
        config : PipelineConfig, optional
            Thresholds for region extraction. Defaults to ``PipelineConfig()``.
        output_logits : bool or None, optional
            Whether the model emits logits rather than probabilities. None
            infers it from each output: values clearly outside ``[0, 1]``
            mean logits.

        Notes
        -----
        Fixed model input sizes are honoured with an aspect-preserving resize
        padded at the bottom and right; dynamic sizes keep the image scale and
        pad to a multiple of ``config.size_multiple``.
        """
        self.engine = engine
        self.config = config or PipelineConfig()
        self.output_logits = output_logits

        shape = tuple(engine.input_shape)
        if len(shape) == 4:
            channels, in_h, in_w = shape[1:]
        elif len(shape) == 3:
            channels, in_h, in_w = shape
        else:
            raise ValueError(
                f"Detection model input must be (N, C, H, W) or (C, H, W), got {shape}"
            )
        self.channels = channels or 3
        if self.channels not in (1, 3):
            raise ValueError(f"Unsupported detection input channels: {self.channels}")
        self.input_height = in_h
        self.input_width = in_w

    def _target_layout(
        self, h: int, w: int, size_multiple: int
    ) -> Tuple[int, int, int, int]:
        scales = []
        if self.input_height:
            scales.append(self.input_height / h)
        if self.input_width:
            scales.append(self.input_width / w)
        s = min(scales) if scales else 1.0

        new_h = max(1, int(round(h * s)))
        new_w = max(1, int(round(w * s)))
        if self.input_height:
            new_h = min(new_h, self.input_height)
        if self.input_width:
            new_w = min(new_w, self.input_width)

        canvas_h = self.input_height or int(math.ceil(new_h / size_multiple) * size_multiple)
        canvas_w = self.input_width or int(math.ceil(new_w / size_multiple) * size_multiple)
        return new_h, new_w, canvas_h, canvas_w

    def preprocess(
        self,
        image: Union[str, Path, np.ndarray, Image.Image],
        config: Optional[PipelineConfig] = None,
    ) -> Tuple[np.ndarray, AffineTransform, Tuple[int, int]]:
        """
        Resize, pad and normalize an image for the detection model.

        ``config`` overrides the detector's ``size_multiple`` for this call.

        Returns
        -------
        tensor : np.ndarray
            Float32 tensor of shape ``(1, C, H, W)`` in ``[-1, 1]``.
        transform : AffineTransform
            Exact map from source-image pixels to model-input pixels.
        content_size : tuple of int
            ``(height, width)`` of the image inside the padded canvas.
        """
        img = read_image(image)
        h, w = img.shape[:2]
        config = config or self.config
        new_h, new_w, canvas_h, canvas_w = self._target_layout(h, w, config.size_multiple)

        if (new_h, new_w) != (h, w):
            interp = cv2.INTER_AREA if new_h < h or new_w < w else cv2.INTER_LINEAR
            img = cv2.resize(img, (new_w, new_h), interpolation=interp)
        if self.channels == 1:
            img = cv2.cvtColor(img, cv2.COLOR_RGB2GRAY)[:, :, np.newaxis]

        # White padding reads as background to the detector.
        canvas = np.full((canvas_h, canvas_w, self.channels), 255, dtype=np.uint8)
        canvas[:new_h, :new_w] = img

        tensor = (canvas.astype(np.float32) / 255.0 - 0.5) / 0.5
        tensor = tensor.transpose(2, 0, 1)[np.newaxis, :, :, :]

        transform = AffineTransform.scale(new_w / w, new_h / h)
        return np.ascontiguousarray(tensor), transform, (new_h, new_w)

    def detect(self, tensor: np.ndarray) -> np.ndarray:
        """Run the engine and return its output as a 2D probability map."""
        return to_probability_map(self.engine.run(tensor), logits=self.output_logits)

    def postprocess(
        self,
        probability_map: np.ndarray,
        transform: AffineTransform,
        input_size: Tuple[int, int],
        content_size: Tuple[int, int],
        config: Optional[PipelineConfig] = None,
    ):
        """
        Extract regions from ``probability_map`` and map them to image space.

        ``transform`` maps source pixels to model-input pixels; the map may be
        downscaled relative to the input, which is folded in here before
        inverting. ``config`` overrides the detector's own thresholds for
        this call.
        """
        config = config or self.config
        map_h, map_w = probability_map.shape
        in_h, in_w = input_size
        to_map = AffineTransform.scale(map_w / in_w, map_h / in_h)
        image_to_map = transform.then(to_map)

        # Ignore padding so that border flags refer to the real image edges.
        valid_h = min(map_h, max(1, int(round(content_size[0] * map_h / in_h))))
        valid_w = min(map_w, max(1, int(round(content_size[1] * map_w / in_w))))
        regions = extract_regions(
            probability_map[:valid_h, :valid_w],
            threshold=config.detection_threshold,
            min_area=config.min_region_area,
            connectivity=config.connectivity,
        )

        map_to_image = image_to_map.inverse()
        return [map_to_image.apply_region(r) for r in regions], image_to_map

    def predict(
        self,
        image: Union[str, Path, np.ndarray, Image.Image],
        return_maps: bool = False,
    ) -> Dict[str, Any]:
        """
        Detect text regions in a single image.

        Parameters
        ----------
        image : str, Path, numpy.ndarray, or PIL.Image
            Input image.
        return_maps : bool, optional
            If True, the raw probability map is returned under
            ``"probability_map"``. Default is False.

        Returns
        -------
        dict
            - ``"regions"`` : list of TextRegion in source-image coordinates
            - ``"transform"`` : AffineTransform from image to map pixels
            - ``"probability_map"`` : numpy.ndarray or None

        Examples
        --------
        >>> from layoutocr.detectors import TextDetector
        >>> from layoutocr.inference import OnnxInferenceEngine
        >>> detector = TextDetector(OnnxInferenceEngine("text-detection.onnx"))
        >>> result = detector.predict("page.png")
        >>> len(result["regions"])
        57
        """
        t0 = time.perf_counter()
        tensor, transform, content_size = self.preprocess(image)
        prob = self.detect(tensor)
        regions, image_to_map = self.postprocess(
            prob, transform, tensor.shape[2:], content_size
        )
        logger.debug(
            "Detected %d regions in %.3fs", len(regions), time.perf_counter() - t0
        )
        return {
            "regions": regions,
            "transform": image_to_map,
            "probability_map": prob if return_maps else None,
        }
