"""Inference capability consumed by the detector and recognizer.

The pipeline never executes models itself. It talks to an
:class:`InferenceEngine`: a tensor goes in, a tensor comes out, and the
expected input shape is available as metadata.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Tuple, Union

import numpy as np
import onnxruntime as ort

logger = logging.getLogger(__name__)

Shape = Tuple[Optional[int], ...]


def _normalize_shape(shape: Sequence[Any]) -> Shape:
    # Symbolic or unknown dimensions (strings, None, -1) become None.
    out = []
    for dim in shape:
        if isinstance(dim, (int, np.integer)) and dim > 0:
            out.append(int(dim))
        else:
            out.append(None)
    return tuple(out)


class InferenceEngine(ABC):
    """
    Stateless model executor.

    Implementations must be safe to call from several threads at once.
    """

    @property
    @abstractmethod
    def input_shape(self) -> Shape:
        """Expected input shape; dynamic dimensions are ``None``."""

    @abstractmethod
    def run(self, tensor: np.ndarray) -> np.ndarray:
        """Execute the model on ``tensor`` and return its first output."""


class FunctionInferenceEngine(InferenceEngine):
    """
    Adapter for a plain ``infer(model_handle, tensor) -> tensor`` callable.

    Examples
    --------
    >>> def infer(handle, tensor):
    ...     return handle(tensor)
    >>> engine = FunctionInferenceEngine(infer, model_handle=lambda t: t, input_shape=(1, 1, None, None))
    """

    def __init__(
        self,
        infer: Callable[[Any, np.ndarray], np.ndarray],
        model_handle: Any = None,
        input_shape: Sequence[Any] = (1, 1, None, None),
    ):
        self._infer = infer
        self.model_handle = model_handle
        self._input_shape = _normalize_shape(input_shape)

    @property
    def input_shape(self) -> Shape:
        return self._input_shape

    def run(self, tensor: np.ndarray) -> np.ndarray:
        return np.asarray(self._infer(self.model_handle, tensor))


class OnnxInferenceEngine(InferenceEngine):
    """
    ONNX Runtime session wrapped as an :class:`InferenceEngine`.

    Parameters
    ----------
    weights_path : str or Path
        Path to an ``.onnx`` model file.
    device : {"cuda", "cpu"}, optional
        Execution device. If None, CUDA is used when onnxruntime reports a
        GPU build. CUDA requires the ``onnxruntime-gpu`` package.
    """

    def __init__(
        self,
        weights_path: Union[str, Path],
        device: Optional[str] = None,
    ):
        self.weights_path = Path(weights_path)
        if not self.weights_path.exists():
            raise FileNotFoundError(f"ONNX model not found: {self.weights_path}")

        self.device = device or ("cuda" if ort.get_device() == "GPU" else "cpu")

        providers = []
        if self.device == "cuda":
            providers.append("CUDAExecutionProvider")
        providers.append("CPUExecutionProvider")

        self.session = ort.InferenceSession(str(self.weights_path), providers=providers)
        model_input = self.session.get_inputs()[0]
        self._input_name = model_input.name
        self._output_name = self.session.get_outputs()[0].name
        self._input_shape = _normalize_shape(model_input.shape)
        logger.debug(
            "Loaded %s on %s with input shape %s",
            self.weights_path.name,
            self.device,
            self._input_shape,
        )

    @property
    def input_shape(self) -> Shape:
        return self._input_shape

    def run(self, tensor: np.ndarray) -> np.ndarray:
        outputs = self.session.run(
            [self._output_name],
            {self._input_name: tensor.astype(np.float32, copy=False)},
        )
        return outputs[0]
