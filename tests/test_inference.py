from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from layoutocr.inference import FunctionInferenceEngine, OnnxInferenceEngine


class TestFunctionInferenceEngine:
    def test_passes_handle_and_tensor(self):
        seen = {}

        def infer(handle, tensor):
            seen["handle"] = handle
            return tensor * 2

        engine = FunctionInferenceEngine(infer, model_handle="model", input_shape=(1, 3, 64, 64))
        out = engine.run(np.ones((1, 3, 64, 64), dtype=np.float32))
        assert seen["handle"] == "model"
        assert out.max() == 2.0

    @pytest.mark.parametrize(
        "shape, expected",
        [
            ((1, 3, 64, 64), (1, 3, 64, 64)),
            (("batch", 3, "height", "width"), (None, 3, None, None)),
            ((-1, 1, 32, None), (None, 1, 32, None)),
        ],
    )
    def test_symbolic_dims_become_none(self, shape, expected):
        engine = FunctionInferenceEngine(lambda h, t: t, input_shape=shape)
        assert engine.input_shape == expected


class TestOnnxInferenceEngine:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            OnnxInferenceEngine(tmp_path / "missing.onnx")

    @patch("layoutocr.inference.ort.InferenceSession")
    def test_reads_shape_once(self, mock_session_cls, tmp_path):
        weights = tmp_path / "model.onnx"
        weights.write_bytes(b"onnx")

        model_input = MagicMock()
        model_input.name = "input"
        model_input.shape = ["batch", 3, "height", "width"]
        model_output = MagicMock()
        model_output.name = "output"
        session = mock_session_cls.return_value
        session.get_inputs.return_value = [model_input]
        session.get_outputs.return_value = [model_output]
        session.run.return_value = [np.zeros((1, 1, 8, 8), dtype=np.float32)]

        engine = OnnxInferenceEngine(weights, device="cpu")
        assert engine.input_shape == (None, 3, None, None)
        assert mock_session_cls.call_args.kwargs["providers"] == ["CPUExecutionProvider"]

        out = engine.run(np.zeros((1, 3, 8, 8), dtype=np.float64))
        assert out.shape == (1, 1, 8, 8)
        _, feed = session.run.call_args.args
        assert feed["input"].dtype == np.float32
        session.get_inputs.assert_called_once()

    @patch("layoutocr.inference.ort.InferenceSession")
    def test_cuda_provider_first(self, mock_session_cls, tmp_path):
        weights = tmp_path / "model.onnx"
        weights.write_bytes(b"onnx")
        mock_session_cls.return_value.get_inputs.return_value = [MagicMock(shape=[1, 3, 32, 32])]

        OnnxInferenceEngine(weights, device="cuda")
        assert mock_session_cls.call_args.kwargs["providers"] == [
            "CUDAExecutionProvider",
            "CPUExecutionProvider",
        ]
