import pytest
from pydantic import ValidationError

from layoutocr import PipelineConfig


class TestPipelineConfig:
    def test_defaults(self):
        config = PipelineConfig()
        assert config.detection_threshold == 0.3
        assert config.min_region_area == 10
        assert config.connectivity == 8
        assert config.line_gap_ratio == 1.5
        assert config.block_gap_ratio == 1.0
        assert config.confidence_floor == 0.5
        assert config.writing_direction == "ltr"
        assert config.max_workers is None

    def test_frozen(self):
        config = PipelineConfig()
        with pytest.raises(ValidationError):
            config.detection_threshold = 0.9

    def test_model_copy(self):
        config = PipelineConfig()
        strict = config.model_copy(update={"confidence_floor": 0.8})
        assert strict.confidence_floor == 0.8
        assert config.confidence_floor == 0.5

    @pytest.mark.parametrize(
        "field, value",
        [
            ("detection_threshold", 1.5),
            ("min_region_area", 0),
            ("connectivity", 6),
            ("writing_direction", "ttb"),
            ("confidence_floor", -0.1),
            ("max_workers", 0),
        ],
    )
    def test_validation(self, field, value):
        with pytest.raises(ValidationError):
            PipelineConfig(**{field: value})


class TestConfigFromEnv:
    def test_reads_prefixed_variables(self):
        environ = {
            "LAYOUTOCR_DETECTION_THRESHOLD": "0.45",
            "LAYOUTOCR_CONNECTIVITY": "4",
            "LAYOUTOCR_WRITING_DIRECTION": "rtl",
            "LAYOUTOCR_MAX_WORKERS": "3",
            "UNRELATED": "1",
        }
        config = PipelineConfig.from_env(environ=environ)
        assert config.detection_threshold == pytest.approx(0.45)
        assert config.connectivity == 4
        assert config.writing_direction == "rtl"
        assert config.max_workers == 3

    def test_overrides_win(self):
        environ = {"LAYOUTOCR_CONFIDENCE_FLOOR": "0.2"}
        config = PipelineConfig.from_env(environ=environ, confidence_floor=0.7)
        assert config.confidence_floor == 0.7

    def test_custom_prefix_and_none(self):
        environ = {"OCR_MAX_WORKERS": "none", "OCR_LINE_GAP_RATIO": ""}
        config = PipelineConfig.from_env(prefix="OCR_", environ=environ)
        assert config.max_workers is None
        assert config.line_gap_ratio == 1.5

    def test_invalid_value(self):
        with pytest.raises(ValidationError):
            PipelineConfig.from_env(environ={"LAYOUTOCR_MIN_REGION_AREA": "many"})

    def test_process_environment(self, monkeypatch):
        monkeypatch.setenv("LAYOUTOCR_BLOCK_GAP_RATIO", "2.5")
        assert PipelineConfig.from_env().block_gap_ratio == 2.5
