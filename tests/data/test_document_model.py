import pytest
from pydantic import ValidationError

from conftest import make_region
from layoutocr.data import (
    Baseline,
    Document,
    PipelineStats,
    RecognizedChar,
    RecognizedWord,
    RotatedRect,
    TextBlock,
    TextLine,
    TextRegion,
)


def _line(text_words, confidence=None, order=0):
    rect = RotatedRect(center=(50, 10), width=100, height=20)
    words = [
        RecognizedWord(text=w, confidence=0.9, x_range=(0.0, 10.0), rect=rect, order=i)
        for i, w in enumerate(text_words)
    ]
    return TextLine(
        regions=[make_region(0, 0, 100, 20, confidence=0.8)],
        baseline=Baseline(start=(0, 20), end=(100, 20)),
        rect=rect,
        words=words,
        confidence=confidence,
        order=order,
    )


# ============================================================================
# TextRegion
# ============================================================================


class TestTextRegion:
    def test_creation(self):
        region = make_region(10, 20, 30, 10)
        assert len(region.polygon) == 4
        assert region.rect.center == (25.0, 25.0)
        assert region.touches_border is False

    def test_polygon_needs_three_points(self):
        with pytest.raises(ValidationError) as exc_info:
            TextRegion(
                polygon=[(0, 0), (1, 1)],
                rect=RotatedRect(center=(0, 0), width=1, height=1),
                confidence=0.5,
            )
        assert "too_short" in str(exc_info.value).lower() or "at least 3" in str(exc_info.value)

    @pytest.mark.parametrize("confidence", [-0.1, 1.1])
    def test_confidence_range(self, confidence):
        with pytest.raises(ValidationError):
            make_region(0, 0, 10, 10, confidence=confidence)

    def test_negative_size_rejected(self):
        with pytest.raises(ValidationError):
            RotatedRect(center=(0, 0), width=-1, height=1)

    def test_immutable(self):
        region = make_region(0, 0, 10, 10)
        with pytest.raises(ValidationError):
            region.confidence = 0.1


# ============================================================================
# TextLine / TextBlock / Document
# ============================================================================


class TestTextLine:
    def test_text_joins_words(self):
        line = _line(["Hello", "world"])
        assert line.text == "Hello world"

    def test_detection_confidence(self):
        assert _line([]).detection_confidence == pytest.approx(0.8)

    def test_defaults(self):
        line = _line([])
        assert line.direction == "ltr"
        assert line.confidence is None
        assert line.low_confidence is False

    def test_direction_values(self):
        line = _line([])
        with pytest.raises(ValidationError):
            TextLine(
                regions=line.regions,
                baseline=line.baseline,
                rect=line.rect,
                direction="diagonal",
            )

    def test_model_copy_update(self):
        line = _line(["a"])
        updated = line.model_copy(update={"confidence": 0.3, "low_confidence": True})
        assert updated.confidence == 0.3
        assert updated.low_confidence is True
        assert line.confidence is None


class TestBaseline:
    def test_angle(self):
        assert Baseline(start=(0, 0), end=(10, 10)).angle == pytest.approx(0.7853981633974483)

    def test_zero_length(self):
        assert Baseline(start=(5, 5), end=(5, 5)).angle == 0.0


class TestDocument:
    @pytest.fixture
    def document(self):
        block1 = TextBlock(
            lines=[_line(["Title"], confidence=0.9)],
            rect=RotatedRect(center=(50, 10), width=100, height=20),
            order=0,
        )
        block2 = TextBlock(
            lines=[_line(["first", "line"], confidence=0.7), _line(["second"], confidence=0.5, order=1)],
            rect=RotatedRect(center=(50, 60), width=100, height=40),
            order=1,
        )
        return Document(
            width=200,
            height=100,
            blocks=[block1, block2],
            stats=PipelineStats(region_count=3, line_count=3, block_count=2, word_count=4),
        )

    def test_traversal(self, document):
        assert [b.order for b in document.iter_blocks()] == [0, 1]
        assert [ln.text for ln in document.iter_lines()] == ["Title", "first line", "second"]
        assert [w.text for w in document.iter_words()] == ["Title", "first", "line", "second"]

    def test_confidence(self, document):
        assert document.blocks[1].confidence == pytest.approx(0.6)
        assert document.confidence == pytest.approx(0.75)

    def test_block_confidence_falls_back_to_detection(self):
        block = TextBlock(lines=[_line([])], rect=RotatedRect(center=(0, 0), width=1, height=1))
        assert block.confidence == pytest.approx(0.8)

    def test_empty_document(self):
        doc = Document(width=10, height=10)
        assert doc.blocks == ()
        assert list(doc.iter_lines()) == []
        assert doc.confidence == 0.0
        assert doc.stats.region_count == 0

    def test_nested_sequences_are_read_only(self, document):
        """Lists passed in are stored as tuples at every level of the tree"""
        assert isinstance(document.blocks, tuple)
        assert isinstance(document.blocks[1].lines, tuple)
        line = document.blocks[1].lines[0]
        assert isinstance(line.words, tuple)
        assert isinstance(line.regions, tuple)
        assert isinstance(line.regions[0].polygon, tuple)

        with pytest.raises(AttributeError):
            document.blocks.append(document.blocks[0])
        with pytest.raises(AttributeError):
            line.words.append(line.words[0])
        with pytest.raises(ValidationError):
            document.blocks = ()

    def test_serialization(self, document):
        data = document.model_dump()
        assert data["width"] == 200
        assert len(data["blocks"]) == 2
        restored = Document.model_validate(data)
        assert restored == document


class TestRecognizedChar:
    def test_confidence_range(self):
        with pytest.raises(ValidationError):
            RecognizedChar(text="a", confidence=1.5, x_range=(0, 1))
