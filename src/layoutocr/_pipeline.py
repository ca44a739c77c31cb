import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from PIL import Image
from tqdm import tqdm

from ._config import PipelineConfig
from ._errors import InferenceError, LayoutOCRError, StageError
from .data import (
    Document,
    PipelineStats,
    RecognizedChar,
    RecognizedWord,
    TextBlock,
    TextLine,
)
from .detectors import TextDetector
from .recognizers import TextRecognizer, extract_line_image, split_words
from .utils.geometry import expand, sub_rect
from .utils.io import ImageLike, read_image
from .utils.sorting import analyze_layout
from .utils.visualization import visualize_document

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = "idle"
    PREPROCESSED = "preprocessed"
    DETECTED = "detected"
    GROUPED = "grouped"
    RECOGNIZED = "recognized"
    ASSEMBLED = "assembled"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.PREPROCESSED},
    PipelineState.PREPROCESSED: {PipelineState.DETECTED},
    PipelineState.DETECTED: {PipelineState.GROUPED},
    # Detection-only runs go straight from GROUPED to ASSEMBLED.
    PipelineState.GROUPED: {PipelineState.RECOGNIZED, PipelineState.ASSEMBLED},
    PipelineState.RECOGNIZED: {PipelineState.ASSEMBLED},
    PipelineState.ASSEMBLED: {PipelineState.DONE},
    PipelineState.DONE: set(),
    PipelineState.FAILED: set(),
}


class PipelineRun:
    """
    State of a single image going through the pipeline.

    A run only moves forward through the stage sequence. Any failure moves it
    to ``FAILED`` and records the stage that failed; it never leaves a
    terminal state.

    Attributes
    ----------
    state : PipelineState
        Current state.
    failed_stage : str or None
        Name of the stage that failed, if any.
    timings : dict
        Wall time per completed stage, in seconds.
    progress : dict
        Counters reached so far: regions, lines, blocks, recognized_lines.
    """

    def __init__(self):
        self.state = PipelineState.IDLE
        self.failed_stage: Optional[str] = None
        self.timings: Dict[str, float] = {}
        self.progress: Dict[str, int] = {
            "regions": 0,
            "lines": 0,
            "blocks": 0,
            "recognized_lines": 0,
        }

    @property
    def finished(self) -> bool:
        return self.state in (PipelineState.DONE, PipelineState.FAILED)

    def advance(self, state: PipelineState, stage: str, elapsed: float) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid pipeline transition {self.state.name} -> {state.name}"
            )
        self.timings[stage] = elapsed
        logger.debug("%s -> %s (%s %.3fs)", self.state.name, state.name, stage, elapsed)
        self.state = state

    def fail(self, stage: str) -> None:
        logger.debug("%s -> FAILED at %s", self.state.name, stage)
        self.state = PipelineState.FAILED
        self.failed_stage = stage


@contextmanager
def _stage(run: PipelineRun, stage: str, error_cls: type):
    """Fail ``run`` on any exception and re-raise it as ``error_cls``."""
    try:
        yield
    except Exception as exc:
        run.fail(stage)
        logger.error(
            "Pipeline failed at %s stage (progress: %s): %s", stage, run.progress, exc
        )
        if isinstance(exc, LayoutOCRError):
            raise
        raise error_cls(stage, str(exc), run.progress) from exc


class Pipeline:
    """
    High-level OCR pipeline: detection, layout analysis, per-line recognition
    and document assembly.

    Attributes
    ----------
    detector : TextDetector
        Produces text regions from an image.
    recognizer : TextRecognizer or None
        Reads text from rectified line crops. Without one the pipeline runs
        in detection-only mode.
    config : PipelineConfig
        Thresholds shared by all stages.
    last_run : PipelineRun or None
        State of the most recent ``predict`` call, including failed ones.

    Examples
    --------
    >>> from layoutocr import Pipeline
    >>> from layoutocr.detectors import TextDetector
    >>> from layoutocr.recognizers import TextRecognizer
    >>> from layoutocr.inference import OnnxInferenceEngine
    >>> pipeline = Pipeline(
    ...     TextDetector(OnnxInferenceEngine("text-detection.onnx")),
    ...     TextRecognizer(OnnxInferenceEngine("text-recognition.onnx")),
    ... )
    >>> result = pipeline.predict("document.jpg")
    >>> print(pipeline.get_text(result["document"]))
    """

    def __init__(
        self,
        detector: TextDetector,
        recognizer: Optional[TextRecognizer] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.detector = detector
        self.recognizer = recognizer
        self.config = config or getattr(detector, "config", None) or PipelineConfig()
        self.last_run: Optional[PipelineRun] = None

    def predict(
        self,
        image: ImageLike,
        recognize_text: bool = True,
        vis: bool = False,
        profile: bool = False,
    ) -> Union[Dict[str, Document], tuple]:
        """
        Run the pipeline on a single image.

        Parameters
        ----------
        image : str, Path, bytes, numpy.ndarray, or PIL.Image
            Input image.
        recognize_text : bool, optional
            If False, or if the pipeline has no recognizer, only detection and
            layout analysis run and lines carry ``confidence=None``.
            Default is True.
        vis : bool, optional
            If True, also return a visualization of the document.
        profile : bool, optional
            If True, log per-stage timings at INFO level instead of DEBUG.

        Returns
        -------
        dict or tuple
            ``{"document": Document}``, or ``(result, PIL.Image)`` when
            ``vis=True``.

        Raises
        ------
        InputError
            The image cannot be read. Raised before the run starts.
        InferenceError
            The detection or recognition engine failed. ``stage`` and
            ``progress`` tell how far the run got.
        StageError
            Any other stage failed.
        """
        image_array = read_image(image)

        run = PipelineRun()
        self.last_run = run
        log_level = logging.INFO if profile else logging.DEBUG
        start_time = time.perf_counter()

        # ---- PREPROCESS ----
        t0 = time.perf_counter()
        with _stage(run, "preprocess", StageError):
            tensor, transform, content_size = self.detector.preprocess(
                image_array, config=self.config
            )
        run.advance(PipelineState.PREPROCESSED, "preprocess", time.perf_counter() - t0)

        # ---- DETECTION ----
        t0 = time.perf_counter()
        with _stage(run, "detection", InferenceError):
            prob = self.detector.detect(tensor)
            regions, _ = self.detector.postprocess(
                prob, transform, tensor.shape[2:], content_size, config=self.config
            )
        run.progress["regions"] = len(regions)
        run.advance(PipelineState.DETECTED, "detection", time.perf_counter() - t0)

        # ---- LAYOUT ----
        t0 = time.perf_counter()
        with _stage(run, "grouping", StageError):
            blocks = analyze_layout(regions, self.config)
        run.progress["blocks"] = len(blocks)
        run.progress["lines"] = sum(len(b.lines) for b in blocks)
        run.advance(PipelineState.GROUPED, "grouping", time.perf_counter() - t0)

        # ---- RECOGNITION ----
        recognitions: Optional[List[Dict[str, Any]]] = None
        if recognize_text and self.recognizer is not None:
            t0 = time.perf_counter()
            lines = [line for block in blocks for line in block.lines]
            with _stage(run, "recognition", InferenceError):
                recognitions = self._recognize_lines(image_array, lines, run)
            run.advance(PipelineState.RECOGNIZED, "recognition", time.perf_counter() - t0)

        # ---- ASSEMBLY ----
        t0 = time.perf_counter()
        with _stage(run, "assembly", StageError):
            if recognitions is not None:
                blocks = self._attach_text(blocks, recognitions)
            document = self._build_document(image_array, blocks, regions)
        run.advance(PipelineState.ASSEMBLED, "assembly", time.perf_counter() - t0)

        run.advance(PipelineState.DONE, "total", time.perf_counter() - start_time)
        document = document.model_copy(
            update={
                "stats": document.stats.model_copy(update={"timings": dict(run.timings)})
            }
        )
        for stage, elapsed in run.timings.items():
            logger.log(log_level, "%s: %.3fs", stage, elapsed)

        result = {"document": document}
        if vis:
            pil_img = image if isinstance(image, Image.Image) else Image.fromarray(image_array)
            return result, visualize_document(pil_img, document)
        return result

    def process_batch(
        self,
        images: Sequence[ImageLike],
        recognize_text: bool = True,
        vis: bool = False,
        profile: bool = False,
        verbose: bool = False,
    ) -> List[Union[Dict[str, Document], tuple]]:
        """
        Process multiple images in sequence.

        Parameters
        ----------
        images : sequence
            Images accepted by :meth:`predict`.
        verbose : bool, optional
            Show a progress bar. Default is False.

        Returns
        -------
        list
            One :meth:`predict` result per input image, in input order.
        """
        results = []
        for img in tqdm(images, desc="Pages", disable=not verbose):
            results.append(
                self.predict(img, recognize_text=recognize_text, vis=vis, profile=profile)
            )
        return results

    def get_text(self, document: Document) -> str:
        """
        Plain text of a document: one line per text line, in reading order.

        Lines without recognized text are skipped.
        """
        lines = []
        for line in document.iter_lines():
            text = line.text
            if text:
                lines.append(text)
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _recognize_line(self, image: np.ndarray, line: TextLine) -> Dict[str, Any]:
        crop_rect = expand(line.rect, self.config.crop_margin)
        flip = bool(line.direction == "ttb" and crop_rect.axes[0][1] < 0)
        crop = extract_line_image(image, crop_rect, flip=flip)
        result = self.recognizer.predict([crop])[0]
        result["crop_width"] = crop.shape[1]
        result["crop_rect_width"] = crop_rect.width
        result["flip"] = flip
        return result

    def _recognize_lines(
        self, image: np.ndarray, lines: List[TextLine], run: PipelineRun
    ) -> List[Dict[str, Any]]:
        results: List[Optional[Dict[str, Any]]] = [None] * len(lines)
        if not lines:
            return []

        if self.config.max_workers == 1:
            for idx, line in enumerate(lines):
                results[idx] = self._recognize_line(image, line)
                run.progress["recognized_lines"] += 1
            return results

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {
                executor.submit(self._recognize_line, image, line): idx
                for idx, line in enumerate(lines)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()
                run.progress["recognized_lines"] += 1
        return results

    def _words_from_result(self, line: TextLine, result: Dict[str, Any]) -> List[RecognizedWord]:
        chars = result.get("chars")
        text = result.get("text", "") or ""
        confidence = float(np.clip(result.get("confidence", 0.0), 0.0, 1.0))
        line_w = line.rect.width

        if not chars:
            # Recognizers without character positions: one word spanning the line.
            if not text.strip():
                return []
            return [
                RecognizedWord(
                    text=text.strip(),
                    confidence=confidence,
                    x_range=(0.0, line_w),
                    rect=line.rect,
                    order=0,
                )
            ]

        crop_w = max(result.get("crop_width", 1), 1)
        crop_rect_w = result.get("crop_rect_width", line_w)
        margin = (crop_rect_w - line_w) / 2.0
        flip = result.get("flip", False)

        def to_line(x: float) -> float:
            offset = min(max(x * crop_rect_w / crop_w - margin, 0.0), line_w)
            # Flipped crops read from the far end of the line rectangle.
            return float(line_w - offset if flip else offset)

        mapped = []
        for c in chars:
            a, b = to_line(c.x_range[0]), to_line(c.x_range[1])
            mapped.append(c.model_copy(update={"x_range": (min(a, b), max(a, b))}))

        words = []
        for order, word_chars in enumerate(split_words(mapped)):
            x0 = min(c.x_range[0] for c in word_chars)
            x1 = max(c.x_range[1] for c in word_chars)
            words.append(
                RecognizedWord(
                    text="".join(c.text for c in word_chars),
                    chars=word_chars,
                    confidence=float(np.mean([c.confidence for c in word_chars])),
                    x_range=(x0, x1),
                    rect=sub_rect(line.rect, x0, x1),
                    order=order,
                )
            )
        return words

    def _line_confidence(self, result: Dict[str, Any]) -> float:
        chars: List[RecognizedChar] = result.get("chars") or []
        scored = [c.confidence for c in chars if not c.text.isspace()]
        if scored:
            return float(np.mean(scored))
        if chars or not (result.get("text") or "").strip():
            return 0.0
        return float(np.clip(result.get("confidence", 0.0), 0.0, 1.0))

    def _attach_text(
        self, blocks: List[TextBlock], recognitions: List[Dict[str, Any]]
    ) -> List[TextBlock]:
        idx = 0
        updated_blocks = []
        for block in blocks:
            lines = []
            for line in block.lines:
                result = recognitions[idx]
                idx += 1
                confidence = self._line_confidence(result)
                lines.append(
                    line.model_copy(
                        update={
                            "words": tuple(self._words_from_result(line, result)),
                            "confidence": confidence,
                            "low_confidence": confidence < self.config.confidence_floor,
                        }
                    )
                )
            updated_blocks.append(block.model_copy(update={"lines": tuple(lines)}))
        return updated_blocks

    def _build_document(
        self,
        image: np.ndarray,
        blocks: List[TextBlock],
        regions: list,
    ) -> Document:
        lines = [line for block in blocks for line in block.lines]
        stats = PipelineStats(
            region_count=len(regions),
            line_count=len(lines),
            block_count=len(blocks),
            word_count=sum(len(line.words) for line in lines),
            low_confidence_line_count=sum(1 for line in lines if line.low_confidence),
        )
        h, w = image.shape[:2]
        return Document(width=w, height=h, blocks=blocks, stats=stats)
