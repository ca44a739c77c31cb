from ._ctc import TextRecognizer
from ._ctc.decoding import DEFAULT_ALPHABET, ctc_greedy_decode, split_words
from ._ctc.utils import extract_line_image

__all__ = [
    "TextRecognizer",
    "DEFAULT_ALPHABET",
    "ctc_greedy_decode",
    "split_words",
    "extract_line_image",
]
