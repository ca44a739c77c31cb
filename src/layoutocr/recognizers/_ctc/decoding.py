import string
from typing import List, Sequence, Tuple

import numpy as np

from ...data import RecognizedChar

DEFAULT_ALPHABET = (
    " "
    + string.digits
    + string.ascii_lowercase
    + string.ascii_uppercase
    + string.punctuation
)

# Class 0 of the model output is the CTC blank; class k is alphabet[k - 1].
BLANK = 0
UNKNOWN_CHAR = "�"


def softmax(x: np.ndarray, axis: int = -1) -> np.ndarray:
    """Compute softmax along axis."""
    exp_x = np.exp(x - np.max(x, axis=axis, keepdims=True))
    return exp_x / np.sum(exp_x, axis=axis, keepdims=True)


def ctc_greedy_decode(
    probs: np.ndarray, alphabet: str = DEFAULT_ALPHABET
) -> List[Tuple[str, float, int, int]]:
    """
    Best-path CTC decoding.

    Parameters
    ----------
    probs : np.ndarray
        Class probabilities with shape ``(T, num_classes)``.
    alphabet : str
        Characters for classes ``1..num_classes-1``.

    Returns
    -------
    list of tuple
        ``(char, confidence, first_step, last_step)`` per decoded character.
        Repeated classes collapse into one character unless separated by a
        blank; the confidence is the highest probability within the run.

    Examples
    --------
    >>> probs = np.eye(4)[[1, 1, 0, 1, 3]]
    >>> [c for c, *_ in ctc_greedy_decode(probs, alphabet="abc")]
    ['a', 'a', 'c']
    """
    if probs.ndim != 2 or probs.shape[0] == 0:
        return []

    best = np.argmax(probs, axis=-1)
    decoded: List[Tuple[str, float, int, int]] = []
    prev = BLANK
    for t, cls in enumerate(best):
        cls = int(cls)
        p = float(probs[t, cls])
        if cls == BLANK:
            prev = BLANK
            continue
        if cls == prev and decoded:
            char, conf, start, _ = decoded[-1]
            decoded[-1] = (char, max(conf, p), start, t)
            continue
        char = alphabet[cls - 1] if cls - 1 < len(alphabet) else UNKNOWN_CHAR
        decoded.append((char, p, t, t))
        prev = cls
    return decoded


def split_words(chars: Sequence[RecognizedChar]) -> List[List[RecognizedChar]]:
    """Split a character sequence into words on whitespace characters."""
    words: List[List[RecognizedChar]] = []
    current: List[RecognizedChar] = []
    for ch in chars:
        if ch.text.isspace():
            if current:
                words.append(current)
                current = []
            continue
        current.append(ch)
    if current:
        words.append(current)
    return words
