"""Reference exporters built on the read-only document traversal."""

import json
from typing import Any, Dict

from ..data import Document


def document_to_text(document: Document) -> str:
    """
    Plain-text rendition of a document.

    Words are joined by single spaces, each text line ends up on its own
    line, and blocks are separated by a blank line. Lines without recognized
    text are skipped.
    """
    paragraphs = []
    for block in document.iter_blocks():
        lines = [line.text for line in block.lines if line.text]
        if lines:
            paragraphs.append("\n".join(lines))
    return "\n\n".join(paragraphs)


def document_to_dict(document: Document) -> Dict[str, Any]:
    """Full document tree as JSON-compatible builtins, geometry and confidences included."""
    return document.model_dump(mode="json")


def document_to_json(document: Document, indent: int = 2) -> str:
    return json.dumps(document_to_dict(document), ensure_ascii=False, indent=indent)
