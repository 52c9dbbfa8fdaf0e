# Response Parser - tolerant text extraction from completion provider payloads
# Providers answer as a list of objects, a single object, or a bare string.

import json
from typing import Any, Callable, Optional, Sequence, Tuple

from ..models import RequestCategory

TEXT_FIELDS: Tuple[str, ...] = (
    "generated_text",
    "summary_text",
    "translation_text",
    "translated_text",
    "text",
)
# only honoured when the value is a plain string
LOOSE_STRING_FIELDS: Tuple[str, ...] = ("output", "result")

ASSISTANT_CUES: Tuple[str, ...] = (
    "<|im_start|>assistant",
    "Assistant (Corrected):",
    "Assistant (Translation):",
    "Assistant:",
    "Sensei:",
    "先生:",
)
STUDENT_CUES: Tuple[str, ...] = ("<|im_start|>user", "Student:", "学生:")


def decode_body(raw: str) -> Any:
    """JSON when it parses, otherwise the raw text itself"""
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def _non_empty(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _from_object(obj: Any) -> Optional[str]:
    if not isinstance(obj, dict):
        return None
    for key in TEXT_FIELDS:
        text = _non_empty(obj.get(key))
        if text:
            return text
    for key in LOOSE_STRING_FIELDS:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _from_string(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return payload.strip() or None
    return None


def _from_list(payload: Any) -> Optional[str]:
    if not isinstance(payload, list) or not payload:
        return None
    first = payload[0]
    # some pipelines double-wrap: [[{"generated_text": ...}]]
    if isinstance(first, list):
        return _from_list(first)
    return _from_object(first) or _from_string(first)


_SHAPES: Sequence[Callable[[Any], Optional[str]]] = (_from_list, _from_object, _from_string)


def extract_text(payload: Any) -> Optional[str]:
    """
    Try each known payload shape in a fixed order and return the first
    non-empty text found, or None when nothing usable is present.
    """
    for shape in _SHAPES:
        text = shape(payload)
        if text:
            return text
    return None


def clean_response(text: Optional[str], category: RequestCategory, message: str) -> str:
    """
    Strip prompt echoes from a provider's output.

    ChatML end markers, everything up to the last assistant cue, and anything
    from the first student cue onwards are removed. Outside translation, a
    verbatim echo of the user's message is cut as well.
    """
    if not text:
        return ""
    cleaned = text

    if "<|im_end|>" in cleaned:
        cleaned = cleaned.split("<|im_end|>")[0].strip()

    for cue in ASSISTANT_CUES:
        if cue in cleaned:
            tail = cleaned.split(cue)[-1].strip()
            cleaned = tail or cleaned

    for cue in STUDENT_CUES:
        if cue in cleaned:
            cleaned = cleaned.split(cue)[0].strip()

    if category != RequestCategory.TRANSLATION and message and message in cleaned:
        parts = cleaned.split(message)
        if len(parts) > 1:
            cleaned = parts[-1].strip()

    return cleaned.strip()
