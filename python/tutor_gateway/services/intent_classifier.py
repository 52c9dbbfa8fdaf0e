# Intent Classifier - keyword routing for tutor chat messages
# Checks run in a fixed priority order; the first matching category wins.

from typing import Tuple

from ..models import RequestCategory

GRAMMAR_MARKERS: Tuple[str, ...] = (
    "correct",
    "grammar",
    "fix",
    "mistake",
    "wrong",
    "check this",
    "is this correct",
)

TRANSLATION_MARKERS: Tuple[str, ...] = (
    "translate:",
    "translation",
    "how do you say",
    "what does this mean",
    "意味",
    "翻訳",
)

SUMMARIZATION_MARKERS: Tuple[str, ...] = (
    "summarize",
    "summary",
    "brief",
    "overview",
    "要点",
)

QUESTION_MARKERS: Tuple[str, ...] = (
    "?",
    "what",
    "how",
    "why",
    "explain",
    "difference",
    "meaning",
    "何",
    "どう",
    "なぜ",
    "日本語",
    "japanese",
    "grammar",
    "particle",
    "verb",
    "kanji",
    "hiragana",
    "katakana",
)


def _contains_any(text: str, markers: Tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


def is_translation_request(lowered: str) -> bool:
    """
    Translation markers; a leading 'translate' counts even without a colon,
    and so does 'translate' anywhere alongside a colon ("translate this: ...").
    """
    if lowered.startswith("translate") or ("translate" in lowered and ":" in lowered):
        return True
    return _contains_any(lowered, TRANSLATION_MARKERS)


def classify(message: str) -> RequestCategory:
    """
    Map raw user text to a RequestCategory.

    Total over all strings: empty or whitespace-only input falls through to
    the default (qa). Grammar-correction phrasing outranks everything else,
    so "Can you correct this?" is grammar even though it is also a question.
    """
    lowered = (message or "").lower()

    if _contains_any(lowered, GRAMMAR_MARKERS):
        return RequestCategory.GRAMMAR

    if is_translation_request(lowered):
        return RequestCategory.TRANSLATION

    if _contains_any(lowered, SUMMARIZATION_MARKERS):
        return RequestCategory.SUMMARIZATION

    if _contains_any(lowered, QUESTION_MARKERS):
        return RequestCategory.QA

    # Most free-form chat on a Japanese study tutor is still a question
    return RequestCategory.QA
