# Prompt Builder - provider-specific prompt payloads for the completion router
# Templates differ per model family (ChatML, Japanese instruction, plain role prefixes).

import re
from typing import List, Optional, Sequence

from ..models import ConversationTurn, RequestCategory, StudentContextSnapshot, TranslationDirection

MAX_HISTORY_TURNS = 10

JAPANESE_SCRIPT_RE = re.compile(r"[\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")
LATIN_RE = re.compile(r"[a-zA-Z]")

_TRANSLATE_PREFIX_RE = re.compile(r"^translate\s*:?\s*", re.IGNORECASE)
_TRANSLATION_PREFIX_RE = re.compile(r"^translation\s*:?\s*", re.IGNORECASE)
_HOW_DO_YOU_SAY_RE = re.compile(r"^how do you say\s+", re.IGNORECASE)

FAMILY_CHATML = "chatml"
FAMILY_JAPANESE = "japanese"
FAMILY_SEQ2SEQ = "seq2seq"
FAMILY_PLAIN = "plain"

_DIRECTION_LABELS = {
    "en-jp": "Translate the following English text into natural Japanese",
    "jp-en": "Translate the following Japanese text into natural English",
}

PERSONA_PREAMBLE = """You are a friendly, patient, and encouraging Japanese language tutor. Your name is Sensei (先生), and you're here to help students learn Japanese in a natural, conversational way.

{student_info}

Your personality:
- Warm, friendly, and supportive - like a real teacher who cares about their students
- Patient and understanding - never make students feel bad about mistakes
- Enthusiastic about Japanese language and culture
- Use natural, conversational language (not robotic)

What you can help with:
- Japanese grammar explanations (particles, verb forms, sentence structure, etc.)
- Vocabulary and word meanings
- Translations (English ↔ Japanese)
- Grammar corrections with explanations
- Cultural context, pronunciation tips and study strategies

How to respond:
- Provide clear explanations with examples (with romaji and English translations)
- Break down complex concepts into simple parts
- Remember previous conversation context
- If you don't know something, say so honestly but helpfully"""

GRAMMAR_SYSTEM = (
    "You are a friendly Japanese grammar correction assistant. When correcting mistakes, "
    "be encouraging and explain why the correction is needed. Use a warm, supportive tone."
)
GRAMMAR_SYSTEM_JA = (
    "あなたは親切で励ましの言葉を使う日本語の文法修正アシスタントです。"
    "間違いを修正する際は、励ましながら、なぜその修正が必要かを説明してください。"
)
SUMMARY_SYSTEM = "You are a summarization assistant. Provide a concise summary of the following content."
CONVERSATIONAL_NOTE = (
    "Remember to be warm, friendly, and conversational. Use encouraging language and "
    "show enthusiasm for helping students learn Japanese."
)
CONVERSATIONAL_NOTE_JA = "温かく、親しみやすく、励ましの言葉を使いながら、学生の日本語学習をサポートしてください。"


def extract_translation_text(message: str) -> str:
    """
    Strip directive phrasing and return only the span to translate.
    Applying it to its own output changes nothing.
    """
    text = (message or "").strip()
    while True:
        stripped = _TRANSLATE_PREFIX_RE.sub("", text, count=1)
        stripped = _TRANSLATION_PREFIX_RE.sub("", stripped, count=1)
        stripped = _HOW_DO_YOU_SAY_RE.sub("", stripped, count=1)
        stripped = stripped.strip().rstrip("?？").strip()
        if stripped == text:
            return stripped
        text = stripped


def contains_japanese(text: str) -> bool:
    return bool(JAPANESE_SCRIPT_RE.search(text or ""))


def contains_latin(text: str) -> bool:
    return bool(LATIN_RE.search(text or ""))


def detect_translation_direction(text: str) -> TranslationDirection:
    """'jp-en' when the text carries any kana/kanji, otherwise 'en-jp'"""
    return "jp-en" if contains_japanese(text) else "en-jp"


def provider_family(provider_identifier: Optional[str]) -> str:
    """Pick the prompt template family from a model identifier"""
    name = (provider_identifier or "").lower()
    if "qwen" in name:
        return FAMILY_CHATML
    if "elyza" in name or "youri" in name or "rinna" in name:
        return FAMILY_JAPANESE
    if "pegasus" in name or "bart" in name:
        return FAMILY_SEQ2SEQ
    return FAMILY_PLAIN


def recent_turns(history: Optional[Sequence[ConversationTurn]], limit: int = MAX_HISTORY_TURNS) -> List[ConversationTurn]:
    """Bounded suffix of the history; the caller's sequence is left untouched"""
    if not history or limit <= 0:
        return []
    return list(history[-limit:])


def build_context_prompt(context: Optional[StudentContextSnapshot]) -> str:
    """Sensei persona preamble personalised with the student's snapshot"""
    if context is None:
        return PERSONA_PREAMBLE.format(student_info="").strip()

    lines = [
        "Student Information:",
        f"- Name: {context.student_name}",
        f"- Current Level: {context.student_status.level}",
        f"- Learning Progress: {context.student_status.score}%",
        f"- Study Time: {context.learning_time.formatted}",
        f"- Enrolled Courses: {len(context.enrollments)}",
        f"- Quiz Average: {context.quiz_performance.average_score}%",
        "",
    ]
    if context.enrollments:
        lines.append("Currently Learning:")
        lines.extend(f"- {e.course_title}" for e in context.enrollments)
    else:
        lines.append("Not enrolled in any courses yet.")
    if context.strengths:
        lines.append(f"Strengths: {', '.join(context.strengths)}")
    if context.weak_areas:
        lines.append(f"Areas to Improve: {', '.join(context.weak_areas)}")

    return PERSONA_PREAMBLE.format(student_info="\n".join(lines))


class PromptBuilder:
    """
    Builds the `inputs` string for one provider.

    The builder only reads a bounded suffix of the conversation history and
    keeps no state between calls, so one instance can serve every request.
    """

    def __init__(self, max_history_turns: int = MAX_HISTORY_TURNS):
        self.max_history_turns = max_history_turns

    def build(
        self,
        category: RequestCategory,
        context_text: str,
        message: str,
        history: Optional[Sequence[ConversationTurn]] = None,
        provider_identifier: Optional[str] = None,
        provider_direction: Optional[TranslationDirection] = None,
    ) -> str:
        if category == RequestCategory.TRANSLATION:
            return self.build_translation(message, dedicated=provider_direction is not None)

        family = provider_family(provider_identifier)
        turns = recent_turns(history, self.max_history_turns)

        if family == FAMILY_SEQ2SEQ:
            # summarisation models take the raw text, nothing else
            return message
        if family == FAMILY_CHATML:
            return self._chatml(category, context_text, message, turns)
        if family == FAMILY_JAPANESE:
            return self._japanese(category, context_text, message, turns)
        return self._plain(category, context_text, message, turns)

    def build_translation(self, message: str, dedicated: bool = True) -> str:
        """
        Dedicated MT models get the bare span; general models get the span
        tagged with its direction so they know which way to translate.
        """
        text = extract_translation_text(message)
        if dedicated:
            return text
        direction = detect_translation_direction(text)
        return f"{_DIRECTION_LABELS[direction]}. Reply with the translation only.\n\n{text}"

    # --- template families ---

    def _chatml(self, category: RequestCategory, context_text: str, message: str,
                turns: List[ConversationTurn]) -> str:
        if category == RequestCategory.GRAMMAR:
            system = GRAMMAR_SYSTEM
        elif category == RequestCategory.SUMMARIZATION:
            system = SUMMARY_SYSTEM
        else:
            system = f"{context_text}\n\n{CONVERSATIONAL_NOTE}"

        parts = [f"<|im_start|>system\n{system}<|im_end|>"]
        parts.extend(f"<|im_start|>{t.role}\n{t.content}<|im_end|>" for t in turns)
        parts.append(f"<|im_start|>user\n{message}<|im_end|>")
        parts.append("<|im_start|>assistant\n")
        return "\n".join(parts)

    def _japanese(self, category: RequestCategory, context_text: str, message: str,
                  turns: List[ConversationTurn]) -> str:
        conversation = "\n".join(
            f"{'学生' if t.role == 'user' else '先生'}: {t.content}" for t in turns
        )
        if category == RequestCategory.GRAMMAR:
            header = GRAMMAR_SYSTEM_JA
        elif category == RequestCategory.SUMMARIZATION:
            header = SUMMARY_SYSTEM
        else:
            header = f"{context_text}\n\n{CONVERSATIONAL_NOTE_JA}"
        prefix = f"{conversation}\n" if conversation else ""
        return f"{header}\n\n{prefix}学生: {message}\n\n先生:"

    def _plain(self, category: RequestCategory, context_text: str, message: str,
               turns: List[ConversationTurn]) -> str:
        conversation = "\n".join(
            f"{'Student' if t.role == 'user' else 'Sensei'}: {t.content}" for t in turns
        )
        if category == RequestCategory.GRAMMAR:
            header = GRAMMAR_SYSTEM
        elif category == RequestCategory.SUMMARIZATION:
            header = SUMMARY_SYSTEM
        else:
            header = f"{context_text}\n\n{CONVERSATIONAL_NOTE}"
        prefix = f"{conversation}\n" if conversation else ""
        return f"{header}\n\n{prefix}Student: {message}\n\nSensei:"
