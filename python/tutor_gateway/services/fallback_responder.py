# Fallback Responder - deterministic template replies when no provider answers
# Last line of defence for the chat route: no I/O, no exceptions, never empty.

import logging
import re
from typing import Dict, Optional

from ..models import RequestCategory, StudentContextSnapshot
from .prompt_builder import detect_translation_direction, extract_translation_text
from .student_context_service import default_snapshot

logger = logging.getLogger(__name__)

COMMON_PHRASES: Dict[str, str] = {
    "hello": "こんにちは (Konnichiwa)",
    "thank you": "ありがとうございます (Arigatou gozaimasu)",
    "goodbye": "さようなら (Sayounara)",
    "how are you": "お元気ですか (Ogenki desu ka)",
    "yes": "はい (Hai)",
    "no": "いいえ (Iie)",
    "please": "お願いします (Onegaishimasu)",
    "excuse me": "すみません (Sumimasen)",
    "i am hungry": "お腹が空きました (Onaka ga sukimashita)",
    "i'm hungry": "お腹が空きました (Onaka ga sukimashita)",
    "i am tired": "疲れました (Tsukaremashita)",
    "i'm tired": "疲れました (Tsukaremashita)",
    "good morning": "おはようございます (Ohayou gozaimasu)",
    "good evening": "こんばんは (Konbanwa)",
    "good night": "おやすみなさい (Oyasumi nasai)",
    "i love you": "愛しています (Aishiteimasu)",
    "sorry": "ごめんなさい (Gomen nasai)",
    "i understand": "分かりました (Wakarimashita)",
    "i don't understand": "分かりません (Wakarimasen)",
    "what is your name": "お名前は何ですか (Onamae wa nan desu ka)",
    "my name is": "私の名前は (Watashi no namae wa)",
    "nice to meet you": "初めまして (Hajimemashite)",
    "i am a student": "私は学生です (Watashi wa gakusei desu)",
    "i am learning japanese": "日本語を勉強しています (Nihongo wo benkyou shiteimasu)",
}

GO_HOME_TRANSLATION = (
    "Translation: 家に帰りたいです (Ie ni kaeritai desu)\n\n"
    "Breakdown:\n"
    "• 家 (ie) = home\n"
    "• に (ni) = to/toward\n"
    "• 帰りたい (kaeritai) = want to go back/return\n"
    "• です (desu) = polite ending\n\n"
    "Note: \"I want to go home\" in Japanese is 家に帰りたいです."
)

HUNGRY_TRANSLATION = (
    "Translation: お腹が空きました (Onaka ga sukimashita)\n\n"
    "Breakdown:\n"
    "• お腹 (onaka) = stomach/belly\n"
    "• が (ga) = subject marker\n"
    "• 空きました (sukimashita) = became empty (polite past tense)\n\n"
    "Note: \"I am hungry\" in Japanese is お腹が空きました (Onaka ga sukimashita)."
)

TIRED_TRANSLATION = (
    "Translation: 疲れました (Tsukaremashita)\n\n"
    "Breakdown:\n"
    "• 疲れ (tsukare) = tiredness\n"
    "• ました (mashita) = polite past tense\n\n"
    "Note: \"I am tired\" in Japanese is 疲れました (Tsukaremashita)."
)

STUDENT_TRANSLATION = (
    "Translation: 私は学生です (Watashi wa gakusei desu)\n\n"
    "Breakdown:\n"
    "• 私 (watashi) = I/me\n"
    "• は (wa) = topic marker\n"
    "• 学生 (gakusei) = student\n"
    "• です (desu) = polite ending\n\n"
    "Note: \"I am a student\" in Japanese is 私は学生です (Watashi wa gakusei desu)."
)

COMMON_PHRASES_HINT = (
    "Translation for \"{text}\":\n\n"
    "I'm working on providing better translations. Here are some common phrases:\n"
    "• \"Hello\" = こんにちは (Konnichiwa)\n"
    "• \"Thank you\" = ありがとうございます (Arigatou gozaimasu)\n"
    "• \"I want to go home\" = 家に帰りたいです (Ie ni kaeritai desu)\n"
    "• \"I am hungry\" = お腹が空きました (Onaka ga sukimashita)\n"
    "• \"I am tired\" = 疲れました (Tsukaremashita)\n\n"
    "For more accurate translations, please make sure the translation service API key is configured."
)

JAPANESE_TO_ENGLISH_HINT = (
    "Translation for \"{text}\":\n\n"
    "I'm working on providing better translations. Please provide the Japanese text you'd like "
    "translated, or make sure the translation service API key is configured for automatic translation."
)

TE_FORM_EXPLANATION = """The て-form (te-form) is a very important verb form in Japanese! Here's how to use it:

**Formation:**
• Group 1 (う-verbs): Change the final う-sound to て/で
  - 書く → 書いて (kaku → kaite)
  - 読む → 読んで (yomu → yonde)
  - 話す → 話して (hanasu → hanashite)

• Group 2 (る-verbs): Remove る and add て
  - 食べる → 食べて (taberu → tabete)
  - 見る → 見て (miru → mite)

• Irregular: する → して, 来る → 来て (kite)

**Uses:**
1. **Requests**: 本を読んでください (Please read the book)
2. **Connecting actions**: 朝ご飯を食べて、学校に行きます (I eat breakfast and go to school)
3. **Progressive tense**: 本を読んでいます (I am reading a book)

Would you like more examples or help with a specific use?"""

WA_GA_EXPLANATION = """The difference between は (wa) and が (ga) is a common question!

**は (wa) - Topic marker:**
• Indicates the topic of the sentence
• Used for general statements
• Example: 私は学生です (I am a student - talking about "I")

**が (ga) - Subject marker:**
• Indicates the subject performing an action
• Used for specific/new information
• Example: 私が学生です (I am the student - emphasizing "I")

**Key difference:**
• は = "As for X..." (topic)
• が = "X does/is..." (subject)

Would you like more examples?"""

CLARIFY_EXPLANATION = """I'd be happy to explain! Could you be more specific about what you'd like to know? For example:
• "What is the difference between X and Y?"
• "How do I use X?"
• "Explain X grammar point"

Feel free to ask about any Japanese grammar topic!"""

NEXT_STEPS_GENERIC = (
    "That's a great question! I'd recommend starting by enrolling in a course if you haven't already, "
    "or continuing with your current lessons. Taking quizzes regularly will also help track your progress. "
    "一緒に頑張りましょう！(Let's do our best together!)"
)

STUDY_CAPABILITIES = """I'm so happy to help you with your Japanese studies! 😊 You can ask me about:

• Japanese grammar questions
• Vocabulary and word meanings
• Translations
• Grammar corrections
• Study tips and strategies
• Any questions about Japanese language or culture

What would you like to learn about today?"""

ASK_MORE_SPECIFIC = """That's a great question! I'd love to help you understand Japanese better. Could you tell me a bit more about what you'd like to know? For example:

• "What is the difference between は and が?"
• "How do I use the て-form?"
• "Explain Japanese particles"
• "What does [word] mean?"
• "How do I say [phrase] in Japanese?"

I'm here to help with grammar, vocabulary, sentence structure, culture, and anything else about Japanese! 何でも聞いてください！(Ask me anything!)"""

GREETING = """こんにちは！(Konnichiwa!) I'm Sensei, your friendly Japanese language tutor! 🇯🇵

I'm here to help you learn Japanese in a natural, conversational way. You can ask me:

• Grammar questions (particles, verb forms, sentence structure)
• Vocabulary and word meanings
• Translations (English ↔ Japanese)
• Grammar corrections
• Cultural context
• Study tips
• Any questions about Japanese!

What would you like to learn about today? 一緒に勉強しましょう！(Let's study together!)"""

# Used by the chat route when even request parsing blows up
DEFAULT_HELP_MESSAGE = """I'm here to help you with your studies! You can ask me about:

• Japanese grammar questions
• Translations (try "Translate: [your text]")
• Grammar corrections (try "Correct this: [your sentence]")
• Your learning progress
• Next steps in your studies

How can I assist you today?"""

TE_FORM_TOKENS = ("て-form", "te-form", "te form")
I_AM_PREFIX_RE = re.compile(r"^(i am|i'm)\s+")


def _has_any(text: str, tokens) -> bool:
    return any(token in text for token in tokens)


class FallbackResponder:
    """
    Template-based replies chosen by fixed priority:
    translation dictionary, grammar topics, next steps, progress, study help,
    generic Q&A prompt, greeting.
    """

    def respond(
        self,
        context: Optional[StudentContextSnapshot],
        message: str,
        category: Optional[RequestCategory] = None,
    ) -> str:
        try:
            text = self._select(context or default_snapshot("anonymous"), message or "", category)
        except Exception as e:
            logger.error(f"Fallback template selection failed: {e}")
            text = DEFAULT_HELP_MESSAGE
        return text or GREETING

    def _select(self, context: StudentContextSnapshot, message: str, category: Optional[RequestCategory]) -> str:
        lowered = message.lower()

        if category == RequestCategory.TRANSLATION:
            return self.translate(message)

        if _has_any(lowered, TE_FORM_TOKENS):
            return TE_FORM_EXPLANATION
        if category == RequestCategory.QA:
            if "は" in lowered and "が" in lowered:
                return WA_GA_EXPLANATION
            if "difference" in lowered or "explain" in lowered:
                return CLARIFY_EXPLANATION

        if _has_any(lowered, ("next step", "what should", "recommend")):
            return self._next_steps(context)

        if "progress" in lowered or "how am i" in lowered:
            return self._progress(context)

        if "help" in lowered or "study" in lowered:
            return self._study_help(context)

        if category == RequestCategory.QA:
            return ASK_MORE_SPECIFIC

        return GREETING

    def translate(self, message: str) -> str:
        """Offline translation from a small phrase dictionary"""
        text = extract_translation_text(message)
        if detect_translation_direction(text) == "jp-en":
            return JAPANESE_TO_ENGLISH_HINT.format(text=text)

        lowered = text.lower().strip()

        if "want" in lowered and _has_any(lowered, ("go", "return")) and _has_any(lowered, ("home", "house")):
            return GO_HOME_TRANSLATION

        if lowered in COMMON_PHRASES:
            return f"Translation: {COMMON_PHRASES[lowered]}"

        if "i am" in lowered or "i'm" in lowered:
            rest = I_AM_PREFIX_RE.sub("", lowered).strip()
            if rest == "hungry":
                return HUNGRY_TRANSLATION
            if rest == "tired":
                return TIRED_TRANSLATION
            if rest == "a student" or "student" in lowered:
                return STUDENT_TRANSLATION

        if "hungry" in lowered:
            return HUNGRY_TRANSLATION

        return COMMON_PHRASES_HINT.format(text=text)

    def _next_steps(self, context: StudentContextSnapshot) -> str:
        if not context.next_steps:
            return NEXT_STEPS_GENERIC
        steps = "\n".join(f"{i}. {step}" for i, step in enumerate(context.next_steps, start=1))
        return (
            "Great question! Based on your progress, here are some recommended next steps:\n\n"
            f"{steps}\n\n"
            "Keep up the excellent work! 頑張って！(Ganbatte! - Keep it up!) 💪"
        )

    def _progress(self, context: StudentContextSnapshot) -> str:
        status = context.student_status
        summary = (
            f"You're doing wonderfully! 🌟 Your current level is {status.level} with a score of {status.score}%. "
            f"You've spent {context.learning_time.formatted} learning and completed "
            f"{context.quiz_performance.total_quizzes} quizzes."
        )
        if status.description:
            summary += f" {status.description}"
        return summary + "\n\nKeep up the great work! Every step forward is progress!"

    def _study_help(self, context: StudentContextSnapshot) -> str:
        if not context.weak_areas:
            return STUDY_CAPABILITIES
        weak = "\n".join(f"• {area}" for area in context.weak_areas)
        reply = f"I'm so glad you asked! Here are some areas we can focus on together:\n\n{weak}\n\n"
        if context.strengths:
            strong = "\n".join(f"• {s}" for s in context.strengths)
            reply += f"You're also doing really well in:\n{strong}\n\n"
        return reply + (
            "Don't worry - learning a language takes time, and I'm here to help you every step of the way! "
            "一緒に頑張りましょう！"
        )


def fallback(context: Optional[StudentContextSnapshot], message: str, category: Optional[RequestCategory]) -> str:
    """Module-level shortcut for a one-off fallback reply"""
    return FallbackResponder().respond(context, message, category)
