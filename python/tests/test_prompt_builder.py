import pytest

from tutor_gateway.models import ConversationTurn, RequestCategory
from tutor_gateway.services.prompt_builder import (
    PromptBuilder,
    build_context_prompt,
    detect_translation_direction,
    extract_translation_text,
    provider_family,
    recent_turns,
)
from tutor_gateway.services.student_context_service import aggregate, default_snapshot


@pytest.mark.parametrize("message,expected", [
    ("Translate: I am hungry", "I am hungry"),
    ("translate good morning", "good morning"),
    ("Translation: おはよう", "おはよう"),
    ("How do you say thank you?", "thank you"),
    ("how do you say ありがとう？", "ありがとう"),
    ("  cat  ", "cat"),
])
def test_extract_translation_text(message, expected):
    assert extract_translation_text(message) == expected


@pytest.mark.parametrize("message", [
    "Translate: I am hungry",
    "How do you say thank you?",
    "Translation: 家に帰りたいです",
    "translate translate: twice",
])
def test_extract_translation_text_is_idempotent(message):
    once = extract_translation_text(message)
    assert extract_translation_text(once) == once


@pytest.mark.parametrize("text,direction", [
    ("I am hungry", "en-jp"),
    ("ひらがな", "jp-en"),
    ("カタカナ", "jp-en"),
    ("漢字", "jp-en"),
    ("Konnichiwa means こんにちは", "jp-en"),
    ("", "en-jp"),
])
def test_detect_translation_direction(text, direction):
    assert detect_translation_direction(text) == direction


@pytest.mark.parametrize("identifier,family", [
    ("Qwen/Qwen2.5-7B-Instruct", "chatml"),
    ("elyza/ELYZA-japanese-Llama-2-7b-fast-instruct", "japanese"),
    ("rinna/youri-7b-instruction", "japanese"),
    ("google/pegasus-xsum", "seq2seq"),
    ("facebook/bart-large-cnn", "seq2seq"),
    ("gpt2", "plain"),
    (None, "plain"),
])
def test_provider_family(identifier, family):
    assert provider_family(identifier) == family


def _history(n):
    return [
        ConversationTurn(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
        for i in range(n)
    ]


def test_recent_turns_keeps_last_ten_without_mutating():
    history = _history(14)
    turns = recent_turns(history)
    assert [t.content for t in turns] == [f"turn {i}" for i in range(4, 14)]
    assert len(history) == 14


def test_chatml_prompt_has_system_history_and_open_assistant_turn():
    builder = PromptBuilder()
    prompt = builder.build(
        RequestCategory.QA, "CONTEXT", "What is は?", _history(2),
        provider_identifier="Qwen/Qwen2.5-7B-Instruct",
    )
    assert prompt.startswith("<|im_start|>system\nCONTEXT")
    assert "<|im_start|>user\nturn 0<|im_end|>" in prompt
    assert "<|im_start|>assistant\nturn 1<|im_end|>" in prompt
    assert prompt.endswith("<|im_start|>user\nWhat is は?<|im_end|>\n<|im_start|>assistant\n")


def test_history_beyond_ten_turns_is_not_sent():
    prompt = PromptBuilder().build(
        RequestCategory.QA, "CONTEXT", "hi", _history(12), provider_identifier="gpt2",
    )
    assert "turn 0" not in prompt and "turn 1\n" not in prompt
    assert "turn 2" in prompt and "turn 11" in prompt


def test_japanese_family_uses_japanese_role_labels():
    prompt = PromptBuilder().build(
        RequestCategory.GRAMMAR, "CONTEXT", "私は学生です", _history(2),
        provider_identifier="rinna/japanese-gpt-neox-3.6b-instruction-sft",
    )
    assert "学生: turn 0" in prompt
    assert "先生: turn 1" in prompt
    assert prompt.endswith("学生: 私は学生です\n\n先生:")
    assert "CONTEXT" not in prompt


def test_plain_family_uses_sensei_labels():
    prompt = PromptBuilder().build(RequestCategory.QA, "CONTEXT", "hello", [], provider_identifier="gpt2")
    assert prompt.startswith("CONTEXT")
    assert prompt.endswith("Student: hello\n\nSensei:")


def test_summarizer_gets_raw_text():
    prompt = PromptBuilder().build(
        RequestCategory.SUMMARIZATION, "CONTEXT", "Long text here", _history(4),
        provider_identifier="google/pegasus-xsum",
    )
    assert prompt == "Long text here"


def test_dedicated_translation_model_gets_bare_span():
    prompt = PromptBuilder().build(
        RequestCategory.TRANSLATION, "CONTEXT", "Translate: I am hungry",
        provider_identifier="staka/fugumt-en-ja", provider_direction="en-jp",
    )
    assert prompt == "I am hungry"


def test_general_model_translation_names_direction():
    prompt = PromptBuilder().build(
        RequestCategory.TRANSLATION, "CONTEXT", "Translate: おはよう",
        provider_identifier="Qwen/Qwen2.5-7B-Instruct",
    )
    assert "Japanese text into natural English" in prompt
    assert prompt.endswith("おはよう")


def test_context_prompt_includes_student_details(sample_records):
    text = build_context_prompt(aggregate(sample_records))
    assert "Name: Aiko Tanaka" in text
    assert "Study Time: 3h 25m" in text
    assert "- Japanese 101" in text
    assert "Sensei" in text


def test_context_prompt_for_default_snapshot():
    text = build_context_prompt(default_snapshot("anon"))
    assert "Not enrolled in any courses yet." in text
    assert "Current Level: Beginner" in text
