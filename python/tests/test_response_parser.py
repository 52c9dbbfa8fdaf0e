import pytest

from tutor_gateway.models import RequestCategory
from tutor_gateway.services.response_parser import clean_response, decode_body, extract_text


@pytest.mark.parametrize("payload,expected", [
    ([{"generated_text": " こんにちは "}], "こんにちは"),
    ([{"summary_text": "Short summary"}], "Short summary"),
    ([{"translation_text": "お腹が空きました"}], "お腹が空きました"),
    ({"generated_text": "single object"}, "single object"),
    ({"translated_text": "translated"}, "translated"),
    ({"text": "plain text field"}, "plain text field"),
    ({"output": "loose output"}, "loose output"),
    ({"result": "loose result"}, "loose result"),
    ([[{"generated_text": "double wrapped"}]], "double wrapped"),
    (["bare string in list"], "bare string in list"),
    ("just a string", "just a string"),
])
def test_extract_text_shapes(payload, expected):
    assert extract_text(payload) == expected


@pytest.mark.parametrize("payload", [
    [],
    {},
    [{}],
    {"error": "Model is loading", "estimated_time": 20},
    {"output": {"nested": "object"}},
    {"generated_text": "   "},
    "",
    None,
    42,
])
def test_extract_text_unusable_payloads(payload):
    assert extract_text(payload) is None


def test_decode_body_tolerates_non_json():
    assert decode_body('[{"generated_text": "hi"}]') == [{"generated_text": "hi"}]
    assert decode_body("<html>Bad gateway</html>") == "<html>Bad gateway</html>"


def test_clean_response_cuts_chatml_end_marker():
    text = "Use は for topics.<|im_end|>\n<|im_start|>user\nmore"
    assert clean_response(text, RequestCategory.QA, "what is は") == "Use は for topics."


def test_clean_response_keeps_text_after_last_assistant_cue():
    text = "Student: hi\nSensei: first\nSensei: The answer is 家."
    assert clean_response(text, RequestCategory.QA, "unrelated") == "The answer is 家."


def test_clean_response_drops_invented_student_turn():
    text = "です is polite.\n学生: ありがとう"
    assert clean_response(text, RequestCategory.GRAMMAR, "x") == "です is polite."


def test_clean_response_removes_echoed_message():
    text = "What is て-form? It connects verbs."
    assert clean_response(text, RequestCategory.QA, "What is て-form?") == "It connects verbs."


def test_clean_response_keeps_translation_echo_for_validation():
    assert clean_response("cat", RequestCategory.TRANSLATION, "cat") == "cat"


def test_clean_response_empty():
    assert clean_response(None, RequestCategory.QA, "hi") == ""
    assert clean_response("", RequestCategory.QA, "hi") == ""
