import json

import pytest

from errors import ValidationError
from sanitizer import clean_quiz_text, parse_quiz, validate_quiz

VALID = [
    {"question": "2 + 2?", "options": ["3", "4"], "answer": "4"},
    {"question": "Largest planet?", "options": ["Mars", "Jupiter", "Venus"], "answer": "Jupiter"},
]


def test_strips_code_fences_and_surrounding_prose():
    raw = "Sure! Here it is:\n```json\n" + json.dumps({"quiz": VALID}) + "\n```\nGood luck."
    assert parse_quiz(raw) == VALID


def test_clean_quiz_text_slices_first_to_last_brace():
    assert clean_quiz_text('noise {"a": {"b": 1}} trailing') == '{"a": {"b": 1}}'


def test_already_clean_quiz_is_unchanged():
    raw = json.dumps({"quiz": VALID})
    first = parse_quiz(raw)
    assert first == VALID
    assert parse_quiz(json.dumps({"quiz": first})) == first


@pytest.mark.parametrize("raw", [
    "",
    "no json here",
    "{ not valid json }",
    "```json\n{\"quiz\": [\n```",
    "[1, 2, 3]",
    "}{",
])
def test_unparseable_input_gives_empty_list(raw):
    assert parse_quiz(raw) == []


@pytest.mark.parametrize("payload", [{}, {"quiz": "nope"}, {"quiz": None}, {"questions": VALID}])
def test_missing_or_non_list_quiz_gives_empty_list(payload):
    assert parse_quiz(json.dumps(payload)) == []


def test_malformed_entries_are_dropped():
    entries = VALID + [
        {"question": "", "options": ["a", "b"], "answer": "a"},
        {"question": "One option", "options": ["a"], "answer": "a"},
        {"question": "No answer", "options": ["a", "b"], "answer": ""},
        {"question": "Numeric answer", "options": ["1", "2"], "answer": 1},
        {"question": "Options not a list", "options": "a,b", "answer": "a"},
        "just a string",
    ]
    result = parse_quiz(json.dumps({"quiz": entries}))
    assert result == VALID
    for q in result:
        assert q["question"] and q["answer"] and len(q["options"]) >= 2


def test_answer_outside_options_is_kept():
    entry = {"question": "Q?", "options": ["a", "b"], "answer": "c"}
    assert parse_quiz(json.dumps({"quiz": [entry]})) == [entry]


def test_validate_quiz_accepts_valid_list():
    assert validate_quiz(json.dumps(VALID)) == VALID


@pytest.mark.parametrize("quiz_json", [
    "not json",
    json.dumps({"quiz": VALID}),
    json.dumps(VALID + [{"question": "Bad", "options": ["only"], "answer": "only"}]),
    json.dumps([{"question": "No answer", "options": ["a", "b"]}]),
])
def test_validate_quiz_rejects_whole_update(quiz_json):
    with pytest.raises(ValidationError) as exc:
        validate_quiz(quiz_json)
    assert exc.value.message == "Invalid quiz data format"
    assert exc.value.status_code == 400
