"""
Quiz JSON cleanup and validation.

`parse_quiz` is lenient: it is applied to model output and silently drops
anything that does not look like a question. `validate_quiz` is strict: it
is applied to quizzes edited by an admin and rejects the whole list if any
entry is malformed.
"""
import json
import logging
from typing import Any, List

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from schemas import QuizQuestion

log = logging.getLogger(__name__)

_quiz_list = TypeAdapter(List[QuizQuestion])


def clean_quiz_text(raw: str) -> str:
    cleaned = raw.replace("```json", "").replace("```", "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start >= 0 and end > start:
        cleaned = cleaned[start:end]
    return cleaned


def is_valid_question(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    question = item.get("question")
    options = item.get("options")
    answer = item.get("answer")
    return (
        isinstance(question, str) and bool(question)
        and isinstance(options, list) and len(options) >= 2
        and all(isinstance(o, str) for o in options)
        and isinstance(answer, str) and bool(answer)
    )


def parse_quiz(raw: str) -> List[dict]:
    """Extract valid questions from generated text. Never raises."""
    try:
        data = json.loads(clean_quiz_text(raw))
    except (TypeError, ValueError) as e:
        log.warning("Error parsing quiz data: %s", e)
        return []

    if not isinstance(data, dict) or not isinstance(data.get("quiz"), list):
        return []

    return [
        {"question": item["question"], "options": item["options"], "answer": item["answer"]}
        for item in data["quiz"]
        if is_valid_question(item)
    ]


def validate_quiz(quiz_json: str) -> List[dict]:
    """Parse a replacement quiz (a JSON array); raise ValidationError on any bad entry."""
    try:
        data = json.loads(quiz_json)
    except (TypeError, ValueError) as e:
        raise ValidationError("Invalid quiz data format", str(e)) from e

    if not isinstance(data, list):
        raise ValidationError("Invalid quiz data format", "quiz must be a JSON array")

    try:
        questions = _quiz_list.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError("Invalid quiz data format", str(e)) from e

    return [q.model_dump() for q in questions]
