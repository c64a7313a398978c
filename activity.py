"""
Student activity log.

Append-only: one record per notes view or quiz submission. Records only
reference content through denormalized scope fields; the only deletion path
is the cleanup that runs when the referenced chapter/unit is deleted.
"""
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

import database
from errors import UnauthorizedError, ValidationError
from schemas import ActivityType, ContainerKind

log = logging.getLogger(__name__)

IDENTITY_FIELDS = ("userId", "userName")


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def append(kind: ContainerKind, body: Mapping[str, Any]) -> dict:
    """Validate and store one activity record; returns the stored record."""
    required = IDENTITY_FIELDS + kind.scope_fields + ("activityType",)
    missing = [f for f in required if _missing(body.get(f))]
    if missing:
        log.warning("Missing required fields in student activity request: %s", missing)
        raise ValidationError("Missing required fields", ", ".join(missing))

    activity_type = body.get("activityType")
    if activity_type not in {t.value for t in ActivityType}:
        log.warning("Invalid activity type: %r", activity_type)
        raise ValidationError("Invalid activity type")

    record = {f: body.get(f) for f in required}
    if activity_type == ActivityType.QUIZ_SUBMISSION:
        if body.get("quizResult") is None:
            raise ValidationError("Missing required fields", "quizResult is required for quiz_submission")
        record["quizResult"] = body["quizResult"]

    try:
        model = kind.activity_model.model_validate(record)
    except PydanticValidationError as e:
        raise ValidationError("Invalid activity fields", str(e)) from e

    document = model.model_dump(by_alias=True, mode="python", exclude_none=True)
    document["activityType"] = model.activity_type.value
    document["_id"] = database.create_document(kind.activity_collection, document)

    log.info(
        "Activity logged: user=%s %s=%s type=%s",
        document["userId"], kind.number_field, document[kind.number_field], document["activityType"],
    )
    return database.serialize_document(document)


def query(
    kind: ContainerKind,
    user_id: Optional[str],
    is_admin: bool,
    search: Optional[str] = None,
) -> List[dict]:
    """Admins see everything, everyone else only their own records. Newest first."""
    if not is_admin and not user_id:
        log.warning("Unauthorized access attempt: no userId or admin access")
        raise UnauthorizedError("Unauthorized: userId or admin access required")

    filter_dict: Dict[str, Any] = {}
    if not is_admin:
        filter_dict["userId"] = user_id
    if search:
        filter_dict["userName"] = {"$regex": re.escape(search), "$options": "i"}

    records = database.get_documents(kind.activity_collection, filter_dict, sort=[("timestamp", -1)])
    return [database.serialize_document(r) for r in records]


def delete_for_scope(kind: ContainerKind, scope: Mapping[str, Any]) -> int:
    return database.delete_documents(kind.activity_collection, dict(scope))


def score_quiz(quiz: List[Mapping[str, Any]], answers: Mapping[str, str]) -> Dict[str, Any]:
    """Count the questions whose answer at str(index) matches the correct one."""
    score = sum(1 for i, q in enumerate(quiz) if answers.get(str(i)) == q.get("answer"))
    return {"score": score, "totalQuestions": len(quiz), "answers": dict(answers)}


def submit_quiz(kind: ContainerKind, body: Mapping[str, Any], quiz: List[Mapping[str, Any]]) -> dict:
    """Score `answers` from the request against `quiz` and log the submission."""
    answers = body.get("answers") or {}
    if not isinstance(answers, dict) or not all(isinstance(v, str) for v in answers.values()):
        raise ValidationError("Invalid answers", "answers must map question index to answer text")

    record = dict(body)
    record.pop("answers", None)
    record["activityType"] = ActivityType.QUIZ_SUBMISSION.value
    record["quizResult"] = score_quiz(quiz, {str(k): v for k, v in answers.items()})
    return append(kind, record)
