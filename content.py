"""
Exam / course document store.

One root document per container key (an exam name, or a year + branch
pair) owns its subjects, and each subject owns its chapters/units. Every
mutation loads the root document, changes it in memory and saves the whole
aggregate back with a version check.
"""
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import activity
import database
from errors import NotFoundError, ValidationError
from extractor import ExtractionError, extract_text
from generator import SUMMARY_FALLBACK, GenerationMode, generate_content
from pipeline import item_number, store_notes
from sanitizer import validate_quiz
from schemas import ContainerKind
from storage import delete_file

log = logging.getLogger(__name__)


def container_key(kind: ContainerKind, values: Mapping[str, Any]) -> Dict[str, str]:
    """Pick the container key fields out of request values; 400 if any is blank."""
    key = {}
    for field in kind.key_fields:
        value = values.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"Missing required fields: {', '.join(kind.key_fields)}")
        key[field] = value.strip()
    return key


def parse_number(value: Any, kind: ContainerKind) -> int:
    if value is None or value == "":
        raise ValidationError(f"Missing required fields: {', '.join(kind.scope_fields)}")
    number = item_number(value)
    if number is None:
        raise ValidationError(f"Invalid {kind.number_field}: {value}")
    return number


def ensure_indexes(kind: ContainerKind):
    database.ensure_unique_index(kind.collection, kind.key_fields)


def describe(kind: ContainerKind, key: Mapping[str, str]) -> str:
    return " ".join(key[f] for f in kind.key_fields)


# ---------- Create / merge ----------

def merge_subjects(kind: ContainerKind, document: dict, subjects: List[dict]):
    """Merge processed subjects into `document` in place.

    Subjects are matched by name and items by number: existing numbers are
    overwritten, new numbers appended, unknown subjects added. Repeats within
    `subjects` collapse the same way, so the later entry wins and names and
    numbers stay unique.
    """
    existing_subjects = document.setdefault("subjects", [])
    for new_subject in subjects:
        existing = next((s for s in existing_subjects if s.get("name") == new_subject["name"]), None)
        if existing is None:
            existing = {**new_subject, kind.item_field: []}
            existing_subjects.append(existing)

        items = existing.setdefault(kind.item_field, [])
        for new_item in new_subject[kind.item_field]:
            number = new_item[kind.number_field]
            current = next((i for i in items if i.get(kind.number_field) == number), None)
            if current is None:
                items.append(new_item)
            else:
                current["notesFileUrl"] = new_item["notesFileUrl"]
                current["publicId"] = new_item["publicId"]
                current["summary"] = new_item["summary"]
                current["quiz"] = new_item["quiz"]


def create_or_merge(kind: ContainerKind, key: Mapping[str, str], subjects: List[dict]) -> Tuple[dict, bool]:
    """Persist processed subjects under `key`. Returns (document, created)."""
    existing = database.find_document(kind.collection, dict(key))
    if existing is not None:
        merge_subjects(kind, existing, subjects)
        return database.save_document(kind.collection, existing), False

    document = {**key, "subjects": []}
    merge_subjects(kind, document, subjects)
    document = kind.document_model.model_validate(document).model_dump(by_alias=True)
    return database.save_document(kind.collection, document), True


# ---------- Read ----------

def _items_matching(kind: ContainerKind, subject: dict, number: Optional[int]) -> List[dict]:
    items = subject.get(kind.item_field, [])
    if number is None:
        return items
    return [i for i in items if i.get(kind.number_field) == number]


def find_content(
    kind: ContainerKind,
    key_filter: Mapping[str, Optional[str]],
    subject: Optional[str] = None,
    number: Optional[int] = None,
    quiz_only: bool = False,
    skip: int = 0,
    limit: Optional[int] = None,
) -> Dict[str, list]:
    """
    Query root documents by whichever key fields are given.

    With `quiz_only`, returns {"quizzes": [...]} with one entry per matching
    item that has a quiz. Otherwise returns {"<kind>s": [...]} with subjects
    (and items) narrowed when `subject` (and `number`) are given.
    """
    query = {f: v for f, v in key_filter.items() if v}
    documents = database.get_documents(kind.collection, query, sort=[("_id", 1)], skip=skip, limit=limit)

    if quiz_only:
        quizzes = []
        for doc in documents:
            for subj in doc.get("subjects", []):
                if subject and subj.get("name") != subject:
                    continue
                for item in _items_matching(kind, subj, number):
                    if item.get("quiz"):
                        entry = {kind.id_field: database.id_str(doc)}
                        entry.update({f: doc.get(f) for f in kind.key_fields})
                        entry.update({
                            "subjectName": subj.get("name"),
                            kind.number_field: item.get(kind.number_field),
                            "quiz": item["quiz"],
                            "summary": item.get("summary"),
                        })
                        quizzes.append(entry)
        return {"quizzes": quizzes}

    if subject:
        narrowed = []
        for doc in documents:
            subjects = [
                {**s, kind.item_field: _items_matching(kind, s, number)}
                for s in doc.get("subjects", [])
                if s.get("name") == subject
            ]
            narrowed.append({**doc, "subjects": subjects})
        documents = narrowed

    return {f"{kind.name}s": [database.serialize_document(d) for d in documents]}


# ---------- Locate ----------

def load_item(kind: ContainerKind, key: Mapping[str, str], subject: str, number: int) -> Tuple[dict, dict, int]:
    """Return (document, subject, item index); NotFoundError names the missing level."""
    document = database.find_document(kind.collection, dict(key))
    if document is None:
        raise NotFoundError(f"{kind.name.capitalize()} '{describe(kind, key)}' not found")

    subject_data = next((s for s in document.get("subjects", []) if s.get("name") == subject), None)
    if subject_data is None:
        raise NotFoundError(f"Subject '{subject}' not found")

    items = subject_data.get(kind.item_field, [])
    index = next((i for i, item in enumerate(items) if item.get(kind.number_field) == number), -1)
    if index == -1:
        raise NotFoundError(f"{kind.item_label.capitalize()} {number} not found")
    return document, subject_data, index


def get_quiz(kind: ContainerKind, key: Mapping[str, str], subject: str, number: int) -> List[dict]:
    _, subject_data, index = load_item(kind, key, subject, number)
    return subject_data[kind.item_field][index].get("quiz", [])


# ---------- Update ----------

async def _summary_from(data: bytes) -> str:
    try:
        text = await asyncio.to_thread(extract_text, data)
    except ExtractionError as e:
        log.warning("Failed to regenerate summary: %s", e)
        return SUMMARY_FALLBACK
    return await generate_content(text, GenerationMode.SUMMARY)


async def _discard_file(public_id: str, reason: str):
    try:
        await asyncio.to_thread(delete_file, public_id)
    except Exception as e:
        log.warning("Failed to delete %s notes file %s: %s", reason, public_id, e)


async def update_item(
    kind: ContainerKind,
    key: Mapping[str, str],
    subject: str,
    number: int,
    notes_file: Optional[bytes] = None,
    quiz_json: Optional[str] = None,
) -> dict:
    """Replace an item's notes file (regenerating its summary) and/or its quiz.

    The old file is removed only after the document is saved; if the save
    fails the new upload is removed instead.
    """
    quiz = validate_quiz(quiz_json) if quiz_json else None

    document, subject_data, index = await asyncio.to_thread(load_item, kind, key, subject, number)
    item = subject_data[kind.item_field][index]

    old_public_id = None
    new_public_id = None
    if notes_file is not None:
        stored = await store_notes(kind, key, subject, number, notes_file)
        old_public_id = item.get("publicId")
        new_public_id = stored["public_id"]
        item["notesFileUrl"] = stored["url"]
        item["publicId"] = new_public_id

    if quiz is not None:
        item["quiz"] = quiz

    try:
        if notes_file is not None:
            item["summary"] = await _summary_from(notes_file)
        await asyncio.to_thread(database.save_document, kind.collection, document)
    except Exception:
        if new_public_id:
            await _discard_file(new_public_id, "unsaved")
        raise

    if old_public_id:
        await _discard_file(old_public_id, "old")
    return database.serialize_document(item)


# ---------- Delete ----------

async def delete_item(kind: ContainerKind, key: Mapping[str, str], subject: str, number: int):
    """Remove an item; once that is saved, best-effort clean up its file and its activity records."""
    document, subject_data, index = await asyncio.to_thread(load_item, kind, key, subject, number)
    item = subject_data[kind.item_field].pop(index)
    await asyncio.to_thread(database.save_document, kind.collection, document)

    public_id = item.get("publicId")
    if public_id:
        await _discard_file(public_id, "deleted")

    scope = {**key, "subject": subject, kind.number_field: number}
    try:
        deleted = await asyncio.to_thread(activity.delete_for_scope, kind, scope)
        log.info("Deleted %d student activity records for %s", deleted, scope)
    except Exception as e:
        log.warning("Failed to delete student activity records for %s: %s", scope, e)
