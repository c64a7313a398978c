"""
Turns uploaded notes files into chapter/unit records.

For every (subject, slot) pair that has a file: store the file, extract its
text, generate a summary and a quiz, and sanitize the quiz. Subjects and
slots are processed concurrently and the results awaited together.
"""
import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from errors import UpstreamError
from extractor import ExtractionError, extract_text
from generator import GenerationMode, generate_content
from sanitizer import parse_quiz
from schemas import ContainerKind
from storage import slugify, timestamped_name, upload_file

log = logging.getLogger(__name__)

EXTRACTION_PLACEHOLDER = "Text extraction failed."


def file_field(subject_index: int, slot_index: int) -> str:
    return f"notes-file-{subject_index}-{slot_index}"


def folder_for(kind: ContainerKind, key: Mapping[str, str]) -> str:
    return f"{kind.folder_prefix}/{slugify('-'.join(key[f] for f in kind.key_fields))}"


def item_number(value: Any) -> Optional[int]:
    """Ints, integral floats and integer strings; None for anything else, bools included."""
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def store_notes(
    kind: ContainerKind, key: Mapping[str, str], subject: str, number: int, data: bytes
) -> Dict[str, str]:
    name = timestamped_name(subject, kind.item_label, number)
    try:
        result = await asyncio.to_thread(upload_file, data, folder_for(kind, key), name)
    except Exception as e:
        log.error("Upload failed for %s %s %s: %s", subject, kind.item_label, number, e)
        raise UpstreamError("Error saving notes file", f"Upload failed: {e}") from e

    if not result or not result.get("url") or not result.get("public_id"):
        raise UpstreamError("Error saving notes file", f"Invalid upload result for {subject} {kind.item_label} {number}")
    return result


async def read_text(data: bytes, label: str) -> str:
    try:
        return await asyncio.to_thread(extract_text, data)
    except ExtractionError as e:
        log.warning("Failed to extract text from PDF for %s: %s", label, e)
        return EXTRACTION_PLACEHOLDER


async def build_item(
    kind: ContainerKind, key: Mapping[str, str], subject: str, number: int, data: bytes
) -> dict:
    label = f"{subject} {kind.item_label} {number}"
    stored = await store_notes(kind, key, subject, number, data)
    text = await read_text(data, label)
    summary, quiz_text = await asyncio.gather(
        generate_content(text, GenerationMode.SUMMARY),
        generate_content(text, GenerationMode.QUIZ),
    )
    item = kind.item_model.model_validate({
        kind.number_field: number,
        "notesFileUrl": stored["url"],
        "publicId": stored["public_id"],
        "summary": summary,
        "quiz": parse_quiz(quiz_text),
    })
    return item.model_dump(by_alias=True)


async def _process_subject(
    kind: ContainerKind,
    key: Mapping[str, str],
    subject: Any,
    subject_index: int,
    files: Mapping[str, bytes],
) -> Optional[dict]:
    name = subject.get("name") if isinstance(subject, dict) else None
    slots = subject.get(kind.item_field) if isinstance(subject, dict) else None
    if not isinstance(name, str) or not name.strip() or not slots or not isinstance(slots, list):
        log.warning("Skipping subject %r due to missing name or %s", name, kind.item_field)
        return None
    name = name.strip()

    async def process_slot(slot_index: int, slot: Any) -> Optional[dict]:
        number = slot.get(kind.number_field) if isinstance(slot, dict) else None
        data = files.get(file_field(subject_index, slot_index))
        if data is None:
            log.warning("Skipping %s %s in %s due to missing file", kind.item_label, number, name)
            return None
        parsed = item_number(number)
        if parsed is None:
            log.warning("Skipping %s in %s due to invalid number %r", kind.item_label, name, number)
            return None
        return await build_item(kind, key, name, parsed, data)

    items = await asyncio.gather(*(process_slot(j, slot) for j, slot in enumerate(slots)))
    items = [i for i in items if i is not None]
    if not items:
        log.warning("No valid %s for subject %s", kind.item_field, name)
        return None
    return {"name": name, kind.item_field: items}


async def process_subjects(
    kind: ContainerKind,
    key: Mapping[str, str],
    subjects: List[Any],
    files: Mapping[str, bytes],
) -> List[dict]:
    """Build subject records from the submitted slots; subjects left empty are dropped."""
    processed = await asyncio.gather(
        *(_process_subject(kind, key, s, i, files) for i, s in enumerate(subjects))
    )
    return [s for s in processed if s is not None]
