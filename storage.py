"""
Notes file storage.

Files are written below UPLOAD_DIR and served by the app under
UPLOAD_URL_PREFIX. A stored file is identified by its public id, the path
relative to UPLOAD_DIR without extension.
"""
import logging
import os
import re
import time
from typing import Dict

import config

log = logging.getLogger(__name__)

PDF_EXTENSION = ".pdf"


def slugify(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip()).lower()


def timestamped_name(subject: str, item_label: str, number: int) -> str:
    return f"{slugify(subject)}-{item_label}-{number}-{int(time.time() * 1000)}"


def _path_for(public_id: str) -> str:
    root = os.path.abspath(config.UPLOAD_DIR)
    path = os.path.abspath(os.path.join(root, public_id + PDF_EXTENSION))
    if os.path.commonpath([root, path]) != root:
        raise ValueError(f"Invalid public id: {public_id}")
    return path


def upload_file(data: bytes, folder: str, file_name: str) -> Dict[str, str]:
    """Store `data` and return {"url", "public_id"}."""
    public_id = f"{folder}/{file_name}"
    path = _path_for(public_id)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    log.info("Stored notes file %s (%d bytes)", public_id, len(data))
    return {
        "url": f"{config.UPLOAD_URL_PREFIX}/{public_id}{PDF_EXTENSION}",
        "public_id": public_id,
    }


def delete_file(public_id: str):
    """Remove a stored file. Raises FileNotFoundError if it is already gone."""
    os.remove(_path_for(public_id))
    log.info("Deleted notes file %s", public_id)
