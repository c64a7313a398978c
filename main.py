import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile

import activity
import config
import content
import database
from errors import AppError, ValidationError, app_error_handler, handler_boundary
from pipeline import item_number, process_subjects
from schemas import COURSE, EXAM, ContainerKind

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s  %(levelname)s  %(message)s")
log = logging.getLogger("exam_portal")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            for kind in (EXAM, COURSE):
                content.ensure_indexes(kind)
        except Exception as e:
            log.warning("Could not create indexes: %s", e)
    yield


app = FastAPI(title="Exam Portal API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(AppError, app_error_handler)
app.mount(config.UPLOAD_URL_PREFIX, StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


# ---------- Helpers ----------

def _optional_int(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    number = item_number(value)
    if number is None:
        raise ValidationError(f"Invalid {name}: {value}")
    return number


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


async def _form_files(form) -> Dict[str, bytes]:
    return {name: await value.read() for name, value in form.multi_items() if isinstance(value, UploadFile)}


def _form_text(form, name: str) -> Optional[str]:
    value = form.get(name)
    return value if isinstance(value, str) else None


def _jsonable(value):
    return jsonable_encoder(database.serialize_document(value))


# ---------- Content routes ----------

def content_router(kind: ContainerKind) -> APIRouter:
    router = APIRouter(prefix=f"/api/{kind.name}", tags=[kind.name.capitalize()])
    title = kind.name.capitalize()

    @router.post("")
    async def create_content(request: Request):
        with handler_boundary(f"Error saving {kind.name}"):
            form = await request.form()
            key = content.container_key(kind, {f: _form_text(form, f) for f in kind.key_fields})
            try:
                subjects = json.loads(_form_text(form, "subjects") or "")
            except ValueError:
                subjects = None
            if not isinstance(subjects, list) or not subjects:
                raise ValidationError(f"Missing required fields: {', '.join(kind.key_fields)} or subjects")

            processed = await process_subjects(kind, key, subjects, await _form_files(form))
            if not processed:
                raise ValidationError("No valid subjects provided")

            document, created = await asyncio.to_thread(content.create_or_merge, kind, key, processed)
            if created:
                message, status = f"{title} added successfully!", 201
            else:
                message, status = f"Subjects and {kind.item_field} added to existing {kind.name}!", 200
            return JSONResponse(
                status_code=status,
                content={"message": message, kind.name: _jsonable(document)},
            )

    @router.get("")
    async def read_content(request: Request):
        with handler_boundary(f"Error fetching {kind.name}s"):
            params = request.query_params
            return await asyncio.to_thread(
                content.find_content,
                kind,
                {f: params.get(f) for f in kind.key_fields},
                subject=params.get("subject") or None,
                number=_optional_int(params.get(kind.number_field), kind.number_field),
                quiz_only=params.get("quizOnly") == "true",
                skip=_optional_int(params.get("skip"), "skip") or 0,
                limit=_optional_int(params.get("limit"), "limit"),
            )

    @router.put("")
    async def update_content(request: Request):
        with handler_boundary(f"Error updating {kind.item_label}"):
            form = await request.form()
            key = content.container_key(kind, {f: _form_text(form, f) for f in kind.key_fields})
            subject = _form_text(form, "subject")
            if not subject:
                raise ValidationError(f"Missing required fields: {', '.join(kind.scope_fields)}")
            number = content.parse_number(_form_text(form, kind.number_field), kind)

            notes_file = form.get("notesFile")
            notes_bytes = await notes_file.read() if isinstance(notes_file, UploadFile) else None

            item = await content.update_item(
                kind, key, subject, number,
                notes_file=notes_bytes,
                quiz_json=_form_text(form, "quiz") or None,
            )
            return {"message": f"{kind.item_label.capitalize()} updated successfully", kind.item_label: item}

    @router.delete("")
    async def delete_content(request: Request):
        with handler_boundary(f"Error deleting {kind.item_label}"):
            body = await _json_body(request)
            key = content.container_key(kind, body)
            subject = body.get("subject")
            if not isinstance(subject, str) or not subject:
                raise ValidationError(f"Missing required fields: {', '.join(kind.scope_fields)}")
            number = content.parse_number(body.get(kind.number_field), kind)

            await content.delete_item(kind, key, subject, number)
            return {"message": f"{kind.item_label.capitalize()} deleted successfully"}

    return router


# ---------- Activity routes ----------

def activity_router(kind: ContainerKind, prefix: str) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=["Student activity"])

    @router.post("")
    async def log_activity(request: Request):
        with handler_boundary("Error logging activity"):
            body = await _json_body(request)
            record = await asyncio.to_thread(activity.append, kind, body)
            return JSONResponse(
                status_code=201,
                content={"message": "Activity logged successfully", "activity": _jsonable(record)},
            )

    @router.get("")
    async def list_activities(request: Request):
        with handler_boundary("Error fetching activities"):
            params = request.query_params
            records = await asyncio.to_thread(
                activity.query,
                kind,
                user_id=params.get("userId") or None,
                is_admin=params.get("isAdmin") == "true",
                search=params.get("search") or None,
            )
            return {"activities": records}

    @router.post("/submit")
    async def submit_quiz(request: Request):
        with handler_boundary("Error submitting quiz"):
            body = await _json_body(request)
            key = content.container_key(kind, body)
            subject = body.get("subject")
            if not isinstance(subject, str) or not subject:
                raise ValidationError("Missing required fields", "subject")
            number = content.parse_number(body.get(kind.number_field), kind)

            quiz = await asyncio.to_thread(content.get_quiz, kind, key, subject, number)
            submission = {**body, **key, kind.number_field: number}
            record = await asyncio.to_thread(activity.submit_quiz, kind, submission, quiz)
            return JSONResponse(
                status_code=201,
                content={"message": "Quiz submitted successfully", "activity": _jsonable(record)},
            )

    return router


app.include_router(content_router(EXAM))
app.include_router(content_router(COURSE))
app.include_router(activity_router(EXAM, "/api/student-activity-exam"))
app.include_router(activity_router(COURSE, "/api/student-activity"))


# ---------- Routes ----------
@app.get("/")
def root():
    return {"message": "Exam Portal Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
        "generation": "✅ Key Set" if config.GEMINI_API_KEY else "⚠️ No GEMINI_API_KEY (fallback content only)",
        "upload_dir": os.path.abspath(config.UPLOAD_DIR),
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if config.DATABASE_URL else "❌ Not Set"
            response["database_name"] = getattr(database.db, "name", None) or ("✅ Set" if config.DATABASE_NAME else "❌ Not Set")
            try:
                response["collections"] = database.db.list_collection_names()
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
            except Exception as e:
                response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
