import json

import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import content
import database
import generator
import pipeline

GENERATED_QUIZ = {
    "quiz": [
        {"question": "What is the capital of France?", "options": ["Paris", "Madrid"], "answer": "Paris"},
        {"question": "What is the capital of Spain?", "options": ["Paris", "Madrid"], "answer": "Madrid"},
        {"question": "", "options": ["only one"], "answer": "only one"},
    ]
}


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient()["exam_portal_test"]
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def uploads(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def model_calls(monkeypatch):
    """Replace Gemini with canned responses; returns the list of prompts sent."""
    calls = []

    async def fake_call(prompt):
        calls.append(prompt)
        if prompt.startswith(generator.SUMMARY_PROMPT):
            return "A short summary."
        return "Here is your quiz:\n```json\n" + json.dumps(GENERATED_QUIZ) + "\n```"

    monkeypatch.setattr(generator, "_call_model", fake_call)
    return calls


@pytest.fixture
def plain_text_pdfs(monkeypatch):
    """Treat uploaded bytes as already-extracted text."""
    monkeypatch.setattr(pipeline, "extract_text", lambda data: data.decode())
    monkeypatch.setattr(content, "extract_text", lambda data: data.decode())


@pytest.fixture
def client(mongo, uploads, model_calls, plain_text_pdfs):
    import main
    return TestClient(main.app)
