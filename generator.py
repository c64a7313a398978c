"""
Summary and quiz generation with Gemini.

Input text is split into fixed-size chunks, one request per chunk, all
issued concurrently. Any failure replaces the whole result with a static
fallback so content creation never aborts because generation failed.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import List, Optional

import google.generativeai as genai

import config

log = logging.getLogger(__name__)


class GenerationMode(str, Enum):
    SUMMARY = "summary"
    QUIZ = "quiz"


SUMMARY_FALLBACK = "Summary generation failed."

QUIZ_FALLBACK = json.dumps({
    "quiz": [
        {
            "question": "What is the capital of France?",
            "options": ["Berlin", "Madrid", "Paris", "Rome"],
            "answer": "Paris",
        }
    ]
})

QUIZ_PROMPT = """Generate a multiple-choice quiz from this content in JSON format like this:
{
  "quiz": [
    {
      "question": "What is the capital of France?",
      "options": ["Berlin", "Madrid", "Paris", "Rome"],
      "answer": "Paris"
    }
  ]
}

"""

SUMMARY_PROMPT = "Generate a concise summary of this content:\n\n"


def chunk_text(text: str, size: Optional[int] = None) -> List[str]:
    size = size or config.GENERATION_CHUNK_SIZE
    return [text[i:i + size] for i in range(0, len(text), size)]


def build_prompt(chunk: str, mode: GenerationMode) -> str:
    if mode == GenerationMode.SUMMARY:
        return SUMMARY_PROMPT + chunk
    return QUIZ_PROMPT + chunk


def fallback_for(mode: GenerationMode) -> str:
    return SUMMARY_FALLBACK if mode == GenerationMode.SUMMARY else QUIZ_FALLBACK


# Lazy singleton
_model = None


def _get_model() -> genai.GenerativeModel:
    global _model
    if _model is None:
        if not config.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY is not set. Add it to your .env file.")
        genai.configure(api_key=config.GEMINI_API_KEY)
        _model = genai.GenerativeModel(config.GEMINI_MODEL)
    return _model


async def _call_model(prompt: str) -> str:
    response = await _get_model().generate_content_async(prompt)
    # .text raises ValueError when the response has no usable candidate
    return response.text


async def generate_content(text: str, mode: GenerationMode) -> str:
    """Generate a summary or a JSON quiz for `text`.

    Chunk responses are joined with a space in chunk order. Returns the
    mode's fallback if any chunk request fails.
    """
    mode = GenerationMode(mode)
    try:
        chunks = chunk_text(text)
        # gather keeps results in argument order, not completion order
        responses = await asyncio.gather(*(_call_model(build_prompt(c, mode)) for c in chunks))
        return " ".join(responses)
    except Exception as e:
        log.warning("Failed to generate %s: %s", mode.value, e)
        return fallback_for(mode)
