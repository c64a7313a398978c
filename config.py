"""
Runtime configuration for the Exam Portal API.

All values come from the environment (a local .env file is loaded first).
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Gemini generation
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GENERATION_CHUNK_SIZE = int(os.getenv("GENERATION_CHUNK_SIZE", "90000"))

# File storage
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
UPLOAD_URL_PREFIX = os.getenv("UPLOAD_URL_PREFIX", "/uploads").rstrip("/")

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", "8000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
