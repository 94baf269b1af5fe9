import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")

# Chat edge function
CHAT_API_URL = os.getenv("CHAT_API_URL", "http://localhost:54321/functions/v1/climate-chat")
CHAT_API_KEY = os.getenv("CHAT_API_KEY")

# Quiz generation (Gemini REST API)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")

# ElevenLabs
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
ELEVENLABS_AGENT_ID = os.getenv("ELEVENLABS_AGENT_ID")
ELEVENLABS_CLIMATE_AGENT_ID = os.getenv("ELEVENLABS_CLIMATE_AGENT_ID")
ELEVENLABS_BASE_URL = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io")
ELEVENLABS_STT_URL = os.getenv("ELEVENLABS_STT_URL", f"{ELEVENLABS_BASE_URL}/v1/speech-to-text")

# Storage
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "file").lower()
STORAGE_DIR = os.getenv("STORAGE_DIR", str(Path(__file__).resolve().parent / "data"))
MONGO_HOST = os.getenv("MONGO_HOST", "127.0.0.1")
MONGO_PORT = int(os.getenv("MONGO_PORT", "27017"))
MONGO_URL = os.getenv("MONGO_URL", f"mongodb://{MONGO_HOST}:{MONGO_PORT}/?directConnection=true")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "climatesage")
STORAGE_COLLECTION = os.getenv("STORAGE_COLLECTION", "local_storage")

CHAT_SESSIONS_KEY = "climatesage-chat-sessions"
QUIZ_HISTORY_KEY = "climatesage-quiz-history"


def _optional_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


# No timeout unless one is configured
HTTP_TIMEOUT = _optional_float(os.getenv("HTTP_TIMEOUT"))

CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
