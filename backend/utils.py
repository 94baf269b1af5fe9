import re
from datetime import datetime, timezone
from uuid import uuid4

TITLE_MAX_LENGTH = 30
DEFAULT_TITLE = "New Chat"

_FENCE_START = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_END = re.compile(r"\s*```$")


def now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def generate_title(text: str) -> str:
    # First user message, truncated to 30 characters
    text = (text or "").strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + "..."
    return text


def strip_code_fences(text: str) -> str:
    """
    Removes a surrounding markdown code block (```json ... ``` or ``` ... ```).
    """
    text = (text or "").strip()
    if text.startswith("```"):
        text = _FENCE_START.sub("", text)
        text = _FENCE_END.sub("", text)
    return text.strip()
