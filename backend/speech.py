import logging
from typing import Any, Optional

import requests

import config
from errors import MediaAccessError, RemoteServiceError

logger = logging.getLogger(__name__)

DEFAULT_STT_MODEL = "scribe_v1"


def _stt_error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"Speech-to-text failed: HTTP {response.status_code}"

    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
        if data.get("message"):
            return str(data["message"])
        if isinstance(data.get("error"), str):
            return data["error"]
    return f"Speech-to-text failed: HTTP {response.status_code}"


def _extract_transcript(data: Any) -> str:
    if isinstance(data, dict):
        for field in ("text", "transcript", "transcription"):
            value = data.get(field)
            if isinstance(value, str):
                return value
    raise RemoteServiceError("Unexpected response format from speech-to-text service.")


def transcribe(
    audio: Optional[bytes],
    filename: str = "recording.webm",
    content_type: str = "audio/webm",
    model_id: str = DEFAULT_STT_MODEL,
    api_key: Optional[str] = None,
    url: Optional[str] = None,
) -> str:
    """
    Sends recorded audio to ElevenLabs and returns the transcribed text.
    """
    if not audio:
        raise MediaAccessError("No audio file provided")

    api_key = api_key or config.ELEVENLABS_API_KEY
    if not api_key:
        logger.error("ELEVENLABS_API_KEY is not configured")
        raise RemoteServiceError("ElevenLabs API key not configured", http_status=500)

    files = {"file": (filename, audio, content_type)}
    data = {"model_id": model_id or DEFAULT_STT_MODEL}

    logger.info("Calling ElevenLabs Speech-to-Text API...")
    try:
        response = requests.post(
            url or config.ELEVENLABS_STT_URL,
            headers={"xi-api-key": api_key},
            files=files,
            data=data,
            timeout=config.HTTP_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        raise RemoteServiceError(f"Request failed: {e}") from e

    if not response.ok:
        logger.error(f"ElevenLabs API error: {response.status_code} {response.text}")
        raise RemoteServiceError(_stt_error_message(response), status_code=response.status_code)

    try:
        payload = response.json()
    except ValueError as e:
        raise RemoteServiceError("Unexpected response format from speech-to-text service.") from e
    return _extract_transcript(payload)


def get_signed_url(agent_type: Optional[str] = None) -> str:
    """
    Asks ElevenLabs for a signed conversation URL for the voice agent.
    """
    agent_id = config.ELEVENLABS_CLIMATE_AGENT_ID if agent_type == "climate" else config.ELEVENLABS_AGENT_ID
    if not config.ELEVENLABS_API_KEY or not agent_id:
        logger.error("Missing ElevenLabs credentials")
        raise RemoteServiceError("ElevenLabs credentials not configured", http_status=500)

    try:
        response = requests.get(
            f"{config.ELEVENLABS_BASE_URL}/v1/convai/conversation/get_signed_url",
            params={"agent_id": agent_id},
            headers={"xi-api-key": config.ELEVENLABS_API_KEY},
            timeout=config.HTTP_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        raise RemoteServiceError(f"Request failed: {e}") from e

    if not response.ok:
        logger.error(f"ElevenLabs API error: {response.status_code} {response.text}")
        raise RemoteServiceError(f"Failed to get signed URL: {response.status_code}", status_code=response.status_code)

    try:
        signed_url = response.json().get("signed_url")
    except (ValueError, AttributeError) as e:
        raise RemoteServiceError("Unexpected response format from ElevenLabs.") from e
    if not signed_url:
        raise RemoteServiceError("Unexpected response format from ElevenLabs.")

    logger.info("Signed URL generated successfully")
    return signed_url
