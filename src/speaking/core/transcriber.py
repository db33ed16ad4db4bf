"""Speech-to-text for recorded answers.

Audio arrives as raw bytes (multipart upload or assembled recording
chunks), as a ``data:`` URL, or as an http(s) URL of a stored recording.
"""

from __future__ import annotations

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from speaking.config.app_config import load_app_config
from speaking.llm.client import LLMClient, LLMError

logger = structlog.get_logger(__name__)

# Placeholder stored when a response could not be transcribed
TRANSCRIPTION_FAILED = "[Transcription failed]"

DEFAULT_CONTENT_TYPE = "audio/webm"

EXTENSIONS = {
    "audio/webm": "webm",
    "audio/mp4": "mp4",
    "audio/x-m4a": "m4a",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
}


class TranscriptionError(Exception):
    """Transcription could not be produced."""


class InvalidAudioError(TranscriptionError):
    """The supplied audio is missing, empty or malformed."""


@dataclass
class TranscriptionResult:
    """Transcript with details of the audio it came from."""

    text: str
    filename: str
    content_type: str
    size_bytes: int
    latency_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "filename": self.filename,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "latency_ms": self.latency_ms,
        }


def base_content_type(content_type: str | None) -> str:
    """Strip codec parameters: "audio/webm;codecs=opus" -> "audio/webm"."""
    if not content_type:
        return DEFAULT_CONTENT_TYPE
    return content_type.split(";", 1)[0].strip().lower() or DEFAULT_CONTENT_TYPE


def extension_for(content_type: str | None) -> str:
    """File extension for an audio MIME type, webm when unknown."""
    return EXTENSIONS.get(base_content_type(content_type), "webm")


def default_filename(content_type: str | None = None) -> str:
    """Timestamped upload name such as audio-1718000000000.webm."""
    return f"audio-{int(time.time() * 1000)}.{extension_for(content_type)}"


def get_transcription_client() -> LLMClient:
    """Build an LLM client for the configured transcription provider."""
    settings = load_app_config().transcription
    client = LLMClient(provider=settings.provider)
    if settings.model:
        client.config.transcription_model = settings.model
    return client


def data_url_content_type(url: str) -> str:
    """MIME type declared in a data URL header, default audio/webm."""
    header = url.split(",", 1)[0]
    if header.startswith("data:"):
        declared = header[len("data:"):].split(";base64", 1)[0]
        if declared:
            return declared
    return DEFAULT_CONTENT_TYPE


def decode_data_url(url: str) -> bytes:
    """Decode the base64 payload of a data URL.

    Raises:
        InvalidAudioError: If the URL has no payload or it is not base64
    """
    parts = url.split(",", 1)
    if len(parts) != 2 or not parts[1]:
        raise InvalidAudioError("Invalid data URL format")

    try:
        return base64.b64decode(parts[1])
    except (binascii.Error, ValueError) as e:
        raise InvalidAudioError("Invalid data URL format") from e


def fetch_remote_audio(url: str, timeout: float | None = None) -> bytes:
    """Download audio from an http(s) URL.

    Raises:
        TranscriptionError: On network failure or a non-2xx response
    """
    if timeout is None:
        timeout = load_app_config().transcription.remote_fetch_timeout

    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as http:
            response = http.get(url)
    except httpx.HTTPError as e:
        raise TranscriptionError(f"Failed to fetch remote audio: {e}") from e

    if not response.is_success:
        raise TranscriptionError(
            f"Failed to fetch remote audio: {response.status_code} - {response.reason_phrase}"
        )

    logger.debug("remote_audio_fetched", size_kb=round(len(response.content) / 1024))
    return response.content


def transcribe_bytes(
    audio: bytes,
    filename: str | None = None,
    content_type: str | None = None,
    client: LLMClient | None = None,
) -> TranscriptionResult:
    """Transcribe raw audio bytes.

    Args:
        audio: Audio file contents
        filename: Upload name; generated from the content type when omitted
        content_type: MIME type, codec parameters allowed
        client: LLM client (built from config if not provided)

    Raises:
        InvalidAudioError: If the audio is empty or over the upload limit
        TranscriptionError: If the speech-to-text call fails
    """
    settings = load_app_config().transcription

    if not audio:
        raise InvalidAudioError("Empty file provided")
    if len(audio) > settings.max_upload_bytes:
        raise InvalidAudioError(
            f"Audio file too large: {len(audio)} bytes (limit {settings.max_upload_bytes})"
        )

    content_type = base_content_type(content_type)
    filename = filename or default_filename(content_type)
    if client is None:
        client = get_transcription_client()

    start_time = time.time()
    try:
        text = client.transcribe(
            audio,
            filename=filename,
            content_type=content_type,
            language=settings.language or None,
        )
    except LLMError as e:
        logger.error("transcription_failed", filename=filename, error=str(e))
        raise TranscriptionError(str(e)) from e

    result = TranscriptionResult(
        text=text,
        filename=filename,
        content_type=content_type,
        size_bytes=len(audio),
        latency_ms=int((time.time() - start_time) * 1000),
    )
    logger.info(
        "audio_transcribed",
        filename=filename,
        size_kb=round(len(audio) / 1024),
        chars=len(text),
    )
    return result


def transcribe_source(
    audio_url: str,
    is_data_url: bool = False,
    client: LLMClient | None = None,
) -> TranscriptionResult:
    """Transcribe audio referenced by a data URL or an http(s) URL.

    Raises:
        InvalidAudioError: If the URL is missing, malformed or unsupported
        TranscriptionError: If fetching or transcription fails
    """
    if not audio_url:
        raise InvalidAudioError("No audio URL provided")

    if is_data_url or audio_url.startswith("data:"):
        content_type = data_url_content_type(audio_url)
        audio = decode_data_url(audio_url)
    elif audio_url.startswith(("http://", "https://")):
        content_type = DEFAULT_CONTENT_TYPE
        audio = fetch_remote_audio(audio_url)
    else:
        raise InvalidAudioError("Unsupported audio URL format")

    return transcribe_bytes(audio, content_type=content_type, client=client)
