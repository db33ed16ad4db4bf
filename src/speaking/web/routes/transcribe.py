"""Speech-to-text endpoint.

Accepts either a multipart upload with a ``file`` field or a JSON body
referencing the audio by data URL or http(s) URL.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from speaking.config.app_config import load_app_config
from speaking.core.transcriber import (
    InvalidAudioError,
    TranscriptionError,
    transcribe_bytes,
    transcribe_source,
)
from speaking.llm.client import LLMClient
from speaking.web.auth import CurrentUser, optional_user
from speaking.web.dependencies import transcription_client
from speaking.web.schemas import TranscribeResponse, TranscribeUrlRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["transcription"])


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


async def _transcribe_json(request: Request, client: LLMClient, user_id: str | None) -> str:
    try:
        payload = TranscribeUrlRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        raise _bad_request("Invalid JSON body") from e

    if user_id is None and payload.userId and load_app_config().auth.allow_client_user_id:
        user_id = payload.userId
        logger.info("transcribe_client_user_id", user_id=user_id[:8])

    if not payload.audioUrl:
        raise _bad_request("No audio URL provided")

    is_data_url = payload.isDataUrl or payload.audioUrl.startswith("data:")
    try:
        result = await asyncio.to_thread(
            transcribe_source, payload.audioUrl, payload.isDataUrl, client
        )
    except InvalidAudioError as e:
        raise _bad_request(str(e)) from e
    except TranscriptionError as e:
        logger.error("transcribe_url_failed", question_id=payload.questionId, error=str(e))
        source = "data URL" if is_data_url else "remote audio"
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to transcribe {source}",
        ) from e

    return result.text


async def _transcribe_upload(request: Request, client: LLMClient) -> str:
    form = await request.form()
    upload = form.get("file")
    if upload is None or isinstance(upload, str):
        logger.warning("transcribe_no_file", fields=list(form.keys()))
        raise _bad_request("No file provided")

    data = await upload.read()
    if not data:
        raise _bad_request("Empty file provided")

    try:
        result = await asyncio.to_thread(
            transcribe_bytes, data, upload.filename or None, upload.content_type, client
        )
    except InvalidAudioError as e:
        raise _bad_request(str(e)) from e
    except TranscriptionError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to transcribe audio: {e}",
        ) from e

    return result.text


@router.post("/transcribe", response_model=TranscribeResponse)
async def transcribe(
    request: Request,
    user: CurrentUser | None = Depends(optional_user),
    client: LLMClient = Depends(transcription_client),
) -> TranscribeResponse:
    """Transcribe an uploaded or referenced audio file."""
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        text = await _transcribe_json(request, client, user.id if user else None)
    elif "multipart/form-data" in content_type:
        text = await _transcribe_upload(request, client)
    else:
        raise _bad_request(f"Unsupported content type: {content_type}")

    return TranscribeResponse(text=text)
