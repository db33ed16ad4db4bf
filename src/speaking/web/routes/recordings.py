"""Recording session endpoints.

Clients open a session per answer, upload encoded audio chunks as raw
request bodies, then stop the session to store and transcribe the audio.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from speaking.core.recording import (
    RecordingError,
    RecordingManager,
    RecordingNotFoundError,
    RecordingSession,
    RecordingStateError,
)
from speaking.db import tests_repository
from speaking.llm.client import LLMClient
from speaking.storage.object_store import ObjectStore
from speaking.web.auth import CurrentUser, get_current_user
from speaking.web.dependencies import object_store, recording_manager, transcription_client
from speaking.web.schemas import RecordingCreate, RecordingErrorRequest, RecordingResponse

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/recordings", tags=["recordings"])


def _to_response(session: RecordingSession) -> RecordingResponse:
    return RecordingResponse(**session.to_dict())


def _http_error(error: RecordingError) -> HTTPException:
    if isinstance(error, RecordingNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, RecordingStateError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(error))


@router.post("", response_model=RecordingResponse, status_code=status.HTTP_201_CREATED)
async def start_recording(
    body: RecordingCreate,
    user: CurrentUser = Depends(get_current_user),
    manager: RecordingManager = Depends(recording_manager),
) -> RecordingResponse:
    """Start recording an answer to a question."""
    if tests_repository.get_question(body.questionId) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Question '{body.questionId}' not found",
        )

    session = await manager.create(user.id, body.questionId, body.acceptedMimeTypes)
    return _to_response(session)


@router.get("/{recording_id}", response_model=RecordingResponse)
async def get_recording(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    manager: RecordingManager = Depends(recording_manager),
) -> RecordingResponse:
    """Get the state of a recording."""
    session = await manager.get(recording_id, user_id=user.id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recording '{recording_id}' not found",
        )
    return _to_response(session)


@router.post("/{recording_id}/chunks", response_model=RecordingResponse)
async def upload_chunk(
    recording_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    manager: RecordingManager = Depends(recording_manager),
) -> RecordingResponse:
    """Append an audio chunk (raw request body)."""
    data = await request.body()
    try:
        session = await manager.append_chunk(recording_id, data, user_id=user.id)
    except RecordingError as e:
        raise _http_error(e) from e
    return _to_response(session)


@router.post("/{recording_id}/stop", response_model=RecordingResponse)
async def stop_recording(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    manager: RecordingManager = Depends(recording_manager),
    client: LLMClient = Depends(transcription_client),
    store: ObjectStore = Depends(object_store),
) -> RecordingResponse:
    """Stop recording, store the audio and transcribe it."""
    try:
        session = await manager.stop_and_transcribe(
            recording_id, user_id=user.id, client=client, store=store
        )
    except RecordingError as e:
        raise _http_error(e) from e
    return _to_response(session)


@router.post("/{recording_id}/reset", response_model=RecordingResponse)
async def reset_recording(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    manager: RecordingManager = Depends(recording_manager),
) -> RecordingResponse:
    """Discard the captured audio and record the answer again."""
    try:
        session = await manager.reset(recording_id, user_id=user.id)
    except RecordingError as e:
        raise _http_error(e) from e
    return _to_response(session)


@router.post("/{recording_id}/error", response_model=RecordingResponse)
async def report_error(
    recording_id: str,
    body: RecordingErrorRequest,
    user: CurrentUser = Depends(get_current_user),
    manager: RecordingManager = Depends(recording_manager),
) -> RecordingResponse:
    """Report that the client could not open its microphone."""
    try:
        session = await manager.report_microphone_error(
            recording_id, body.errorName, user_id=user.id
        )
    except RecordingError as e:
        raise _http_error(e) from e
    return _to_response(session)


@router.delete("/{recording_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_recording(
    recording_id: str,
    user: CurrentUser = Depends(get_current_user),
    manager: RecordingManager = Depends(recording_manager),
) -> None:
    """Forget a recording session."""
    if not await manager.discard(recording_id, user_id=user.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recording '{recording_id}' not found",
        )
