"""Call recording endpoints: upload, list, inspect and delete."""

import json
import logging
import mimetypes
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError

from callcoach.config.settings import settings
from callcoach.controllers.dependencies import (
    CurrentUserDep,
    EventBusDep,
    PublisherDep,
    RepositoriesDep,
    StorageDep,
)
from callcoach.domain.models import CallMetadata, CallRecord, CallStatus, utc_now
from callcoach.domain.state_machine import stage_for_status
from callcoach.errors import CallNotFoundError, RepositoryError, StageConflictError
from callcoach.services.notifications import CALL_UPLOADED, call_topic, user_topic
from callcoach.services.storage import StorageError
from callcoach.views import CallDetailResponse, CallListResponse, CallUploadResponse, call_view
from callcoach.views.common import Pagination, SuccessResponse

router = APIRouter(prefix="/calls", tags=["calls"])

logger = logging.getLogger(__name__)

_AUDIO_FILE_UPLOAD = File(...)
_METADATA_FORM = Form(None)


def resolve_content_type(audio_file: UploadFile) -> str:
    """Accept the configured audio types, guessing from the file name when unset."""

    content_type = audio_file.content_type
    if (not content_type or content_type == "application/octet-stream") and audio_file.filename:
        guessed_type, _ = mimetypes.guess_type(audio_file.filename)
        content_type = guessed_type or content_type

    if content_type not in settings.storage.allowed_content_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Only audio files are allowed.",
        )
    return content_type


async def read_audio_bytes(audio_file: UploadFile) -> bytes:
    """Load the upload into memory, rejecting empty and oversized payloads."""

    limit = settings.storage.max_upload_bytes
    audio_bytes = await audio_file.read(limit + 1)
    await audio_file.close()

    if not audio_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded audio file is empty",
        )
    if len(audio_bytes) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Audio file exceeds the {limit} byte limit",
        )
    return audio_bytes


def parse_metadata(raw: Optional[str], user_id: str) -> CallMetadata:
    """Parse the optional JSON metadata form field; malformed input is ignored."""

    data: dict[str, Any] = {}
    if raw:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Invalid metadata format: %s", exc)
        else:
            if isinstance(parsed, dict):
                data = parsed
            else:
                logger.warning("Ignoring non-object call metadata")

    data.setdefault("agentInfo", {"id": user_id})
    data.setdefault("callType", "inbound")
    if not data.get("callDate"):
        data["callDate"] = utc_now()

    try:
        return CallMetadata.model_validate(data)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid call metadata: {exc.errors()[0]['msg']}",
        ) from None


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_call(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    storage: StorageDep,
    publisher: PublisherDep,
    audio: UploadFile = _AUDIO_FILE_UPLOAD,
    metadata: Optional[str] = _METADATA_FORM,
) -> CallUploadResponse:
    """Store an uploaded recording and create its call in ``uploaded`` status."""

    content_type = resolve_content_type(audio)
    audio_bytes = await read_audio_bytes(audio)
    call_metadata = parse_metadata(metadata, current_user)
    original_name = audio.filename or "recording"

    try:
        storage_ref, stored_name = await storage.save_upload(
            current_user, original_name, audio_bytes, content_type
        )
    except StorageError:
        logger.exception("Failed to store upload for user=%s", current_user)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error during file upload",
        ) from None

    call = CallRecord(
        user_id=current_user,
        storage_ref=storage_ref,
        file_name=stored_name,
        original_name=original_name,
        file_size=len(audio_bytes),
        mime_type=content_type,
        metadata=call_metadata,
    )
    try:
        await repositories.calls.create(call)
    except RepositoryError:
        await storage.delete(storage_ref)
        raise

    try:
        await publisher.publish(
            user_topic(current_user),
            CALL_UPLOADED,
            {"callId": str(call.id), "status": call.status.value, "fileName": original_name},
        )
    except Exception:  # the upload itself already succeeded
        logger.exception("Failed to announce upload of call=%s", call.id)

    logger.info("File uploaded: %s by user %s as call=%s", original_name, current_user, call.id)
    return CallUploadResponse(call=call_view(call))


@router.get("")
async def list_calls(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    call_status: Optional[CallStatus] = Query(None, alias="status"),
) -> CallListResponse:
    """List the caller's calls, newest first."""

    calls, total = await repositories.calls.list_for_owner(
        current_user, status=call_status, page=page, limit=limit
    )
    return CallListResponse(
        calls=[call_view(call) for call in calls],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{call_id}")
async def get_call(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    call_id: UUID,
) -> CallDetailResponse:
    call = await repositories.calls.get_for_owner(call_id, current_user)
    if call is None:
        raise CallNotFoundError()
    return CallDetailResponse(call=call_view(call))


@router.delete("/{call_id}")
async def delete_call(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    storage: StorageDep,
    event_bus: EventBusDep,
    call_id: UUID,
) -> SuccessResponse:
    """Delete a call together with its analysis, coaching plan and audio."""

    call = await repositories.calls.get_for_owner(call_id, current_user)
    if call is None:
        raise CallNotFoundError()

    running = stage_for_status(call.status)
    if running is not None:
        raise StageConflictError(f"Cannot delete a call while {running.label.lower()} is running")

    coaching = await repositories.coachings.get_by_call(call.id)
    if coaching is not None:
        await repositories.coachings.delete(coaching.id)
    await repositories.analyses.delete_for_call(call.id)
    await repositories.calls.delete(call.id)
    event_bus.forget(call_topic(call.id))

    try:
        await storage.delete(call.storage_ref)
    except StorageError:
        logger.warning("Audio for deleted call=%s could not be removed", call.id, exc_info=True)

    logger.info("Call deleted: %s by user %s", call.id, current_user)
    return SuccessResponse(message="Call deleted successfully")
