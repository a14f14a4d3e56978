"""Pydantic schemas for call recording endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from callcoach.domain.models import CallRecord

from .common import Pagination

_HIDDEN_CALL_FIELDS = ("storageRef",)


def call_view(call: CallRecord) -> dict[str, Any]:
    """Wire form of a call without the internal storage reference."""

    data = call.to_wire()
    for key in _HIDDEN_CALL_FIELDS:
        data.pop(key, None)
    return data


class CallUploadResponse(BaseModel):
    success: bool = True
    message: str = "File uploaded successfully"
    call: dict[str, Any] = Field(..., description="The stored call record")


class CallDetailResponse(BaseModel):
    success: bool = True
    call: dict[str, Any]


class CallListResponse(BaseModel):
    success: bool = True
    calls: list[dict[str, Any]] = Field(..., description="Calls on this page, newest first")
    pagination: Pagination
