"""Pydantic request/response schemas for the delivery trigger API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# --- Trigger Request Schemas ---


class SubOrderWrittenRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {"sub_order_id": "so-1042-a"},
                {"parent_order_id": "1042"},
            ]
        }
    }

    sub_order_id: str | int | None = None
    parent_order_id: str | int | None = None


class OrderCreatedRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {"order_id": "1042", "due_at": "2026-01-15T14:30:00Z"},
            ]
        }
    }

    order_id: str | int
    due_at: datetime | None = None


class SweepRequest(BaseModel):
    as_of: datetime | None = None


class PushMessage(BaseModel):
    data: str
    message_id: str | None = Field(None, alias="messageId")
    attributes: dict[str, str] | None = None


class PushEnvelope(BaseModel):
    """Body of a pub/sub push subscription delivery."""

    message: PushMessage
    subscription: str | None = None


class WriteSubOrderRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {"status": "Ready", "parent_order_id": "1042", "vendor_id": "vendor-7"},
            ]
        }
    }

    status: str = Field(..., max_length=50)
    parent_order_id: str | int | None = None
    vendor_id: str | None = None


class RepublishRequest(BaseModel):
    reset_assignment: bool = False


# --- Response Schemas ---


class TransitionResultResponse(BaseModel):
    order_id: str | None = None
    target: str | None = None
    applied: bool = False
    published: bool = False
    publish_error: str | None = None


class SubOrderResponse(BaseModel):
    sub_order_id: str
    parent_order_id: str
    status: str
    transition: TransitionResultResponse


class PendingTransitionResponse(BaseModel):
    transition_id: str
    order_id: str
    kind: str
    state: str
    due_at: datetime | None = None
    attempts: int = 0
    max_attempts: int = 0
    last_error: str | None = None


class ScheduleResponse(BaseModel):
    scheduled: bool
    transition: PendingTransitionResponse | None = None


class SweepResponse(BaseModel):
    as_of: datetime
    processed: int
    completed: list[str]
    retrying: list[str]
    failed: list[str]


class DispatchResponse(BaseModel):
    dispatched: bool
    order_id: str | None = None
    worker_id: str | None = None
    distance_km: float | None = None
    notified: bool = False


class TransitionListResponse(BaseModel):
    items: list[PendingTransitionResponse]
    total: int


class RepublishResponse(BaseModel):
    order_id: str
    message_id: str


class StatusResponse(BaseModel):
    status: str = "ok"
