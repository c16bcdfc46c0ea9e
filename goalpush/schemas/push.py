from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from goalpush.core.push_config import DEFAULT_SOUND
from goalpush.schemas.base import BaseSchema, GatewaySchema
from goalpush.schemas.enums import Platform, PushPriority


# ---------------------------
# Inbound (API)
# ---------------------------

class RegisterPushTokenIn(BaseSchema):
    token: str
    platform: Platform
    device_id: Optional[str] = None


class UnregisterPushTokenIn(BaseSchema):
    # omitted -> drop every device of the caller
    token: Optional[str] = None


class SendPushIn(BaseSchema):
    title: str
    body: str
    data: Optional[Dict[str, Any]] = None
    # explicit null means a silent notification
    sound: Optional[str] = DEFAULT_SOUND
    badge: Optional[int] = None
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    priority: Optional[PushPriority] = None
    ttl: Optional[int] = Field(default=None, ge=0)
    expiration: Optional[int] = None


# ---------------------------
# Outbound (gateway request)
# ---------------------------

class PushMessage(BaseSchema):
    to: str
    title: Optional[str] = None
    body: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    sound: Optional[str] = None
    badge: Optional[int] = None
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    priority: Optional[PushPriority] = None
    ttl: Optional[int] = None
    expiration: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------
# Gateway responses
# ---------------------------

class GatewayErrorDetails(GatewaySchema):
    error: Optional[str] = None


class SuccessTicket(GatewaySchema):
    # anything that is not explicitly "error" lands here
    status: Optional[str] = "ok"
    id: Optional[str] = None


class ErrorTicket(GatewaySchema):
    status: Literal["error"] = "error"
    message: Optional[str] = None
    details: Optional[GatewayErrorDetails] = None

    @property
    def error_code(self) -> Optional[str]:
        return self.details.error if self.details else None


PushTicket = Union[SuccessTicket, ErrorTicket]


def parse_ticket(raw: Any) -> PushTicket:
    """Tag one raw ticket as success or error; everything downstream matches on the type."""
    if isinstance(raw, (SuccessTicket, ErrorTicket)):
        return raw
    if not isinstance(raw, dict):
        return ErrorTicket(message=f"Malformed ticket: {raw!r}")
    if raw.get("status") == "error":
        details = raw.get("details")
        if details is not None and not isinstance(details, dict):
            raw = {**raw, "details": None}
        return ErrorTicket.model_validate(raw)
    return SuccessTicket.model_validate(raw)


class GatewayError(GatewaySchema):
    message: str = "Unknown gateway error"
    code: Optional[str] = None


class PushResponse(GatewaySchema):
    data: Optional[List[PushTicket]] = None
    errors: Optional[List[GatewayError]] = None
    # from the Retry-After header, not the body
    retry_after: Optional[int] = None

    @field_validator("data", mode="before")
    @classmethod
    def _tag_tickets(cls, value):
        if value is None:
            return None
        if isinstance(value, dict):
            value = [value]
        return [parse_ticket(t) for t in value]


class OkReceipt(GatewaySchema):
    status: Literal["ok"] = "ok"


class ErrorReceipt(GatewaySchema):
    status: Optional[str] = "error"
    message: Optional[str] = None
    details: Optional[GatewayErrorDetails] = None

    @property
    def error_code(self) -> Optional[str]:
        return self.details.error if self.details else None

    @property
    def reason(self) -> str:
        return self.error_code or self.message or "Unknown"


GatewayReceipt = Union[OkReceipt, ErrorReceipt]


def parse_receipt(raw: Any) -> GatewayReceipt:
    if isinstance(raw, (OkReceipt, ErrorReceipt)):
        return raw
    if isinstance(raw, dict) and raw.get("status") == "ok":
        return OkReceipt.model_validate(raw)
    if not isinstance(raw, dict):
        return ErrorReceipt(message=f"Malformed receipt: {raw!r}")
    details = raw.get("details")
    if details is not None and not isinstance(details, dict):
        raw = {**raw, "details": None}
    return ErrorReceipt.model_validate(raw)


class ReceiptResponse(GatewaySchema):
    data: Dict[str, GatewayReceipt] = Field(default_factory=dict)
    errors: Optional[List[GatewayError]] = None

    @field_validator("data", mode="before")
    @classmethod
    def _tag_receipts(cls, value):
        if not isinstance(value, dict):
            return {}
        return {ticket_id: parse_receipt(r) for ticket_id, r in value.items()}


# ---------------------------
# Results
# ---------------------------

class SendResult(BaseModel):
    success: bool
    sent: int
    failed: int
    errors: Optional[List[str]] = None


class NotificationCheckResult(BaseModel):
    success: bool
    error: Optional[str] = None


class ReconcileResult(BaseModel):
    checked: int = 0
    errors: int = 0


class MaintenanceReport(BaseModel):
    receipts: ReconcileResult
    receipts_deleted: int
    tokens_deleted: int
