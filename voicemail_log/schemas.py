"""
Pydantic schemas for store records and request/response validation.

This module contains:
- Store-level models passed to and returned from VoicemailStore
- Request models for incoming data validation
- Response models for API responses
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from voicemail_log.models import to_utc
from voicemail_log.utils import format_phone_number, is_phone_number_complete, unformat_phone_number


def _iso_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as ISO-8601 UTC with a Z suffix, keeping any sub-second part."""
    if value is None:
        return None
    value = to_utc(value)
    if not value.microsecond:
        timespec = "seconds"
    elif value.microsecond % 1000 == 0:
        timespec = "milliseconds"
    else:
        timespec = "microseconds"
    return value.isoformat(timespec=timespec).replace("+00:00", "Z")


# =============================================================================
# Store Models
# =============================================================================

class VoicemailInput(BaseModel):
    """
    Caller-supplied fields of a new voicemail.

    The store trusts these as given; see VoicemailCreateRequest for the
    checks applied at the HTTP boundary.
    """
    from_name: str
    to_name: str
    phone_number: str
    message_content: str
    date_time: datetime = Field(..., description="When the call occurred")
    taken_by: str


class VoicemailRecord(BaseModel):
    """A stored voicemail as read back from the database."""
    id: str
    from_name: str
    to_name: str
    phone_number: str
    message_content: str
    date_time: datetime
    taken_by: str
    returned: bool
    returned_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("date_time", "created_at", "returned_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """SQLite hands back naive datetimes; everything is stored as UTC."""
        return to_utc(v) if v is not None else None


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SessionRequest(BaseModel):
    """Body of POST /session: the id the client currently holds, if any."""
    account_id: Optional[str] = Field(
        None,
        description="Previously issued account id, the 'Loading...' placeholder, or null"
    )


class VoicemailCreateRequest(VoicemailInput):
    """
    Validates a new voicemail submitted through the form.

    Validates:
    - from_name/to_name/message_content/taken_by: non-empty after trimming
    - phone_number: exactly 10 digits once formatting is stripped; stored digit-only
    - date_time: ISO-8601 timestamp
    """

    @field_validator("from_name", "to_name", "message_content", "taken_by")
    @classmethod
    def validate_non_empty(cls, v: str, info) -> str:
        v = v.strip()
        if not v:
            raise ValueError(f"{info.field_name} must not be empty")
        return v

    @field_validator("phone_number")
    @classmethod
    def validate_phone_number(cls, v: str) -> str:
        if not is_phone_number_complete(v):
            raise ValueError("phone_number must contain exactly 10 digits")
        return unformat_phone_number(v)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "from_name": "Alice",
                    "to_name": "Bob",
                    "phone_number": "(555) 123-4567",
                    "message_content": "Call back",
                    "date_time": "2024-01-01T10:00:00Z",
                    "taken_by": "Carol",
                }
            ]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class SessionResponse(BaseModel):
    """Account id the client should hold for subsequent requests."""
    account_id: str


class CreatedResponse(BaseModel):
    """Response model for a newly created voicemail."""
    id: str = Field(..., description="Generated voicemail id")


class StatusResponse(BaseModel):
    """Response model for delete / mark-returned."""
    status: str = Field(default="ok", description="Operation status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class VoicemailResponse(BaseModel):
    """
    A voicemail as shown in the list.
    Adds the display form of the phone number.
    """
    id: str
    from_name: str
    to_name: str
    phone_number: str
    phone_number_display: str
    message_content: str
    date_time: datetime
    taken_by: str
    returned: bool
    returned_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: VoicemailRecord) -> "VoicemailResponse":
        return cls(
            **record.model_dump(),
            phone_number_display=format_phone_number(record.phone_number),
        )

    @field_serializer("date_time", "created_at", "returned_at")
    def serialize_timestamp(self, v: Optional[datetime]) -> Optional[str]:
        return _iso_utc(v)


class VoicemailListResponse(BaseModel):
    """
    Response model for GET /voicemails.

    Contains:
    - data: active voicemails, most recent call first
    - total: number of active voicemails
    """
    data: list[VoicemailResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
