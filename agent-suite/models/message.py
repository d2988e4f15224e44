"""
Message - one conversational turn, plus the artefacts that can ride on it.

Delivery status is only materialised while a message is "pending" (written
locally, persistence in flight) or "failed" (persistence refused).  A message
without a status is confirmed.  The status is never written to the store.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from models.payloads import CalendarEvent, ChartData, EmailDraft
from models.suite import generate_id

SYSTEM_SENDER_ID = "system"

MESSAGE_STATUSES = Literal["pending", "failed"]


class Attachment(BaseModel):
    mime_type: str
    data: str                  # base64
    name: str


class GroundingSource(BaseModel):
    uri: str
    title: str = ""


class GroundingMetadata(BaseModel):
    """Citations the provider attached when web search was used."""

    sources: list[GroundingSource] = Field(default_factory=list)


class CanvasAction(BaseModel):
    type: Literal["UPDATE", "CREATE"] = "UPDATE"
    title: Optional[str] = None


class Message(BaseModel):
    id: str = Field(default_factory=generate_id)
    sender_id: str
    sender_name: str
    content: str = ""
    timestamp: int = 0
    is_user: bool = False
    is_error: bool = False     # system-authored error bubble

    attachments: list[Attachment] = Field(default_factory=list)
    grounding_metadata: Optional[GroundingMetadata] = None
    chart_data: Optional[ChartData] = None
    canvas_action: Optional[CanvasAction] = None
    email_draft: Optional[EmailDraft] = None
    calendar_event: Optional[CalendarEvent] = None
    feedback: Optional[Literal["UP", "DOWN"]] = None
    context_used: Optional[str] = None

    status: Optional[MESSAGE_STATUSES] = None

    @property
    def is_confirmed(self) -> bool:
        return self.status is None

    def to_record(self) -> dict:
        """Serialisable form for the store.  Status is a client-only concern."""
        return self.model_dump(exclude={"status"}, exclude_none=True)


def system_error_message(text: str, *, timestamp: int = 0) -> Message:
    return Message(
        sender_id=SYSTEM_SENDER_ID,
        sender_name="System",
        content=text,
        timestamp=timestamp,
        is_error=True,
    )
