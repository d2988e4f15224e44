"""
Side-channel payloads an agent may embed in its reply as fenced JSON.

Each payload is wrapped in an object with exactly one gating key:

  new_kb_entry      KnowledgeEntryPayload
  new_task          TaskPayload
  chart_data        ChartData
  canvas_update     CanvasUpdatePayload
  draft_email       EmailDraft
  schedule_meeting  CalendarEvent

Field names follow the JSON the model is instructed to emit (camelCase),
exposed in Python under snake_case names via aliases.

Model output is loosely typed, so validation coerces rather than rejects:
nulls fall back to field defaults, numbers and lists become text where text
is expected, and unknown chart types render as bars.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _as_text(value):
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if v is not None)
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _as_number(value) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip("%").replace(",", ""))
        except ValueError:
            return 0.0
    return 0.0


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class KnowledgeEntryPayload(_Payload):
    title: str = "Untitled"
    category: str = "OTHER"
    content: str = ""

    @field_validator("title", "category", "content", mode="before")
    @classmethod
    def _text(cls, value):
        return _as_text(value)


class TaskPayload(_Payload):
    title: str = "Untitled task"
    description: Optional[str] = None
    priority: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")

    @field_validator("title", "description", "priority", "assignee", "due_date", mode="before")
    @classmethod
    def _text(cls, value):
        return _as_text(value)


class ChartDataset(_Payload):
    label: str = ""
    data: list[float] = Field(default_factory=list)
    color: Optional[str] = None

    @field_validator("label", mode="before")
    @classmethod
    def _text(cls, value):
        return _as_text(value)

    @field_validator("data", mode="before")
    @classmethod
    def _numbers(cls, value):
        if isinstance(value, (list, tuple)):
            return [_as_number(v) for v in value]
        return value


class ChartData(_Payload):
    title: str = ""
    type: Literal["BAR", "LINE", "PIE"] = "BAR"
    labels: list[str] = Field(default_factory=list)
    datasets: list[ChartDataset] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _text(cls, value):
        return _as_text(value)

    @field_validator("type", mode="before")
    @classmethod
    def _known_type(cls, value):
        value = str(value).upper()
        return value if value in ("BAR", "LINE", "PIE") else "BAR"

    @field_validator("labels", mode="before")
    @classmethod
    def _label_text(cls, value):
        if isinstance(value, (list, tuple)):
            return ["" if v is None else str(v) for v in value]
        return value


class CanvasUpdatePayload(_Payload):
    title: str = "Untitled"
    content: str = ""

    @field_validator("title", "content", mode="before")
    @classmethod
    def _text(cls, value):
        return _as_text(value)


class EmailDraft(_Payload):
    to: str = ""
    subject: str = ""
    body: str = ""

    @field_validator("to", "subject", "body", mode="before")
    @classmethod
    def _text(cls, value):
        return _as_text(value)


class CalendarEvent(_Payload):
    title: str = "Meeting"
    start_time: str = Field(default="", alias="startTime")
    end_time: str = Field(default="", alias="endTime")
    description: str = ""
    location: Optional[str] = None

    @field_validator("title", "start_time", "end_time", "description", "location", mode="before")
    @classmethod
    def _text(cls, value):
        return _as_text(value)


# Gating key -> payload model, in the fixed scan order
PAYLOAD_KINDS: dict[str, type[_Payload]] = {
    "new_kb_entry": KnowledgeEntryPayload,
    "new_task": TaskPayload,
    "chart_data": ChartData,
    "canvas_update": CanvasUpdatePayload,
    "draft_email": EmailDraft,
    "schedule_meeting": CalendarEvent,
}
