from .suite import (
    Agent,
    CanvasDocument,
    ChatSession,
    Directive,
    Folder,
    KnowledgeItem,
    Task,
    MODE_META,
    generate_id,
    now_ms,
)
from .payloads import (
    CalendarEvent,
    CanvasUpdatePayload,
    ChartData,
    EmailDraft,
    KnowledgeEntryPayload,
    TaskPayload,
    PAYLOAD_KINDS,
)
from .message import Attachment, CanvasAction, GroundingMetadata, GroundingSource, Message

__all__ = [
    "Agent",
    "CanvasDocument",
    "ChatSession",
    "Directive",
    "Folder",
    "KnowledgeItem",
    "Task",
    "MODE_META",
    "generate_id",
    "now_ms",
    "CalendarEvent",
    "CanvasUpdatePayload",
    "ChartData",
    "EmailDraft",
    "KnowledgeEntryPayload",
    "TaskPayload",
    "PAYLOAD_KINDS",
    "Attachment",
    "CanvasAction",
    "GroundingMetadata",
    "GroundingSource",
    "Message",
]
