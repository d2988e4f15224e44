"""
Suite models - the organisation the agents work in.

Agent:          A persona (name, role, system instruction) that replies via the LLM.
Directive:      A global rule injected into every agent prompt while active.
KnowledgeItem:  A titled, categorised unit of shared knowledge.
Folder:         Optional grouping for knowledge items.
Task:           A kanban card, created by the user or by an agent payload.
ChatSession:    A persisted conversation thread with fixed mode and participants.
CanvasDocument: The single shared long-form scratchpad.
"""

import time
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


# ------------------------------------------------------------------ #
# Agent                                                               #
# ------------------------------------------------------------------ #

class Agent(BaseModel):
    id: str = Field(default_factory=generate_id)
    name: str                  # first name, also the speaker label in transcripts
    surname: str = ""
    role: str
    expertise: str = ""
    system_instruction: str
    backstory: str = ""
    avatar_url: Optional[str] = None
    avatar_color: str = "bg-gray-600"
    voice_id: Optional[str] = None
    gender: Optional[Literal["male", "female"]] = None
    is_custom: bool = False    # False for the built-in seed personas

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip()


# ------------------------------------------------------------------ #
# Directive                                                           #
# ------------------------------------------------------------------ #

class Directive(BaseModel):
    id: str = Field(default_factory=generate_id)
    content: str
    active: bool = True
    created_at: int = Field(default_factory=now_ms)


# ------------------------------------------------------------------ #
# Knowledge base                                                      #
# ------------------------------------------------------------------ #

KNOWLEDGE_TYPES = Literal["NOTE", "FILE", "LINK"]
KNOWLEDGE_CATEGORIES = ("STRATEGY", "KPI", "LEGAL", "PRODUCT", "OTHER")


class Folder(BaseModel):
    id: str = Field(default_factory=generate_id)
    name: str
    created_at: int = Field(default_factory=now_ms)


class KnowledgeItem(BaseModel):
    id: str = Field(default_factory=generate_id)
    type: KNOWLEDGE_TYPES = "NOTE"
    folder_id: Optional[str] = None       # None = root
    title: str
    content: str                          # summary for files/links, body for notes
    category: str = "OTHER"

    file_name: Optional[str] = None
    file_mime_type: Optional[str] = None
    url: Optional[str] = None

    created_by: str = "User"
    timestamp: int = Field(default_factory=now_ms)

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value):
        value = str(value or "").strip().upper()
        return value if value in KNOWLEDGE_CATEGORIES else "OTHER"


# ------------------------------------------------------------------ #
# Task                                                                #
# ------------------------------------------------------------------ #

TASK_STATUSES = Literal["TODO", "IN_PROGRESS", "DONE"]
TASK_PRIORITIES = ("LOW", "MEDIUM", "HIGH")


class Task(BaseModel):
    id: str = Field(default_factory=generate_id)
    title: str
    description: Optional[str] = None
    assignee: Optional[str] = None        # agent name or "User"
    status: TASK_STATUSES = "TODO"
    priority: str = "MEDIUM"
    due_date: Optional[int] = None
    created_at: int = Field(default_factory=now_ms)

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value):
        value = str(value or "").strip().upper()
        return value if value in TASK_PRIORITIES else "MEDIUM"


# ------------------------------------------------------------------ #
# ChatSession                                                         #
# ------------------------------------------------------------------ #

CHAT_MODES = Literal["INDIVIDUAL", "FOCUS_GROUP", "WHOLE_SUITE"]

MODE_META = {
    "INDIVIDUAL": {"label": "Chat", "emoji": "💬", "description": "One-to-one with a single agent"},
    "FOCUS_GROUP": {"label": "Focus Group", "emoji": "👥", "description": "A hand-picked group of agents"},
    "WHOLE_SUITE": {"label": "Board Meeting", "emoji": "🏛️", "description": "Every agent in the suite"},
}


class ChatSession(BaseModel):
    id: str = Field(default_factory=generate_id)
    user_id: str
    title: str
    mode: CHAT_MODES = "INDIVIDUAL"
    participant_ids: list[str] = Field(min_length=1)
    created_at: int = Field(default_factory=now_ms)
    last_message_at: int = Field(default_factory=now_ms)


# ------------------------------------------------------------------ #
# CanvasDocument                                                      #
# ------------------------------------------------------------------ #

class CanvasDocument(BaseModel):
    title: str
    content: str
    language: str = "markdown"
    last_updated_by: str
    last_updated_at: int = Field(default_factory=now_ms)
