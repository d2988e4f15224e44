"""
ConversationState - the active session's message list.

Two streams feed it:
  - local writes (append_local / mark_confirmed / mark_failed) from the send
    path, which echo messages before the store has acknowledged them;
  - remote snapshots (apply_remote_snapshot) from the store's realtime
    listener, which are authoritative for every id they contain.

merge_messages() combines the two so that a pending or failed message never
disappears from view just because a snapshot arrived without it.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from models.message import Message

logger = logging.getLogger(__name__)

_UNCONFIRMED = ("pending", "failed")


def merge_messages(current: Iterable[Message], server_messages: Iterable[Message]) -> list[Message]:
    """Server messages plus local unconfirmed ones the server doesn't know, by timestamp."""
    by_id: dict[str, Message] = {}
    for m in server_messages:
        by_id[m.id] = m
    for m in current:
        if m.status in _UNCONFIRMED and m.id not in by_id:
            by_id[m.id] = m
    # sorted() is stable, so equal timestamps keep server-then-local order
    return sorted(by_id.values(), key=lambda m: m.timestamp)


class ConversationState:
    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._messages: list[Message] = []
        self._last_stamp = 0
        self._floor = 0

    # ------------------------------------------------------------------ #
    # Reads                                                               #
    # ------------------------------------------------------------------ #

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def get(self, message_id: str) -> Optional[Message]:
        return next((m for m in self._messages if m.id == message_id), None)

    def context_messages(self) -> list[Message]:
        """Messages eligible for model context: no failed writes, no error bubbles."""
        return [m for m in self._messages if m.status != "failed" and not m.is_error]

    def __len__(self) -> int:
        return len(self._messages)

    # ------------------------------------------------------------------ #
    # Logical clock                                                       #
    # ------------------------------------------------------------------ #

    def set_floor(self, session_created_at: int) -> None:
        """No message in this session may be stamped before the session existed."""
        self._floor = session_created_at

    def next_timestamp(self) -> int:
        stamp = max(self._clock(), self._last_stamp, self._floor)
        self._last_stamp = stamp
        return stamp

    # ------------------------------------------------------------------ #
    # Writes                                                              #
    # ------------------------------------------------------------------ #

    def apply_remote_snapshot(self, server_messages: Iterable[Message]) -> None:
        server_messages = list(server_messages)
        self._messages = merge_messages(self._messages, server_messages)
        if server_messages:
            self._last_stamp = max(self._last_stamp, max(m.timestamp for m in server_messages))

    def append_local(self, message: Message) -> Message:
        message.timestamp = self.next_timestamp()
        message.status = "pending"
        self._messages = [m for m in self._messages if m.id != message.id]
        self._messages.append(message)
        return message

    def mark_confirmed(self, message_id: str) -> None:
        message = self.get(message_id)
        if message is not None:
            message.status = None

    def mark_failed(self, message_id: str) -> None:
        message = self.get(message_id)
        if message is None:
            logger.warning("mark_failed: unknown message %s", message_id)
            return
        message.status = "failed"

    def reset(self) -> None:
        self._messages = []
        self._last_stamp = 0
        self._floor = 0
