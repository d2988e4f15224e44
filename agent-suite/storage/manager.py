"""
StorageManager - atomic JSON-backed document store, one directory per user.

Files (under DATA_DIR/users/<user_id>/):
  agents.json              - list[Agent]
  knowledge_base.json      - list[KnowledgeItem]
  folders.json             - list[Folder]
  tasks.json               - list[Task]
  sessions.json            - list[ChatSession]
  directives.json          - list[Directive]
  messages/<session>.json  - list[Message]  (status stripped)

Writes are upserts keyed by id.  listen_to_*() registers a callback that gets
the full current snapshot immediately and again after every change to that
collection, and returns an unsubscribe function.

A PermissionError from the filesystem is raised as StoragePermissionError and
latches: every later write fails fast with the same error until
clear_permission_error() is called.
"""

import json
import logging
import os
import tempfile
import threading
from collections import defaultdict
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel

from config import DATA_DIR
from errors import StorageError, StoragePermissionError
from models.message import Message
from models.suite import (
    Agent,
    ChatSession,
    Directive,
    Folder,
    KnowledgeItem,
    Task,
    now_ms,
)

logger = logging.getLogger(__name__)

Listener = Callable[[list], None]
Unsubscribe = Callable[[], None]


def _atomic_write(path: Path, data: list[dict]) -> None:
    """Write JSON to a temp file then atomically rename to target."""
    dir_ = path.parent
    dir_.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=dir_, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _load_json(path: Path) -> list[dict]:
    if not path.exists():
        return []
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class StorageManager:
    """Single access point for all persistent storage of one user."""

    def __init__(self, user_id: str, data_dir: Optional[Path] = None) -> None:
        self.user_id = user_id
        self.root = Path(data_dir or DATA_DIR) / "users" / user_id
        self._lock = threading.RLock()
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._permission_handlers: list[Callable[[StoragePermissionError], None]] = []
        self._permission_error: Optional[StoragePermissionError] = None

    # ------------------------------------------------------------------ #
    # Internals                                                           #
    # ------------------------------------------------------------------ #

    def _path(self, collection: str) -> Path:
        return self.root / f"{collection}.json"

    def _read(self, collection: str) -> list[dict]:
        try:
            return _load_json(self._path(collection))
        except PermissionError as exc:
            raise self._permission_denied(exc) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Could not read {collection}: {exc}") from exc

    def _write(self, collection: str, records: list[dict]) -> None:
        if self._permission_error is not None:
            raise self._permission_error
        try:
            _atomic_write(self._path(collection), records)
        except PermissionError as exc:
            raise self._permission_denied(exc) from exc
        except OSError as exc:
            raise StorageError(f"Could not write {collection}: {exc}") from exc

    def _permission_denied(self, exc: Exception) -> StoragePermissionError:
        error = StoragePermissionError(f"Missing or insufficient permissions: {exc}")
        if self._permission_error is None:
            logger.warning("Store permission error detected: %s", exc)
            self._permission_error = error
            for handler in list(self._permission_handlers):
                handler(error)
        return error

    def _upsert(self, collection: str, record: dict) -> None:
        with self._lock:
            records = self._read(collection)
            for i, r in enumerate(records):
                if r["id"] == record["id"]:
                    records[i] = record
                    break
            else:
                records.append(record)
            self._write(collection, records)
        self._notify(collection)

    def _delete(self, collection: str, record_id: str) -> bool:
        with self._lock:
            records = self._read(collection)
            kept = [r for r in records if r["id"] != record_id]
            if len(kept) == len(records):
                return False
            self._write(collection, kept)
        self._notify(collection)
        return True

    def _snapshot(self, collection: str) -> list:
        model = _COLLECTION_MODELS[collection.split("/", 1)[0]]
        return [model.model_validate(r) for r in self._read(collection)]

    def _notify(self, collection: str) -> None:
        listeners = list(self._listeners.get(collection, []))
        if not listeners:
            return
        snapshot = self._sorted(collection, self._snapshot(collection))
        for callback in listeners:
            try:
                callback(list(snapshot))
            except Exception:
                logger.exception("Listener for %s raised", collection)

    def _listen(self, collection: str, callback: Listener) -> Unsubscribe:
        self._listeners[collection].append(callback)
        try:
            callback(self._sorted(collection, self._snapshot(collection)))
        except StorageError:
            logger.exception("Initial snapshot for %s failed", collection)

        def unsubscribe() -> None:
            if callback in self._listeners.get(collection, []):
                self._listeners[collection].remove(callback)

        return unsubscribe

    @staticmethod
    def _sorted(collection: str, items: list) -> list:
        if collection.startswith("messages/"):
            return sorted(items, key=lambda m: m.timestamp)
        if collection == "sessions":
            return sorted(items, key=lambda s: s.last_message_at, reverse=True)
        if collection == "knowledge_base":
            return sorted(items, key=lambda k: k.timestamp, reverse=True)
        if collection in ("folders", "directives"):
            return sorted(items, key=lambda x: x.created_at)
        return items

    # ------------------------------------------------------------------ #
    # Permission state                                                    #
    # ------------------------------------------------------------------ #

    @property
    def permission_error(self) -> Optional[StoragePermissionError]:
        return self._permission_error

    def on_permission_error(self, handler: Callable[[StoragePermissionError], None]) -> None:
        self._permission_handlers.append(handler)

    def clear_permission_error(self) -> None:
        self._permission_error = None

    # ------------------------------------------------------------------ #
    # Seeding                                                             #
    # ------------------------------------------------------------------ #

    def ensure_defaults(self) -> None:
        """Seed the built-in personas and starter knowledge for a new user.

        Only runs when the user has no agents at all; an existing roster
        (including edited defaults) is never touched.
        """
        from agents.default_agents import DEFAULT_AGENTS, DEFAULT_KNOWLEDGE  # local import avoids circular deps

        with self._lock:
            if self._read("agents"):
                return
            self._write("agents", [a.model_dump() for a in DEFAULT_AGENTS])
            if not self._read("knowledge_base"):
                self._write("knowledge_base", [k.model_dump() for k in DEFAULT_KNOWLEDGE])
        self._notify("agents")
        self._notify("knowledge_base")

    # ------------------------------------------------------------------ #
    # Agents                                                              #
    # ------------------------------------------------------------------ #

    def save_agent(self, agent: Agent) -> Agent:
        self._upsert("agents", agent.model_dump())
        return agent

    def delete_agent(self, agent_id: str) -> bool:
        return self._delete("agents", agent_id)

    def list_agents(self) -> list[Agent]:
        return self._snapshot("agents")

    def listen_to_agents(self, callback: Callable[[list[Agent]], None]) -> Unsubscribe:
        """Like the other listeners, but an empty roster reads as the built-in personas."""
        from agents.default_agents import DEFAULT_AGENTS

        def _with_fallback(agents: list[Agent]) -> None:
            callback(agents or [a.model_copy() for a in DEFAULT_AGENTS])

        return self._listen("agents", _with_fallback)

    # ------------------------------------------------------------------ #
    # Knowledge base + folders                                            #
    # ------------------------------------------------------------------ #

    def save_knowledge_item(self, item: KnowledgeItem) -> KnowledgeItem:
        self._upsert("knowledge_base", item.model_dump())
        return item

    def delete_knowledge_item(self, item_id: str) -> bool:
        return self._delete("knowledge_base", item_id)

    def list_knowledge(self) -> list[KnowledgeItem]:
        return self._sorted("knowledge_base", self._snapshot("knowledge_base"))

    def listen_to_knowledge_base(self, callback: Callable[[list[KnowledgeItem]], None]) -> Unsubscribe:
        return self._listen("knowledge_base", callback)

    def save_folder(self, folder: Folder) -> Folder:
        self._upsert("folders", folder.model_dump())
        return folder

    def delete_folder(self, folder_id: str) -> bool:
        """Delete a folder; its items move back to the root."""
        with self._lock:
            items = self._read("knowledge_base")
            moved = False
            for r in items:
                if r.get("folder_id") == folder_id:
                    r["folder_id"] = None
                    moved = True
            if moved:
                self._write("knowledge_base", items)
        if moved:
            self._notify("knowledge_base")
        return self._delete("folders", folder_id)

    def listen_to_folders(self, callback: Callable[[list[Folder]], None]) -> Unsubscribe:
        return self._listen("folders", callback)

    # ------------------------------------------------------------------ #
    # Tasks                                                               #
    # ------------------------------------------------------------------ #

    def save_task(self, task: Task) -> Task:
        self._upsert("tasks", task.model_dump())
        return task

    def delete_task(self, task_id: str) -> bool:
        return self._delete("tasks", task_id)

    def list_tasks(self) -> list[Task]:
        return self._snapshot("tasks")

    def listen_to_tasks(self, callback: Callable[[list[Task]], None]) -> Unsubscribe:
        return self._listen("tasks", callback)

    # ------------------------------------------------------------------ #
    # Directives                                                          #
    # ------------------------------------------------------------------ #

    def save_directive(self, directive: Directive) -> Directive:
        self._upsert("directives", directive.model_dump())
        return directive

    def delete_directive(self, directive_id: str) -> bool:
        return self._delete("directives", directive_id)

    def list_directives(self) -> list[Directive]:
        return self._sorted("directives", self._snapshot("directives"))

    def listen_to_directives(self, callback: Callable[[list[Directive]], None]) -> Unsubscribe:
        return self._listen("directives", callback)

    # ------------------------------------------------------------------ #
    # Sessions                                                            #
    # ------------------------------------------------------------------ #

    def save_session(self, session: ChatSession) -> ChatSession:
        self._upsert("sessions", session.model_dump())
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        for r in self._read("sessions"):
            if r["id"] == session_id:
                return ChatSession.model_validate(r)
        return None

    def list_sessions(self) -> list[ChatSession]:
        return self._sorted("sessions", self._snapshot("sessions"))

    def delete_session(self, session_id: str) -> bool:
        deleted = self._delete("sessions", session_id)
        if deleted:
            path = self._path(f"messages/{session_id}")
            try:
                path.unlink(missing_ok=True)
            except PermissionError as exc:
                raise self._permission_denied(exc) from exc
        return deleted

    def listen_to_sessions(self, callback: Callable[[list[ChatSession]], None]) -> Unsubscribe:
        return self._listen("sessions", callback)

    # ------------------------------------------------------------------ #
    # Per-session messages                                                #
    # ------------------------------------------------------------------ #

    def add_message(self, session_id: str, message: Message) -> None:
        """
        Persist a message and bump the session's last activity.

        Only the message write can fail the call; a failed bump is logged.
        """
        self._upsert(f"messages/{session_id}", message.to_record())
        try:
            self._touch_session(session_id)
        except StorageError as exc:
            logger.warning("Could not bump last activity of session %s: %s", session_id, exc)

    def _touch_session(self, session_id: str) -> None:
        with self._lock:
            sessions = self._read("sessions")
            for r in sessions:
                if r["id"] == session_id:
                    r["last_message_at"] = now_ms()
                    self._write("sessions", sessions)
                    break
            else:
                return
        self._notify("sessions")

    def update_message(self, session_id: str, message: Message) -> None:
        self._upsert(f"messages/{session_id}", message.to_record())

    def load_messages(self, session_id: str) -> list[Message]:
        return self._sorted(f"messages/{session_id}", self._snapshot(f"messages/{session_id}"))

    def listen_to_messages(self, session_id: str, callback: Callable[[list[Message]], None]) -> Unsubscribe:
        return self._listen(f"messages/{session_id}", callback)


_COLLECTION_MODELS: dict[str, type[BaseModel]] = {
    "agents": Agent,
    "knowledge_base": KnowledgeItem,
    "folders": Folder,
    "tasks": Task,
    "sessions": ChatSession,
    "directives": Directive,
    "messages": Message,
}
