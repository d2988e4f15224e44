"""
Orchestrator - owns the live state of one user's suite and drives turns.

State held here (and nowhere else):
  - current session, mode and ambient agent selection
  - mode flags (devil's advocate, deep research) and selected model
  - the canvas document and which side panel is open
  - the "currently responding" agent (via the TurnScheduler)

Turns can run inline (handle_message) or on a single turn worker
(submit_message / submit_regenerate) so a front-end can keep polling and call
stop() while agents answer.

Store snapshots for agents, knowledge, directives and sessions are kept
current through listeners; the active session's messages flow into a
ConversationState.

Slash commands handled locally, never sent to an agent:
  | Command  | Action                                  |
  |----------|-----------------------------------------|
  | /clear   | New session in the current mode         |
  | /kb      | Open the knowledge panel                |
  | /tasks   | Open the task board                     |
  | /reset   | Reload state from the store             |
  | /help    | Open the help panel                     |
Anything else starting with "/" is sent as an ordinary message.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional

from config import MODEL, USER_DISPLAY_NAME
from agents.agent_invoker import AgentInvoker
from agents.participant_resolver import (
    find_individual_session,
    resolve_targets,
    toggle_selection,
)
from agents.turn_scheduler import TurnContext, TurnResult, TurnScheduler
from errors import StoragePermissionError
from models.message import Attachment, Message
from models.suite import MODE_META, Agent, CanvasDocument, ChatSession, Directive, KnowledgeItem, now_ms
from storage import ConversationState, StorageManager

logger = logging.getLogger(__name__)

GROUP_CONTEXT_INSTRUCTION = "Collaborative discussion. Be concise."

SLASH_COMMANDS = {
    "/clear": "Start a new session in the current mode",
    "/kb": "Open the knowledge base",
    "/tasks": "Open the task board",
    "/reset": "Reload everything from the store",
    "/help": "Show this help",
}


class Orchestrator:
    def __init__(
        self,
        storage: StorageManager,
        invoker: Optional[AgentInvoker] = None,
        *,
        state: Optional[ConversationState] = None,
        executor: Optional[Executor] = None,
        turn_executor: Optional[Executor] = None,
    ):
        self.storage = storage
        self.state = state or ConversationState()
        self.scheduler = TurnScheduler(
            storage,
            self.state,
            invoker or AgentInvoker(),
            executor=executor,
            on_canvas_update=self._apply_agent_canvas,
            on_responding=self._set_responding,
        )
        self._turn_executor = turn_executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="turn")
        self._turn: Optional[Future] = None
        self.responding: Optional[Agent] = None

        self.agents: list[Agent] = []
        self.knowledge_base: list[KnowledgeItem] = []
        self.directives: list[Directive] = []
        self.sessions: list[ChatSession] = []

        self.current_session: Optional[ChatSession] = None
        self.mode: str = "INDIVIDUAL"
        self.selected_agent_ids: list[str] = []

        self.devils_advocate = False
        self.deep_research = False
        self.selected_model = MODEL

        self.canvas: Optional[CanvasDocument] = None
        self.canvas_open = False
        self.open_panel: Optional[str] = None       # "knowledge" | "tasks" | "directives" | "help"
        self.permission_error: Optional[str] = None

        self._unsubscribers: list[Callable[[], None]] = []
        self._unsubscribe_messages: Optional[Callable[[], None]] = None

        storage.on_permission_error(self._on_permission_error)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                           #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Seed defaults, subscribe to the store, open the latest session."""
        self.storage.ensure_defaults()
        self._subscribe()
        if self.sessions:
            self.switch_session(self.sessions[0].id)
        else:
            self.create_session("INDIVIDUAL")

    def reload(self) -> None:
        session_id = self.current_session.id if self.current_session else None
        self.close()
        self._subscribe()
        if session_id and self.storage.get_session(session_id):
            self.switch_session(session_id)
        elif self.sessions:
            self.switch_session(self.sessions[0].id)
        else:
            self.create_session(self.mode)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._detach_messages()

    def _subscribe(self) -> None:
        self._unsubscribers = [
            self.storage.listen_to_agents(self._set_agents),
            self.storage.listen_to_knowledge_base(self._set_knowledge),
            self.storage.listen_to_directives(self._set_directives),
            self.storage.listen_to_sessions(self._set_sessions),
        ]

    def _set_agents(self, agents: list[Agent]) -> None:
        self.agents = agents

    def _set_knowledge(self, items: list[KnowledgeItem]) -> None:
        self.knowledge_base = items

    def _set_directives(self, directives: list[Directive]) -> None:
        self.directives = directives

    def _set_sessions(self, sessions: list[ChatSession]) -> None:
        self.sessions = sessions

    def _on_permission_error(self, exc: StoragePermissionError) -> None:
        self.permission_error = str(exc)

    def dismiss_permission_error(self) -> None:
        self.permission_error = None
        self.storage.clear_permission_error()

    # ------------------------------------------------------------------ #
    # Read helpers                                                        #
    # ------------------------------------------------------------------ #

    @property
    def messages(self) -> list[Message]:
        return self.state.messages

    @property
    def active_agents(self) -> list[Agent]:
        return [a for a in self.agents if a.id in self.selected_agent_ids]

    @property
    def is_processing(self) -> bool:
        turn_pending = self._turn is not None and not self._turn.done()
        return self.scheduler.busy or turn_pending

    def _set_responding(self, agent: Optional[Agent]) -> None:
        self.responding = agent

    # ------------------------------------------------------------------ #
    # Sessions                                                            #
    # ------------------------------------------------------------------ #

    def create_session(self, mode: str, participant_ids: Optional[list[str]] = None) -> ChatSession:
        if participant_ids is None:
            if mode == "WHOLE_SUITE":
                participant_ids = [a.id for a in self.agents]
            else:
                participant_ids = [self.agents[0].id] if self.agents else []
        stamp = now_ms()
        session = ChatSession(
            user_id=self.storage.user_id,
            title=f"New {MODE_META[mode]['label']} {datetime.now().strftime('%H:%M:%S')}",
            mode=mode,
            participant_ids=participant_ids,
            created_at=stamp,
            last_message_at=stamp,
        )
        self.storage.save_session(session)
        logger.info("Created %s session %s", mode, session.id)
        self._attach(session)
        return session

    def switch_session(self, session_id: str) -> Optional[ChatSession]:
        session = next((s for s in self.sessions if s.id == session_id), None) or self.storage.get_session(session_id)
        if session is None:
            logger.warning("switch_session: unknown session %s", session_id)
            return None
        self._attach(session)
        return session

    def delete_session(self, session_id: str) -> None:
        self.storage.delete_session(session_id)
        if self.current_session and self.current_session.id == session_id:
            self._detach_messages()
            self.current_session = None
            remaining = [s for s in self.sessions if s.id != session_id]
            if remaining:
                self.switch_session(remaining[0].id)
            else:
                self.create_session(self.mode)

    def set_mode(self, mode: str) -> ChatSession:
        """Changing mode always opens a fresh session in that mode."""
        return self.create_session(mode)

    def _attach(self, session: ChatSession) -> None:
        self._detach_messages()
        self.state.reset()
        self.state.set_floor(session.created_at)
        self.current_session = session
        self.mode = session.mode
        self.selected_agent_ids = list(session.participant_ids)
        self._unsubscribe_messages = self.storage.listen_to_messages(session.id, self.state.apply_remote_snapshot)

    def _detach_messages(self) -> None:
        if self._unsubscribe_messages is not None:
            self._unsubscribe_messages()
            self._unsubscribe_messages = None

    # ------------------------------------------------------------------ #
    # Roster selection                                                    #
    # ------------------------------------------------------------------ #

    def select_agent(self, agent_id: str) -> None:
        """
        Individual mode: go to (or create) the one-to-one session with the
        agent.  Group modes: toggle the agent in the current selection.
        """
        if self.mode == "INDIVIDUAL":
            existing = find_individual_session(self.sessions, agent_id)
            if existing is not None:
                self.switch_session(existing.id)
            else:
                self.create_session("INDIVIDUAL", [agent_id])
            return

        self.selected_agent_ids = toggle_selection(self.selected_agent_ids, agent_id)
        if self.current_session is not None:
            self.current_session = self.current_session.model_copy(
                update={"participant_ids": list(self.selected_agent_ids)}
            )
            self.storage.save_session(self.current_session)

    # ------------------------------------------------------------------ #
    # Sending                                                             #
    # ------------------------------------------------------------------ #

    def handle_command(self, text: str) -> bool:
        """Run a slash command.  Returns False if `text` is not one."""
        command = text.strip().lower()
        if command not in SLASH_COMMANDS:
            return False
        logger.debug("Slash command %s", command)
        if command == "/clear":
            self.create_session(self.mode)
        elif command == "/kb":
            self.open_panel = "knowledge"
        elif command == "/tasks":
            self.open_panel = "tasks"
        elif command == "/reset":
            self.reload()
        elif command == "/help":
            self.open_panel = "help"
        return True

    def handle_message(self, text: str, attachments: Optional[list[Attachment]] = None) -> Optional[TurnResult]:
        """
        Send a user message and run one round of agent replies.

        Returns None when the input was a slash command or empty.
        """
        text = text or ""
        if text.startswith("/") and self.handle_command(text):
            return None
        if not text.strip() and not attachments:
            return None
        if self.current_session is None:
            self.create_session(self.mode)

        user_message = Message(
            sender_id=self.storage.user_id,
            sender_name=USER_DISPLAY_NAME,
            content=text,
            is_user=True,
            attachments=list(attachments or []),
        )
        targets = resolve_targets(text, self.agents, self.selected_agent_ids)
        logger.info(
            "Turn in %s: %d target(s) %s",
            self.current_session.id, len(targets), [a.id for a in targets],
        )
        ctx = TurnContext(
            session_id=self.current_session.id,
            knowledge_base=list(self.knowledge_base),
            directives=list(self.directives),
            devils_advocate=self.devils_advocate,
            deep_research=self.deep_research,
            model=self.selected_model,
            canvas=self.canvas,
            context_instruction=GROUP_CONTEXT_INSTRUCTION if self.mode != "INDIVIDUAL" else None,
        )
        return self.scheduler.run_turn(user_message, targets, ctx)

    def regenerate(self) -> Optional[TurnResult]:
        """Resend the most recent user message of this session."""
        last = next((m for m in reversed(self.state.messages) if m.is_user), None)
        if last is None:
            return None
        return self.handle_message(last.content, [a.model_copy() for a in last.attachments])

    def submit_message(self, text: str, attachments: Optional[list[Attachment]] = None) -> Optional[Future]:
        """
        Run handle_message on the turn worker and return its future.

        Slash commands still run inline.  Returns None when no round was
        started, including while an earlier one is still running.
        """
        text = text or ""
        if text.startswith("/") and self.handle_command(text):
            return None
        return self._start_turn(self.handle_message, text, attachments)

    def submit_regenerate(self) -> Optional[Future]:
        return self._start_turn(self.regenerate)

    def _start_turn(self, fn, *args) -> Optional[Future]:
        if self.is_processing:
            logger.warning("A round is already running; ignoring new input")
            return None
        self._turn = self._turn_executor.submit(fn, *args)
        self._turn.add_done_callback(_log_turn_failure)
        return self._turn

    def stop(self) -> None:
        self.scheduler.stop()

    def set_feedback(self, message_id: str, feedback: Optional[str]) -> None:
        message = self.state.get(message_id)
        if message is None or self.current_session is None:
            logger.warning("set_feedback: unknown message %s", message_id)
            return
        updated = message.model_copy(update={"feedback": feedback})
        self.storage.update_message(self.current_session.id, updated)

    # ------------------------------------------------------------------ #
    # Mode flags                                                          #
    # ------------------------------------------------------------------ #

    def toggle_devils_advocate(self) -> bool:
        self.devils_advocate = not self.devils_advocate
        return self.devils_advocate

    def toggle_deep_research(self) -> bool:
        self.deep_research = not self.deep_research
        return self.deep_research

    def set_model(self, model: str) -> None:
        self.selected_model = model

    # ------------------------------------------------------------------ #
    # Canvas                                                              #
    # ------------------------------------------------------------------ #

    def _apply_agent_canvas(self, doc: CanvasDocument) -> None:
        self.canvas = doc
        self.canvas_open = True

    def edit_canvas(self, content: str, title: Optional[str] = None) -> CanvasDocument:
        """User edit: overwrite the whole document."""
        self.canvas = CanvasDocument(
            title=title or (self.canvas.title if self.canvas else "Untitled"),
            content=content,
            language=self.canvas.language if self.canvas else "markdown",
            last_updated_by="User",
        )
        return self.canvas


def _log_turn_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Background round failed", exc_info=exc)
