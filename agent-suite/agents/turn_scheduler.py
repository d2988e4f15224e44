"""
TurnScheduler - one round of agent replies to one user message.

    IDLE -> SENDING_USER_MESSAGE -> DISPATCHING_AGENTS -> IDLE
                     |
                     +-- user message not persisted --> IDLE (no agent runs)

Agents answer strictly one after another; each agent's history includes the
replies already produced earlier in the same round.  The abort event is
checked before every agent, so stop() lets the current agent finish and
prevents the next one from starting.

Knowledge and task payloads are handed to an executor and not awaited.
Canvas updates are applied to the round's context and reported through the
on_canvas_update callback.
"""

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from agents.agent_invoker import AgentInvoker, AgentReply
from errors import StorageError
from models.message import CanvasAction, Message, system_error_message
from models.payloads import KnowledgeEntryPayload, TaskPayload
from models.suite import Agent, CanvasDocument, Directive, KnowledgeItem, Task, now_ms
from storage.conversation_state import ConversationState

logger = logging.getLogger(__name__)


class TurnPhase(str, Enum):
    IDLE = "IDLE"
    SENDING_USER_MESSAGE = "SENDING_USER_MESSAGE"
    DISPATCHING_AGENTS = "DISPATCHING_AGENTS"


@dataclass
class TurnContext:
    """Everything an agent needs to know about the round, besides history."""

    session_id: str
    knowledge_base: list[KnowledgeItem] = field(default_factory=list)
    directives: list[Directive] = field(default_factory=list)
    devils_advocate: bool = False
    deep_research: bool = False
    model: Optional[str] = None
    canvas: Optional[CanvasDocument] = None
    context_instruction: Optional[str] = None


@dataclass
class TurnResult:
    user_message: Message
    replies: list[Message] = field(default_factory=list)
    cancelled: bool = False
    halted: bool = False       # round stopped early for a reason other than stop()


def _due_date_ms(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(value).timestamp() * 1000)
    except ValueError:
        logger.debug("Ignoring unparseable task due date %r", value)
        return None


class TurnScheduler:
    def __init__(
        self,
        store,
        state: ConversationState,
        invoker: AgentInvoker,
        *,
        executor: Optional[Executor] = None,
        on_canvas_update: Optional[Callable[[CanvasDocument], None]] = None,
        on_responding: Optional[Callable[[Optional[Agent]], None]] = None,
    ):
        self.store = store
        self.state = state
        self.invoker = invoker
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="sink")
        self._on_canvas_update = on_canvas_update
        self._on_responding = on_responding
        self.abort = threading.Event()
        self.phase = TurnPhase.IDLE
        self.responding: Optional[Agent] = None

    @property
    def busy(self) -> bool:
        return self.phase is not TurnPhase.IDLE

    def stop(self) -> None:
        """Let the current agent finish; no further agent starts this round."""
        self.abort.set()

    # ------------------------------------------------------------------ #
    # Round                                                               #
    # ------------------------------------------------------------------ #

    def run_turn(self, user_message: Message, targets: list[Agent], ctx: TurnContext) -> TurnResult:
        result = TurnResult(user_message=user_message)
        if self.busy:
            logger.warning("run_turn called while %s; ignoring", self.phase.value)
            result.halted = True
            return result

        self.abort.clear()
        self.phase = TurnPhase.SENDING_USER_MESSAGE
        try:
            if not self._post(ctx.session_id, user_message):
                result.halted = True
                return result

            self.phase = TurnPhase.DISPATCHING_AGENTS
            history = self.state.context_messages()
            for agent in targets:
                if self.abort.is_set():
                    logger.info("Round stopped before %s", agent.name)
                    result.cancelled = True
                    break
                self._set_responding(agent)
                try:
                    reply = self._invoke(agent, targets, history, ctx)
                except Exception as exc:
                    logger.exception("Agent %s failed", agent.id)
                    error = system_error_message(f"{agent.name} could not respond ({exc}).")
                    self.state.append_local(error)
                    self.state.mark_failed(error.id)
                    result.replies.append(error)
                    continue

                if reply.error == "configuration":
                    error = system_error_message(reply.text)
                    self.state.append_local(error)
                    self.state.mark_failed(error.id)
                    result.replies.append(error)
                    result.halted = True
                    break

                message = self._reply_message(agent, reply)
                if self._post(ctx.session_id, message) and reply.ok:
                    history.append(message)
                result.replies.append(self.state.get(message.id) or message)
        finally:
            self._set_responding(None)
            self.phase = TurnPhase.IDLE
        return result

    def _invoke(self, agent: Agent, targets: list[Agent], history: list[Message], ctx: TurnContext) -> AgentReply:
        kwargs = {}
        if ctx.model:
            kwargs["model"] = ctx.model
        reply = self.invoker.respond(
            agent,
            targets,
            list(history),
            ctx.knowledge_base,
            ctx.directives,
            devils_advocate=ctx.devils_advocate,
            deep_research=ctx.deep_research,
            canvas_content=ctx.canvas.content if ctx.canvas else None,
            context_instruction=ctx.context_instruction,
            abort=self.abort,
            **kwargs,
        )
        if reply.ok:
            self._route_payloads(agent, reply, ctx)
        return reply

    def _set_responding(self, agent: Optional[Agent]) -> None:
        self.responding = agent
        if self._on_responding is not None:
            self._on_responding(agent)

    # ------------------------------------------------------------------ #
    # Persistence                                                         #
    # ------------------------------------------------------------------ #

    def _post(self, session_id: str, message: Message) -> bool:
        """Echo locally as pending, persist, then confirm or fail in place."""
        self.state.append_local(message)
        try:
            self.store.add_message(session_id, message)
        except StorageError as exc:
            logger.error("Could not persist message %s: %s", message.id, exc)
            self.state.mark_failed(message.id)
            return False
        self.state.mark_confirmed(message.id)
        return True

    @staticmethod
    def _reply_message(agent: Agent, reply: AgentReply) -> Message:
        extraction = reply.extraction
        canvas = extraction.canvas_update
        return Message(
            sender_id=agent.id,
            sender_name=agent.name,
            content=reply.text,
            is_error=not reply.ok,
            grounding_metadata=reply.grounding,
            chart_data=extraction.chart,
            email_draft=extraction.email_draft,
            calendar_event=extraction.calendar_event,
            canvas_action=CanvasAction(type="UPDATE", title=canvas.title) if canvas else None,
            context_used=reply.context_used,
        )

    # ------------------------------------------------------------------ #
    # Payload sinks                                                       #
    # ------------------------------------------------------------------ #

    def _route_payloads(self, agent: Agent, reply: AgentReply, ctx: TurnContext) -> None:
        extraction = reply.extraction
        if extraction.knowledge_entry is not None:
            self._submit(self._save_knowledge, agent, extraction.knowledge_entry)
        if extraction.task is not None:
            self._submit(self._save_task, extraction.task)
        if extraction.canvas_update is not None:
            ctx.canvas = CanvasDocument(
                title=extraction.canvas_update.title,
                content=extraction.canvas_update.content,
                last_updated_by=agent.name,
            )
            if self._on_canvas_update is not None:
                self._on_canvas_update(ctx.canvas)

    def _submit(self, fn, *args) -> None:
        def _run():
            try:
                fn(*args)
            except Exception:
                logger.exception("Payload sink %s failed", fn.__name__)

        self._executor.submit(_run)

    def _save_knowledge(self, agent: Agent, entry: KnowledgeEntryPayload) -> None:
        item = KnowledgeItem(
            title=entry.title,
            content=entry.content,
            category=entry.category,
            created_by=agent.name,
        )
        self.store.save_knowledge_item(item)
        logger.debug("Saved knowledge item %s from %s", item.id, agent.id)

    def _save_task(self, payload: TaskPayload) -> None:
        task = Task(
            title=payload.title,
            description=payload.description,
            priority=payload.priority,
            assignee=payload.assignee,
            due_date=_due_date_ms(payload.due_date),
            created_at=now_ms(),
        )
        self.store.save_task(task)
        logger.debug("Saved task %s", task.id)
