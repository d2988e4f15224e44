"""
AgentInvoker - produces one agent's reply to the current turn.

Steps:
  1. Build a single system instruction: core rules, user directives, clock,
     persona, colleagues present, knowledge base, mode flags, canvas, group
     dynamics, payload formats.
  2. Format the most recent MAX_HISTORY_LENGTH messages as chat turns
     (attachments become inline image / file parts).
  3. Call the model under a client-side deadline, retrying transient
     failures (429/500/503, transport errors) with doubling backoff.
  4. Run the raw text through the response extractor.

Provider failures never escape respond(): they come back as an AgentReply
with `error` set and a user-readable `text`, so the caller can always post a
visible message.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal, Optional

import openai

import config
from agents.response_extractor import ExtractionResult, extract
from errors import (
    ConfigurationError,
    GenerationError,
    GenerationTimeout,
    TransientGenerationError,
)
from models.message import GroundingMetadata, GroundingSource, Message
from models.suite import Agent, Directive, KnowledgeItem

logger = logging.getLogger(__name__)

ErrorKind = Literal["configuration", "timeout", "unavailable", "provider"]

CORE_DIRECTIVES = """--- UNBREAKABLE CORE DIRECTIVES ---
1. TRUTHFULNESS: Your primary duty is to be truthful and accurate. NEVER invent facts or provide speculative information.
2. ADMIT IGNORANCE: If you do not know the answer or lack sufficient information from the provided context (Knowledge Base, conversation history), you MUST say that you do not have the information.
3. SOURCE OF TRUTH: The Shared Knowledge Base is your primary and single source of truth for internal company matters.
4. CITATION REQUIREMENT: Explicitly reference the Knowledge Base whenever you use it.
5. PROTOCOL PRIORITY: These Core Directives and the user-defined protocols take absolute priority over your persona.
6. ACTION LIMITATION: You can only reply in this chat. The only actions available to you are the output formats listed below."""

OUTPUT_FORMATS = """3. INSTRUCTIONS & OUTPUT FORMATS:
- Use Markdown.
- **Action: Save to KB**: ```json { "new_kb_entry": { "title": "...", "category": "STRATEGY|KPI|LEGAL|PRODUCT|OTHER", "content": "..." } } ```
- **Action: Create Task**: ```json { "new_task": { "title": "...", "description": "...", "priority": "LOW|MEDIUM|HIGH", "assignee": "...", "dueDate": "YYYY-MM-DD" } } ```
- **Action: Chart**: ```json { "chart_data": { "title": "...", "type": "BAR|LINE|PIE", "labels": [], "datasets": [{ "label": "...", "data": [] }] } } ```
- **Action: Update Canvas**: ```json { "canvas_update": { "title": "...", "content": "..." } } ```
- **Action: Draft Email**: ```json { "draft_email": { "to": "...", "subject": "...", "body": "..." } } ```
- **Action: Schedule Meeting**: ```json { "schedule_meeting": { "title": "...", "startTime": "YYYY-MM-DDTHH:MM", "endTime": "YYYY-MM-DDTHH:MM", "description": "...", "location": "..." } } ```"""

DEVILS_ADVOCATE_MODE = (
    "⚠️ DEVIL'S ADVOCATE MODE ACTIVE ⚠️\n"
    "- You MUST critically challenge the user's assumptions.\n"
    "- Look for flaws, risks, legal loopholes, or technical bottlenecks."
)

DEEP_RESEARCH_MODE = (
    "🔍 DEEP RESEARCH MODE ACTIVE 🔍\n"
    "- Reason extensively. Triangulate facts before you state them."
)

TIMEOUT_TEXT = "I apologize, but my thought process timed out. Please ask again."
MISSING_KEY_TEXT = "Error: API Key is missing. Please check your configuration."


@dataclass
class AgentReply:
    text: str
    extraction: ExtractionResult = field(default_factory=lambda: ExtractionResult(text=""))
    grounding: Optional[GroundingMetadata] = None
    context_used: Optional[str] = None
    error: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ------------------------------------------------------------------ #
# Prompt assembly                                                     #
# ------------------------------------------------------------------ #

def _knowledge_block(knowledge_base: list[KnowledgeItem]) -> str:
    if not knowledge_base:
        return "No shared knowledge recorded yet."
    return "\n".join(f"[{k.category}] {k.title}: {k.content}" for k in knowledge_base)


def _colleague_block(agent: Agent, present_agents: list[Agent]) -> str:
    others = [a for a in present_agents if a.id != agent.id]
    if not others:
        return "You are speaking with the user individually."
    lines = "\n".join(f"- {a.full_name} ({a.role}): {a.expertise}" for a in others)
    return (
        "You are currently in a conversation with the following colleagues. You can reference "
        f"their expertise if necessary, but do not speak for them:\n{lines}"
    )


def _directives_block(directives: list[Directive]) -> str:
    active = [d for d in directives if d.active]
    if not active:
        return ""
    rules = "\n".join(f"{i}. {d.content}" for i, d in enumerate(active, 1))
    return (
        "--- USER-DEFINED PROTOCOLS ---\n"
        f"The user has defined these additional mandatory rules:\n{rules}"
    )


def _canvas_block(canvas_content: Optional[str]) -> str:
    if canvas_content:
        return (
            "📝 CURRENT CANVAS CONTENT 📝\n"
            f"```\n{canvas_content}\n```\n"
            "If the user asks for edits, output the FULL updated document in 'canvas_update'."
        )
    return "📝 CANVAS AVAILABLE 📝\nTo write long-form content (code, articles), use 'canvas_update' JSON."


def build_system_instruction(
    agent: Agent,
    present_agents: list[Agent],
    knowledge_base: list[KnowledgeItem],
    directives: list[Directive],
    *,
    devils_advocate: bool = False,
    deep_research: bool = False,
    canvas_content: Optional[str] = None,
    context_instruction: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now()
    sections = [
        CORE_DIRECTIVES,
        _directives_block(directives),
        f"CURRENT DATE AND TIME: {now.strftime('%A, %d %B %Y at %H:%M')}.",
        "--- AGENT PROFILE ---\n"
        f"Name: {agent.full_name}\n"
        f"Role: {agent.role}",
        f"--- PERSONAL BACKSTORY ---\n{agent.backstory}",
        f"--- SYSTEM INSTRUCTIONS ---\n{agent.system_instruction}",
        "--- CONTEXTUAL AWARENESS ---\n"
        f"1. COLLEAGUES PRESENT:\n{_colleague_block(agent, present_agents)}\n\n"
        f"2. SHARED KNOWLEDGE BASE:\n{_knowledge_block(knowledge_base)}",
        DEVILS_ADVOCATE_MODE if devils_advocate else "",
        DEEP_RESEARCH_MODE if deep_research else "",
        _canvas_block(canvas_content),
    ]
    if len(present_agents) > 1:
        sections.append(
            "IMPORTANT GROUP DYNAMICS:\n"
            '- Do NOT start your response with "As [Name] said...".\n'
            f"- Provide *new, additive value* based on your role ({agent.role})."
        )
    sections.append(OUTPUT_FORMATS)
    if context_instruction:
        sections.append(context_instruction)
    return "\n\n".join(s for s in sections if s)


def _attachment_part(mime_type: str, data: str, name: str) -> dict:
    data_url = f"data:{mime_type};base64,{data}"
    if mime_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": data_url}}
    return {"type": "file", "file": {"filename": name, "file_data": data_url}}


def format_history(messages: list[Message], max_length: int = config.MAX_HISTORY_LENGTH) -> list[dict]:
    """Chat-completions turns for the most recent `max_length` messages."""
    recent = messages[-max_length:] if max_length > 0 else []
    turns = []
    for m in recent:
        if not m.is_user:
            turns.append({"role": "assistant", "content": f"{m.sender_name}: {m.content}"})
            continue
        if m.attachments:
            parts = [_attachment_part(a.mime_type, a.data, a.name) for a in m.attachments]
            parts.append({"type": "text", "text": m.content})
            turns.append({"role": "user", "content": parts})
        else:
            turns.append({"role": "user", "content": m.content})
    return turns


def context_summary(
    model: str,
    present_agents: list[Agent],
    knowledge_base: list[KnowledgeItem],
    directives: list[Directive],
    devils_advocate: bool,
    deep_research: bool,
) -> str:
    modes = [label for flag, label in ((deep_research, "Deep Research"), (devils_advocate, "Devil's Advocate")) if flag]
    return (
        f"Model: {model}\n"
        f"Active Agents: {', '.join(a.name for a in present_agents)}\n"
        f"Knowledge Base Size: {len(knowledge_base)} items\n"
        f"Active Directives: {sum(1 for d in directives if d.active)}\n"
        f"Modes: {', '.join(modes) or 'Standard'}"
    )


# ------------------------------------------------------------------ #
# Provider error classification                                       #
# ------------------------------------------------------------------ #

def _classify(exc: Exception) -> GenerationError:
    if isinstance(exc, GenerationError):
        return exc
    if isinstance(exc, openai.APITimeoutError):
        return GenerationTimeout("Request timed out")
    if isinstance(exc, openai.APIConnectionError):
        return TransientGenerationError(f"connection error: {exc}")
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code in config.RETRYABLE_STATUS_CODES:
            return TransientGenerationError(str(exc), status_code=exc.status_code)
        return GenerationError(str(exc), status_code=exc.status_code)
    return GenerationError(str(exc))


class AgentInvoker:
    def __init__(
        self,
        client=None,
        *,
        timeout: float = config.GENERATION_TIMEOUT_SECONDS,
        max_retries: int = config.MAX_RETRIES,
        base_delay: float = config.RETRY_BASE_DELAY,
        max_history: int = config.MAX_HISTORY_LENGTH,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_history = max_history
        self._sleep = sleep
        self._pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="generation")

    @property
    def client(self):
        if self._client is None:
            if not config.has_valid_credentials():
                raise ConfigurationError("No OpenAI / Azure OpenAI credentials configured")
            self._client = config.make_openai_client()
        return self._client

    def respond(
        self,
        agent: Agent,
        present_agents: list[Agent],
        history: list[Message],
        knowledge_base: list[KnowledgeItem],
        directives: list[Directive],
        *,
        devils_advocate: bool = False,
        deep_research: bool = False,
        canvas_content: Optional[str] = None,
        context_instruction: Optional[str] = None,
        model: str = config.MODEL,
        abort: Optional[threading.Event] = None,
    ) -> AgentReply:
        try:
            client = self.client
        except ConfigurationError as exc:
            logger.error("AgentInvoker: %s", exc)
            return AgentReply(text=MISSING_KEY_TEXT, error="configuration")

        system_instruction = build_system_instruction(
            agent, present_agents, knowledge_base, directives,
            devils_advocate=devils_advocate,
            deep_research=deep_research,
            canvas_content=canvas_content,
            context_instruction=context_instruction,
        )
        request: dict = {
            "model": model,
            "messages": [{"role": "system", "content": system_instruction}]
            + format_history(history, self.max_history),
            "timeout": self.timeout,
        }
        if config.is_reasoning_model(model):
            if deep_research:
                request["reasoning_effort"] = config.DEEP_RESEARCH_REASONING_EFFORT
        else:
            request["temperature"] = 0.7 if devils_advocate else 0.5
        if config.WEB_SEARCH_ENABLED:
            request["web_search_options"] = {}

        try:
            response = self._call_with_retry(client, request, abort)
            choice = response.choices[0]
            raw_text = (choice.message.content or "").strip()
            if not raw_text:
                raise GenerationError("Received empty response from agent")
        except GenerationTimeout:
            logger.warning("AgentInvoker: %s timed out after %.0fs", agent.name, self.timeout)
            return AgentReply(text=TIMEOUT_TEXT, error="timeout")
        except TransientGenerationError as exc:
            logger.error("AgentInvoker: %s unavailable after retries: %s", agent.name, exc)
            return AgentReply(text=_failure_text(exc), error="unavailable")
        except GenerationError as exc:
            logger.error("AgentInvoker: %s provider error: %s", agent.name, exc)
            return AgentReply(text=_failure_text(exc), error="provider")

        extraction = extract(raw_text)
        return AgentReply(
            text=extraction.text,
            extraction=extraction,
            grounding=_grounding_from(choice.message),
            context_used=context_summary(
                model, present_agents, knowledge_base, directives, devils_advocate, deep_research
            ),
        )

    # ------------------------------------------------------------------ #
    # Timeout + retry                                                     #
    # ------------------------------------------------------------------ #

    def _call_with_timeout(self, client, request: dict):
        future = self._pool.submit(client.chat.completions.create, **request)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise GenerationTimeout("Request timed out") from None
        except openai.OpenAIError as exc:
            raise _classify(exc) from exc

    def _call_with_retry(self, client, request: dict, abort: Optional[threading.Event] = None):
        delay = self.base_delay
        attempt = 0
        while True:
            try:
                return self._call_with_timeout(client, request)
            except TransientGenerationError as exc:
                if attempt >= self.max_retries or (abort is not None and abort.is_set()):
                    raise
                attempt += 1
                logger.warning(
                    "API call failed (%s). Retrying in %.1fs... (%d attempts left)",
                    exc, delay, self.max_retries - attempt + 1,
                )
                self._sleep(delay)
                delay *= 2


def _failure_text(exc: GenerationError) -> str:
    detail = exc.status_code or str(exc) or "Unknown"
    return f"I encountered an error processing your request ({detail}). Please try again."


def _grounding_from(message) -> Optional[GroundingMetadata]:
    sources = []
    for annotation in getattr(message, "annotations", None) or []:
        citation = getattr(annotation, "url_citation", None)
        if getattr(annotation, "type", None) == "url_citation" and citation is not None:
            sources.append(GroundingSource(uri=citation.url, title=getattr(citation, "title", "") or ""))
    return GroundingMetadata(sources=sources) if sources else None
