"""
Shared fixtures: the app directory on sys.path, a scripted OpenAI client,
a recording sleep, an inline executor and in-memory / temporary stores.
"""

import sys
from concurrent.futures import Executor, Future
from pathlib import Path
from types import SimpleNamespace

import pytest

agent_dir = Path(__file__).resolve().parent.parent / "agent-suite"
sys.path.insert(0, str(agent_dir))

from agents.agent_invoker import AgentReply  # noqa: E402
from agents.default_agents import DEFAULT_AGENTS  # noqa: E402
from agents.response_extractor import extract  # noqa: E402
from errors import StorageError  # noqa: E402
from storage import StorageManager  # noqa: E402


# ── Fake OpenAI client ────────────────────────────────────────────

def make_completion(content, annotations=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, annotations=annotations or [])
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])


class FakeCompletions:
    """Plays back a script: str -> completion text, Exception -> raised, callable -> called."""

    def __init__(self, script):
        self.script = list(script)
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        step = self.script.pop(0) if self.script else "OK"
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = step(**kwargs)
        if isinstance(step, str):
            return make_completion(step)
        return step


class FakeOpenAI:
    def __init__(self, *script):
        self.completions = FakeCompletions(script)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> list[dict]:
        return self.completions.calls


@pytest.fixture
def fake_client():
    return FakeOpenAI


# ── Sleep / executor ──────────────────────────────────────────────

class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future


@pytest.fixture
def inline_executor():
    return InlineExecutor()


# ── Stores ────────────────────────────────────────────────────────

class FakeStore:
    """The slice of StorageManager the scheduler uses, without listeners."""

    def __init__(self, fail_when=None):
        self.messages: list = []
        self.knowledge: list = []
        self.tasks: list = []
        self._fail_when = fail_when or (lambda message: False)

    def add_message(self, session_id, message):
        if self._fail_when(message):
            raise StorageError("write refused")
        self.messages.append((session_id, message.to_record()))

    def save_knowledge_item(self, item):
        self.knowledge.append(item)
        return item

    def save_task(self, task):
        self.tasks.append(task)
        return task


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def failing_store():
    """FakeStore whose add_message raises for messages matching the predicate."""
    return FakeStore


@pytest.fixture
def store(tmp_path):
    return StorageManager("test-user", data_dir=tmp_path)


# ── Agents / invoker doubles ──────────────────────────────────────

@pytest.fixture
def agents():
    return [a.model_copy() for a in DEFAULT_AGENTS]


class ScriptedInvoker:
    """
    Stands in for AgentInvoker.  `reply_for(agent, history)` returns raw model
    text, an AgentReply, or raises.  Every call's history is recorded.
    """

    def __init__(self, reply_for=None):
        self.reply_for = reply_for or (lambda agent, history: f"{agent.name} here.")
        self.calls: list[dict] = []

    def respond(self, agent, present_agents, history, knowledge_base, directives, **kwargs):
        self.calls.append({
            "agent": agent,
            "present": list(present_agents),
            "history": list(history),
            **kwargs,
        })
        result = self.reply_for(agent, history)
        if isinstance(result, AgentReply):
            return result
        extraction = extract(result)
        return AgentReply(text=extraction.text, extraction=extraction, context_used="test")

    @property
    def responders(self) -> list[str]:
        return [c["agent"].id for c in self.calls]


@pytest.fixture
def scripted_invoker():
    return ScriptedInvoker
