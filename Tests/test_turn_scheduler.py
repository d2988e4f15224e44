"""TurnScheduler: sequential rounds, persistence outcomes, payload routing, stop."""

import pytest

from agents.agent_invoker import AgentReply
from agents.turn_scheduler import TurnContext, TurnPhase, TurnScheduler
from models.message import Message
from storage.conversation_state import ConversationState


def _user(text="Team, thoughts?"):
    return Message(sender_id="test-user", sender_name="User", content=text, is_user=True)


@pytest.fixture
def make_scheduler(inline_executor):
    def _make(store, invoker, **kw):
        state = ConversationState()
        scheduler = TurnScheduler(store, state, invoker, executor=inline_executor, **kw)
        return scheduler, state
    return _make


def test_later_agents_see_earlier_replies_before_store_echo(make_scheduler, fake_store, scripted_invoker, agents):
    invoker = scripted_invoker()
    scheduler, state = make_scheduler(fake_store, invoker)

    result = scheduler.run_turn(_user(), agents[:3], TurnContext(session_id="s1"))

    assert invoker.responders == ["cto", "dev", "cso"]
    second_history = [m.content for m in invoker.calls[1]["history"]]
    third_history = [m.content for m in invoker.calls[2]["history"]]
    assert second_history == ["Team, thoughts?", "Marcus here."]
    assert third_history == ["Team, thoughts?", "Marcus here.", "Sarah here."]
    assert [r.sender_id for r in result.replies] == ["cto", "dev", "cso"]
    assert not result.cancelled and not result.halted


def test_failed_user_message_halts_turn(make_scheduler, failing_store, scripted_invoker, agents):
    invoker = scripted_invoker()
    store = failing_store(fail_when=lambda m: m.is_user)
    scheduler, state = make_scheduler(store, invoker)

    user = _user()
    result = scheduler.run_turn(user, agents[:3], TurnContext(session_id="s1"))

    assert result.halted
    assert invoker.calls == []
    assert state.get(user.id).status == "failed"
    assert scheduler.phase is TurnPhase.IDLE


def test_stop_after_first_agent_yields_one_reply(make_scheduler, fake_store, scripted_invoker, agents):
    holder = {}

    def reply_for(agent, history):
        if agent.id == "cto":
            holder["scheduler"].stop()
        return f"{agent.name} here."

    scheduler, state = make_scheduler(fake_store, scripted_invoker(reply_for))
    holder["scheduler"] = scheduler

    result = scheduler.run_turn(_user(), agents[:3], TurnContext(session_id="s1"))

    assert result.cancelled
    assert len(result.replies) == 1
    assert [m.sender_id for m in state.messages] == ["test-user", "cto"]
    assert scheduler.responding is None


def test_abort_is_cleared_for_the_next_round(make_scheduler, fake_store, scripted_invoker, agents):
    scheduler, _ = make_scheduler(fake_store, scripted_invoker())
    scheduler.stop()
    result = scheduler.run_turn(_user(), agents[:2], TurnContext(session_id="s1"))
    assert len(result.replies) == 2


def test_unexpected_exception_becomes_failed_system_message(make_scheduler, fake_store, scripted_invoker, agents):
    def reply_for(agent, history):
        if agent.id == "dev":
            raise RuntimeError("kaboom")
        return f"{agent.name} here."

    invoker = scripted_invoker(reply_for)
    scheduler, state = make_scheduler(fake_store, invoker)

    result = scheduler.run_turn(_user(), agents[:3], TurnContext(session_id="s1"))

    assert invoker.responders == ["cto", "dev", "cso"]
    error = result.replies[1]
    assert error.is_error and error.sender_id == "system"
    assert state.get(error.id).status == "failed"
    assert "kaboom" in error.content
    assert error.id not in [m.id for m in state.context_messages()]


def test_configuration_failure_stops_the_round(make_scheduler, fake_store, scripted_invoker, agents):
    invoker = scripted_invoker(lambda agent, history: AgentReply(text="Error: API Key is missing.", error="configuration"))
    scheduler, state = make_scheduler(fake_store, invoker)

    result = scheduler.run_turn(_user(), agents[:3], TurnContext(session_id="s1"))

    assert result.halted
    assert invoker.responders == ["cto"]
    assert len(result.replies) == 1 and result.replies[0].is_error


def test_typed_failure_is_shown_but_not_fed_to_next_agent(make_scheduler, fake_store, scripted_invoker, agents):
    def reply_for(agent, history):
        if agent.id == "cto":
            return AgentReply(text="I apologize, but my thought process timed out.", error="timeout")
        return f"{agent.name} here."

    invoker = scripted_invoker(reply_for)
    scheduler, state = make_scheduler(fake_store, invoker)

    result = scheduler.run_turn(_user(), agents[:2], TurnContext(session_id="s1"))

    timed_out = result.replies[0]
    assert timed_out.is_error and timed_out.sender_id == "cto"
    assert timed_out.status is None
    assert [m.content for m in invoker.calls[1]["history"]] == ["Team, thoughts?"]


def test_failed_reply_persistence_marks_message_failed(make_scheduler, failing_store, scripted_invoker, agents):
    store = failing_store(fail_when=lambda m: not m.is_user)
    scheduler, state = make_scheduler(store, scripted_invoker())

    result = scheduler.run_turn(_user(), agents[:1], TurnContext(session_id="s1"))

    assert state.get(result.replies[0].id).status == "failed"


def test_payloads_are_routed_to_sinks(make_scheduler, fake_store, scripted_invoker, agents):
    raw = (
        "Logged the decision and created a follow-up task for the team to pick up.\n"
        '```json\n{"new_kb_entry": {"title": "Runway", "category": "kpi", "content": "18 months"}}\n```\n'
        '```json\n{"new_task": {"title": "Cut costs", "priority": "high", "assignee": "Victoria", '
        '"dueDate": "2025-01-31"}}\n```'
    )
    scheduler, _ = make_scheduler(fake_store, scripted_invoker(lambda agent, history: raw))

    scheduler.run_turn(_user(), [agents[5]], TurnContext(session_id="s1"))

    item = fake_store.knowledge[0]
    assert (item.title, item.category, item.created_by) == ("Runway", "KPI", "Victoria")
    task = fake_store.tasks[0]
    assert (task.title, task.priority, task.status) == ("Cut costs", "HIGH", "TODO")
    assert isinstance(task.due_date, int)


def test_sink_failure_does_not_break_the_round(make_scheduler, fake_store, scripted_invoker, agents):
    def _refuse(item):
        raise OSError("disk full")

    fake_store.save_knowledge_item = _refuse
    raw = 'Noted.\n```json\n{"new_kb_entry": {"title": "T", "content": "C"}}\n```'
    scheduler, _ = make_scheduler(fake_store, scripted_invoker(lambda agent, history: raw))

    result = scheduler.run_turn(_user(), agents[:2], TurnContext(session_id="s1"))
    assert len(result.replies) == 2


def test_canvas_update_is_applied_and_visible_to_next_agent(make_scheduler, fake_store, scripted_invoker, agents):
    updates = []

    def reply_for(agent, history):
        if agent.id == "cto":
            return 'Drafted.\n```json\n{"canvas_update": {"title": "Architecture", "content": "# v1"}}\n```'
        return "Looks good."

    invoker = scripted_invoker(reply_for)
    scheduler, _ = make_scheduler(fake_store, invoker, on_canvas_update=updates.append)
    ctx = TurnContext(session_id="s1")

    result = scheduler.run_turn(_user(), agents[:2], ctx)

    assert updates[0].title == "Architecture"
    assert updates[0].last_updated_by == "Marcus"
    assert invoker.calls[1]["canvas_content"] == "# v1"
    assert result.replies[0].canvas_action.title == "Architecture"


def test_responding_slot_tracks_current_agent(make_scheduler, fake_store, scripted_invoker, agents):
    seen = []
    scheduler, _ = make_scheduler(fake_store, scripted_invoker(), on_responding=lambda a: seen.append(a and a.id))
    scheduler.run_turn(_user(), agents[:2], TurnContext(session_id="s1"))
    assert seen == ["cto", "dev", None]
    assert not scheduler.busy
