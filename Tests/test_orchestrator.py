"""Orchestrator: sessions, roster selection, slash commands, end-to-end turns."""

import threading

import pytest

from agents.orchestrator import GROUP_CONTEXT_INSTRUCTION, Orchestrator


@pytest.fixture
def invoker(scripted_invoker):
    return scripted_invoker()


@pytest.fixture
def orch(store, invoker, inline_executor):
    o = Orchestrator(store, invoker, executor=inline_executor)
    o.start()
    yield o
    o.close()


def test_start_opens_individual_session_with_first_agent(orch, store):
    assert orch.mode == "INDIVIDUAL"
    assert orch.selected_agent_ids == ["cto"]
    assert orch.current_session.title.startswith("New Chat ")
    assert store.get_session(orch.current_session.id) is not None


def test_individual_turn_is_persisted_and_confirmed(orch, store, invoker):
    result = orch.handle_message("What's our stack?")

    assert invoker.responders == ["cto"]
    assert invoker.calls[0]["context_instruction"] is None
    assert [m.content for m in orch.messages] == ["What's our stack?", "Marcus here."]
    assert all(m.status is None for m in orch.messages)
    assert len(store.load_messages(orch.current_session.id)) == 2
    assert result.replies[0].sender_id == "cto"


def test_whole_suite_session_starts_with_every_agent(orch, invoker):
    session = orch.set_mode("WHOLE_SUITE")
    assert session.title.startswith("New Board Meeting ")
    assert orch.selected_agent_ids == [a.id for a in orch.agents]

    orch.handle_message("Status update please")
    assert len(invoker.calls) == 7
    assert invoker.calls[0]["context_instruction"] == GROUP_CONTEXT_INSTRUCTION


def test_mention_in_group_mode_leaves_selection_alone(orch, invoker):
    orch.set_mode("WHOLE_SUITE")
    before = list(orch.selected_agent_ids)

    orch.handle_message("@Marcus review this")

    assert invoker.responders == ["cto"]
    assert orch.selected_agent_ids == before


def test_individual_selection_switches_or_creates_sessions(orch):
    first = orch.current_session.id
    orch.select_agent("cfo")
    cfo_session = orch.current_session
    assert cfo_session.id != first
    assert cfo_session.participant_ids == ["cfo"]

    orch.select_agent("cto")
    assert orch.current_session.id == first
    orch.select_agent("cfo")
    assert orch.current_session.id == cfo_session.id


def test_group_selection_toggles_and_persists(orch, store):
    session = orch.set_mode("FOCUS_GROUP")
    orch.select_agent("cfo")
    assert orch.selected_agent_ids == ["cto", "cfo"]
    orch.select_agent("cto")
    orch.select_agent("cfo")
    assert orch.selected_agent_ids == ["cfo"]
    assert store.get_session(session.id).participant_ids == ["cfo"]


def test_switching_sessions_resets_and_restores(orch):
    orch.handle_message("first chat")
    first = orch.current_session.id
    orch.set_mode("FOCUS_GROUP")
    assert orch.messages == []

    orch.switch_session(first)
    assert orch.mode == "INDIVIDUAL"
    assert [m.content for m in orch.messages] == ["first chat", "Marcus here."]


def test_delete_current_session_moves_elsewhere(orch, store):
    doomed = orch.current_session.id
    orch.delete_session(doomed)
    assert orch.current_session is not None
    assert orch.current_session.id != doomed
    assert store.get_session(doomed) is None


@pytest.mark.parametrize("command, panel", [("/kb", "knowledge"), ("/tasks", "tasks"), ("/help", "help")])
def test_panel_commands_never_reach_agents(orch, invoker, command, panel):
    assert orch.handle_message(command) is None
    assert orch.open_panel == panel
    assert invoker.calls == []
    assert orch.messages == []


def test_clear_starts_new_session_in_same_mode(orch, invoker):
    orch.set_mode("FOCUS_GROUP")
    before = orch.current_session.id
    orch.handle_message("/clear")
    assert orch.current_session.id != before
    assert orch.mode == "FOCUS_GROUP"
    assert invoker.calls == []


def test_reset_reloads_current_session(orch):
    orch.handle_message("keep me")
    session_id = orch.current_session.id
    orch.handle_message("/reset")
    assert orch.current_session.id == session_id
    assert [m.content for m in orch.messages][0] == "keep me"


def test_unknown_slash_input_is_sent(orch, invoker):
    orch.handle_message("/shrug whatever")
    assert invoker.responders == ["cto"]


def test_blank_input_is_ignored(orch, invoker):
    assert orch.handle_message("   ") is None
    assert invoker.calls == []


def test_regenerate_resends_last_user_message(orch, invoker):
    orch.handle_message("Give me options")
    orch.regenerate()
    user_texts = [m.content for m in orch.messages if m.is_user]
    assert user_texts == ["Give me options", "Give me options"]
    assert len(invoker.calls) == 2


def test_feedback_is_persisted(orch, store):
    result = orch.handle_message("Rate me")
    reply_id = result.replies[0].id
    orch.set_feedback(reply_id, "UP")
    assert orch.state.get(reply_id).feedback == "UP"
    stored = {m.id: m for m in store.load_messages(orch.current_session.id)}
    assert stored[reply_id].feedback == "UP"


def test_agent_canvas_update_opens_canvas_and_user_can_edit(store, inline_executor, scripted_invoker):
    invoker = scripted_invoker(
        lambda agent, history: 'Here.\n```json\n{"canvas_update": {"title": "Plan", "content": "v1"}}\n```'
    )
    orch = Orchestrator(store, invoker, executor=inline_executor)
    orch.start()

    orch.handle_message("Write a plan")
    assert orch.canvas_open
    assert orch.canvas.content == "v1"

    doc = orch.edit_canvas("v2")
    assert (doc.title, doc.content, doc.last_updated_by) == ("Plan", "v2", "User")

    orch.handle_message("Polish it")
    assert invoker.calls[1]["canvas_content"] == "v2"
    orch.close()


def test_mode_flags_and_model_reach_the_invoker(orch, invoker):
    orch.toggle_devils_advocate()
    orch.toggle_deep_research()
    orch.set_model("o4-mini")
    orch.handle_message("Challenge me")
    call = invoker.calls[0]
    assert call["devils_advocate"] and call["deep_research"]
    assert call["model"] == "o4-mini"


def test_knowledge_saved_by_agent_reaches_next_turn(store, inline_executor, scripted_invoker):
    invoker = scripted_invoker(
        lambda agent, history: 'Saved.\n```json\n{"new_kb_entry": {"title": "Fact", "content": "42"}}\n```'
    )
    orch = Orchestrator(store, invoker, executor=inline_executor)
    orch.start()
    orch.handle_message("Remember this")
    assert "Fact" in [k.title for k in orch.knowledge_base]
    orch.close()


def test_permission_error_is_surfaced_and_dismissable(orch, store, monkeypatch):
    import storage.manager as manager_module

    def _denied(path, data):
        raise PermissionError("nope")

    monkeypatch.setattr(manager_module, "_atomic_write", _denied)
    result = orch.handle_message("hello")

    assert result.halted
    assert orch.permission_error
    assert orch.messages[-1].status == "failed"

    orch.dismiss_permission_error()
    assert store.permission_error is None


def test_background_round_reports_responder_and_stops_between_agents(store, inline_executor, scripted_invoker):
    entered = threading.Event()
    release = threading.Event()
    seen = []

    def reply_for(agent, history):
        seen.append(orch.responding.id)
        entered.set()
        release.wait(5)
        return f"{agent.name} here."

    invoker = scripted_invoker(reply_for)
    orch = Orchestrator(store, invoker, executor=inline_executor)
    orch.start()
    orch.set_mode("WHOLE_SUITE")

    future = orch.submit_message("Everyone, status?")
    assert entered.wait(5)
    assert orch.is_processing
    assert orch.submit_message("Anyone?") is None

    orch.stop()
    release.set()
    result = future.result(timeout=5)

    assert result.cancelled
    assert invoker.responders == ["cto"]
    assert seen == ["cto"]
    assert orch.responding is None
    assert not orch.is_processing
    orch.close()


def test_submitted_commands_run_inline(store, scripted_invoker, inline_executor):
    invoker = scripted_invoker()
    orch = Orchestrator(store, invoker, executor=inline_executor, turn_executor=inline_executor)
    orch.start()

    assert orch.submit_message("/tasks") is None
    assert orch.open_panel == "tasks"

    future = orch.submit_message("Hello")
    assert future.result().replies[0].sender_id == "cto"
    assert orch.submit_regenerate().result().user_message.content == "Hello"
    assert len(invoker.calls) == 2
    orch.close()
