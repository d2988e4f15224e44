"""Participant resolution: @mentions, ambient selection, roster toggles."""

from agents.participant_resolver import (
    find_individual_session,
    mentioned_agents,
    resolve_targets,
    toggle_selection,
)
from models.suite import ChatSession


def _ids(agents):
    return [a.id for a in agents]


def test_mention_overrides_selection_for_this_turn_only(agents):
    ambient = ["cfo", "legal"]
    targets = resolve_targets("@Marcus review this", agents, ambient)
    assert _ids(targets) == ["cto"]
    assert ambient == ["cfo", "legal"]


def test_mentions_match_surname_and_role_substrings(agents):
    assert _ids(resolve_targets("@jenkins thoughts?", agents, ["cto"])) == ["dev"]
    assert _ids(resolve_targets("@legal please check", agents, ["cto"])) == ["legal"]


def test_multiple_mentions_follow_roster_order(agents):
    targets = resolve_targets("@victoria and @marcus", agents, [])
    assert _ids(targets) == ["cto", "cfo"]


def test_unmatched_mention_falls_back_to_ambient_selection(agents):
    targets = resolve_targets("@nobody hello", agents, ["legal", "cfo"])
    assert _ids(targets) == ["cfo", "legal"]


def test_empty_selection_falls_back_to_first_agent(agents):
    assert _ids(resolve_targets("hello", agents, [])) == ["cto"]


def test_no_agents_means_no_targets():
    assert resolve_targets("hello", [], ["cto"]) == []


def test_mentioned_agents_without_tokens(agents):
    assert mentioned_agents("no mentions here", agents) == []


def test_toggle_adds_and_removes():
    assert toggle_selection(["cto"], "cfo") == ["cto", "cfo"]
    assert toggle_selection(["cto", "cfo"], "cto") == ["cfo"]


def test_toggle_never_empties_selection():
    assert toggle_selection(["cto"], "cto") == ["cto"]


def test_find_individual_session_ignores_group_sessions():
    group = ChatSession(id="g", user_id="u", title="FG", mode="FOCUS_GROUP",
                        participant_ids=["cfo"], last_message_at=50)
    old = ChatSession(id="old", user_id="u", title="1", participant_ids=["cfo"], last_message_at=10)
    new = ChatSession(id="new", user_id="u", title="2", participant_ids=["cfo"], last_message_at=20)
    other = ChatSession(id="x", user_id="u", title="3", participant_ids=["cto"], last_message_at=30)

    assert find_individual_session([group, old, new, other], "cfo").id == "new"
    assert find_individual_session([group, other], "cfo") is None
