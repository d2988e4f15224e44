"""
Participant resolution - who answers this turn, and how roster clicks change
the ambient selection.

Pure functions over agents / ids / sessions; the orchestrator owns the state.
"""

import re
from typing import Optional

from models.suite import Agent, ChatSession

_MENTION = re.compile(r"@(\w+)")


def _detect_mentions(message: str) -> list[str]:
    """Lower-cased @tokens in message order, de-duplicated."""
    seen: list[str] = []
    for token in _MENTION.findall(message.lower()):
        if token not in seen:
            seen.append(token)
    return seen


def _matches(agent: Agent, token: str) -> bool:
    return any(token in field.lower() for field in (agent.name, agent.surname, agent.role) if field)


def mentioned_agents(message: str, known_agents: list[Agent]) -> list[Agent]:
    """Agents addressed by @mention, in roster order."""
    tokens = _detect_mentions(message)
    if not tokens:
        return []
    return [a for a in known_agents if any(_matches(a, t) for t in tokens)]


def resolve_targets(message: str, known_agents: list[Agent], ambient_ids: list[str]) -> list[Agent]:
    """
    Ordered list of agents that respond to `message`.

    @mentions override the ambient selection for this turn only (the
    selection itself is left alone).  With no mention match, the agents in
    the ambient selection respond; if that is empty too, the first known
    agent does.
    """
    targets = mentioned_agents(message, known_agents)
    if not targets:
        targets = [a for a in known_agents if a.id in ambient_ids]
    if not targets and known_agents:
        targets = [known_agents[0]]
    return targets


def toggle_selection(ambient_ids: list[str], agent_id: str) -> list[str]:
    """Group-mode roster click: add or remove, but never leave the selection empty."""
    if agent_id in ambient_ids:
        if len(ambient_ids) == 1:
            return list(ambient_ids)
        return [i for i in ambient_ids if i != agent_id]
    return list(ambient_ids) + [agent_id]


def find_individual_session(sessions: list[ChatSession], agent_id: str) -> Optional[ChatSession]:
    """Most recently active one-to-one session with `agent_id`, if any."""
    candidates = [
        s for s in sessions
        if s.mode == "INDIVIDUAL" and s.participant_ids == [agent_id]
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda s: s.last_message_at)
