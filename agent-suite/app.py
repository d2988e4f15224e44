"""
Agent Suite - Streamlit Web Application

Sidebar: sessions, mode, roster, mode flags.
Main:    chat with the selected agents, plus Canvas / Knowledge / Tasks / Help panels.
"""

import base64
import logging
import sys
from datetime import datetime
from pathlib import Path

# Ensure the agent-suite directory is on sys.path
sys.path.insert(0, str(Path(__file__).parent))

import streamlit as st

from config import APP_ICON, APP_TITLE, AVAILABLE_MODELS, LOG_LEVEL, USER_ID, has_valid_credentials
from agents import KnowledgeAssistant, Orchestrator
from agents.orchestrator import SLASH_COMMANDS
from models import Attachment, Directive, KnowledgeItem, MODE_META, Task
from storage import StorageManager

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


# ------------------------------------------------------------------ #
# Page config                                                         #
# ------------------------------------------------------------------ #

st.set_page_config(
    page_title=APP_TITLE,
    page_icon=APP_ICON,
    layout="wide",
)


# ------------------------------------------------------------------ #
# Session state init                                                  #
# ------------------------------------------------------------------ #

def _init_state():
    if "storage" not in st.session_state:
        st.session_state.storage = StorageManager(USER_ID)
    if "orchestrator" not in st.session_state:
        orchestrator = Orchestrator(st.session_state.storage)
        orchestrator.start()
        st.session_state.orchestrator = orchestrator
    if "assistant" not in st.session_state:
        st.session_state.assistant = KnowledgeAssistant()
    if "kb_draft" not in st.session_state:
        st.session_state.kb_draft = None


_init_state()

storage: StorageManager = st.session_state.storage
orchestrator: Orchestrator = st.session_state.orchestrator


# ------------------------------------------------------------------ #
# Helper functions                                                    #
# ------------------------------------------------------------------ #

def _to_attachment(uploaded) -> Attachment:
    return Attachment(
        mime_type=uploaded.type or "application/octet-stream",
        data=base64.b64encode(uploaded.getvalue()).decode("ascii"),
        name=uploaded.name,
    )


def _render_message(msg) -> None:
    role = "user" if msg.is_user else "assistant"
    with st.chat_message(role):
        if not msg.is_user:
            st.caption(msg.sender_name)
        if msg.is_error:
            st.error(msg.content)
        else:
            st.markdown(msg.content)
        for att in msg.attachments:
            st.caption(f"📎 {att.name}")
        if msg.chart_data:
            chart = msg.chart_data
            st.markdown(f"**📊 {chart.title}**")
            data = {ds.label: ds.data for ds in chart.datasets}
            if chart.type == "LINE":
                st.line_chart(data)
            else:
                st.bar_chart(data)
        if msg.email_draft:
            with st.expander(f"✉️ Draft: {msg.email_draft.subject}"):
                st.markdown(f"**To:** {msg.email_draft.to}")
                st.text(msg.email_draft.body)
        if msg.calendar_event:
            ev = msg.calendar_event
            st.info(f"📅 {ev.title}: {ev.start_time} → {ev.end_time}" + (f" @ {ev.location}" if ev.location else ""))
        if msg.canvas_action:
            st.caption(f"📝 Canvas updated: {msg.canvas_action.title or ''}")
        if msg.grounding_metadata:
            for src in msg.grounding_metadata.sources:
                st.caption(f"🔗 [{src.title or src.uri}]({src.uri})")
        if msg.status == "pending":
            st.caption("Sending…")
        elif msg.status == "failed":
            st.caption("⚠️ Not saved")
        elif not msg.is_user and not msg.is_error:
            _c1, _c2, _c3 = st.columns([1, 1, 10])
            with _c1:
                if st.button("👍", key=f"up_{msg.id}", type="primary" if msg.feedback == "UP" else "secondary"):
                    orchestrator.set_feedback(msg.id, None if msg.feedback == "UP" else "UP")
                    st.rerun()
            with _c2:
                if st.button("👎", key=f"down_{msg.id}", type="primary" if msg.feedback == "DOWN" else "secondary"):
                    orchestrator.set_feedback(msg.id, None if msg.feedback == "DOWN" else "DOWN")
                    st.rerun()
            if msg.context_used:
                with _c3:
                    with st.popover("ℹ️ Context"):
                        st.text(msg.context_used)


# ------------------------------------------------------------------ #
# Sidebar                                                             #
# ------------------------------------------------------------------ #

with st.sidebar:
    st.markdown(f"## {APP_ICON} {APP_TITLE}")

    if not has_valid_credentials():
        st.error("No API key configured.\nSet OPENAI_API_KEY or the AZURE_OPENAI_* variables in .env.")

    if orchestrator.permission_error:
        st.warning(f"Storage permission problem: {orchestrator.permission_error}")
        if st.button("Retry storage", key="perm_retry"):
            orchestrator.dismiss_permission_error()
            st.rerun()

    # ---- Mode ----
    _modes = list(MODE_META)
    _mode = st.radio(
        "Mode",
        _modes,
        index=_modes.index(orchestrator.mode),
        format_func=lambda m: f"{MODE_META[m]['emoji']} {MODE_META[m]['label']}",
        key="mode_radio",
    )
    if _mode != orchestrator.mode:
        orchestrator.set_mode(_mode)
        st.rerun()

    if st.button("✨  New Session", key="new_session", use_container_width=True):
        orchestrator.create_session(orchestrator.mode)
        st.rerun()

    st.divider()

    # ---- Roster ----
    st.markdown("**Agents**")
    for agent in orchestrator.agents:
        _selected = agent.id in orchestrator.selected_agent_ids
        _type = "primary" if _selected else "secondary"
        if st.button(f"{agent.full_name} · {agent.role}", key=f"agent_{agent.id}", use_container_width=True, type=_type):
            orchestrator.select_agent(agent.id)
            st.rerun()

    st.divider()

    # ---- Mode flags ----
    st.markdown("**Modes**")
    if st.toggle("😈 Devil's Advocate", value=orchestrator.devils_advocate, key="flag_da") != orchestrator.devils_advocate:
        orchestrator.toggle_devils_advocate()
    if st.toggle("🔍 Deep Research", value=orchestrator.deep_research, key="flag_dr") != orchestrator.deep_research:
        orchestrator.toggle_deep_research()
    _model = st.selectbox(
        "Model",
        AVAILABLE_MODELS,
        index=AVAILABLE_MODELS.index(orchestrator.selected_model) if orchestrator.selected_model in AVAILABLE_MODELS else 0,
        key="model_select",
    )
    if _model != orchestrator.selected_model:
        orchestrator.set_model(_model)

    st.divider()

    # ---- Sessions ----
    st.markdown("**Sessions**")
    for session in orchestrator.sessions:
        _is_current = orchestrator.current_session and orchestrator.current_session.id == session.id
        _c1, _c2 = st.columns([5, 1])
        with _c1:
            if st.button(
                f"{MODE_META[session.mode]['emoji']} {session.title}",
                key=f"session_{session.id}",
                use_container_width=True,
                type="primary" if _is_current else "secondary",
            ):
                orchestrator.switch_session(session.id)
                st.rerun()
        with _c2:
            if st.button("🗑", key=f"del_{session.id}"):
                orchestrator.delete_session(session.id)
                st.rerun()

    st.divider()
    _p1, _p2, _p3 = st.columns(3)
    with _p1:
        if st.button("📚 KB", key="panel_kb", use_container_width=True):
            orchestrator.open_panel = None if orchestrator.open_panel == "knowledge" else "knowledge"
            st.rerun()
    with _p2:
        if st.button("✅ Tasks", key="panel_tasks", use_container_width=True):
            orchestrator.open_panel = None if orchestrator.open_panel == "tasks" else "tasks"
            st.rerun()
    with _p3:
        if st.button("📜 Rules", key="panel_rules", use_container_width=True):
            orchestrator.open_panel = None if orchestrator.open_panel == "directives" else "directives"
            st.rerun()


# ------------------------------------------------------------------ #
# Side panels                                                         #
# ------------------------------------------------------------------ #

def _knowledge_panel() -> None:
    st.markdown("### 📚 Knowledge Base")
    with st.expander("➕ Add note"):
        _raw = st.text_area("Note", key="kb_raw")
        if st.button("✨ Auto-format", key="kb_format") and _raw:
            st.session_state.kb_draft = st.session_state.assistant.format_note(_raw)
            if st.session_state.kb_draft is None:
                st.warning("Could not format the note. You can still save it as is.")
        _up = st.file_uploader("…or analyse a file", key="kb_file")
        if _up is not None and st.button("🔎 Analyse", key="kb_analyse"):
            st.session_state.kb_draft = st.session_state.assistant.analyze_file(_to_attachment(_up))
        draft = st.session_state.kb_draft
        _title = st.text_input("Title", value=draft.title if draft else "", key="kb_title")
        _category = st.selectbox("Category", ["STRATEGY", "KPI", "LEGAL", "PRODUCT", "OTHER"],
                                 index=["STRATEGY", "KPI", "LEGAL", "PRODUCT", "OTHER"].index(draft.category) if draft else 4,
                                 key="kb_category")
        _content = st.text_area("Content", value=draft.content if draft else _raw, key="kb_content")
        if st.button("Save", key="kb_save") and _title and _content:
            storage.save_knowledge_item(KnowledgeItem(
                type="FILE" if _up is not None else "NOTE",
                title=_title, category=_category, content=_content,
                file_name=_up.name if _up is not None else None,
                file_mime_type=_up.type if _up is not None else None,
            ))
            st.session_state.kb_draft = None
            st.rerun()
    for item in orchestrator.knowledge_base:
        with st.expander(f"[{item.category}] {item.title}"):
            st.markdown(item.content)
            st.caption(f"by {item.created_by}")
            if st.button("Delete", key=f"kb_del_{item.id}"):
                storage.delete_knowledge_item(item.id)
                st.rerun()


def _task_panel() -> None:
    st.markdown("### ✅ Tasks")
    with st.expander("➕ New task"):
        _t = st.text_input("Title", key="task_title")
        _p = st.selectbox("Priority", ["LOW", "MEDIUM", "HIGH"], index=1, key="task_priority")
        if st.button("Add", key="task_add") and _t:
            storage.save_task(Task(title=_t, priority=_p, assignee="User"))
            st.rerun()
    _cols = st.columns(3)
    for col, status in zip(_cols, ("TODO", "IN_PROGRESS", "DONE")):
        with col:
            st.markdown(f"**{status.replace('_', ' ').title()}**")
            for task in storage.list_tasks():
                if task.status != status:
                    continue
                with st.container(border=True):
                    st.markdown(f"**{task.title}** · {task.priority}")
                    if task.assignee:
                        st.caption(task.assignee)
                    if task.due_date:
                        st.caption(datetime.fromtimestamp(task.due_date / 1000).strftime("Due %d %b"))
                    _next = {"TODO": "IN_PROGRESS", "IN_PROGRESS": "DONE"}.get(status)
                    if _next and st.button("→", key=f"task_mv_{task.id}"):
                        storage.save_task(task.model_copy(update={"status": _next}))
                        st.rerun()
                    if st.button("🗑", key=f"task_del_{task.id}"):
                        storage.delete_task(task.id)
                        st.rerun()


def _directives_panel() -> None:
    st.markdown("### 📜 Directives")
    _new = st.text_input("New rule for every agent", key="dir_new")
    if st.button("Add rule", key="dir_add") and _new:
        storage.save_directive(Directive(content=_new))
        st.rerun()
    for directive in orchestrator.directives:
        _c1, _c2 = st.columns([5, 1])
        with _c1:
            _active = st.checkbox(directive.content, value=directive.active, key=f"dir_{directive.id}")
            if _active != directive.active:
                storage.save_directive(directive.model_copy(update={"active": _active}))
                st.rerun()
        with _c2:
            if st.button("🗑", key=f"dir_del_{directive.id}"):
                storage.delete_directive(directive.id)
                st.rerun()


def _help_panel() -> None:
    st.markdown("### ❓ Help")
    st.markdown("Address an agent directly with `@name`, `@surname` or `@role`.")
    for command, description in SLASH_COMMANDS.items():
        st.markdown(f"- `{command}`: {description}")


def _canvas_panel() -> None:
    doc = orchestrator.canvas
    st.markdown(f"### 📝 {doc.title}")
    st.caption(f"Last updated by {doc.last_updated_by}")
    _edited = st.text_area("Canvas", value=doc.content, height=500, key="canvas_text", label_visibility="collapsed")
    _c1, _c2 = st.columns(2)
    with _c1:
        if st.button("Save", key="canvas_save") and _edited != doc.content:
            orchestrator.edit_canvas(_edited)
            st.rerun()
    with _c2:
        if st.button("Close", key="canvas_close"):
            orchestrator.canvas_open = False
            st.rerun()


# ------------------------------------------------------------------ #
# Chat                                                                #
# ------------------------------------------------------------------ #

# Re-render the chat every second while a round runs on the turn worker
_poll_every = 1.0 if orchestrator.is_processing else None


@st.fragment(run_every=_poll_every)
def _conversation() -> None:
    running = orchestrator.is_processing
    chat_box = st.container(height=650)
    with chat_box:
        if not orchestrator.messages:
            st.caption("No messages yet. Say hello, or type /help.")
        for msg in orchestrator.messages:
            _render_message(msg)
        if running:
            _who = orchestrator.responding
            st.caption(f"{_who.full_name} is typing…" if _who else "Sending…")

    _b1, _b2, _spacer = st.columns([1, 1, 4])
    with _b1:
        if st.button("🔄 Regenerate", key="regenerate", disabled=running or not orchestrator.messages):
            orchestrator.submit_regenerate()
            st.rerun()
    with _b2:
        if st.button("⏹ Stop", key="stop", disabled=not running):
            orchestrator.stop()

    # round finished since the last full run: refresh sidebar and panels too
    if _poll_every and not running:
        st.rerun()


# ------------------------------------------------------------------ #
# Main area                                                           #
# ------------------------------------------------------------------ #

_panel = orchestrator.open_panel
_has_side = bool(_panel) or (orchestrator.canvas_open and orchestrator.canvas is not None)
if _has_side:
    _chat_col, _side_col = st.columns([3, 2])
else:
    _chat_col, _side_col = st.container(), None

with _chat_col:
    session = orchestrator.current_session
    if session:
        st.markdown(f"#### {MODE_META[session.mode]['emoji']} {session.title}")
        st.caption("With: " + ", ".join(a.full_name for a in orchestrator.active_agents))

    _conversation()

    _uploads = st.file_uploader("Attach", accept_multiple_files=True, key="chat_uploads", label_visibility="collapsed")
    prompt = st.chat_input(
        "Message the suite… (@name to address someone, /help for commands)",
        disabled=orchestrator.is_processing,
    )
    if prompt:
        orchestrator.submit_message(prompt, [_to_attachment(u) for u in (_uploads or [])])
        st.rerun()

if _side_col is not None:
    with _side_col:
        if _panel == "knowledge":
            _knowledge_panel()
        elif _panel == "tasks":
            _task_panel()
        elif _panel == "directives":
            _directives_panel()
        elif _panel == "help":
            _help_panel()
        elif orchestrator.canvas is not None:
            _canvas_panel()
