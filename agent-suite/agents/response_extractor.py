"""
Response extractor - pulls side-channel payloads out of raw model output.

Agents are told they may embed actions as fenced JSON blocks, e.g.

    ```json
    { "canvas_update": { "title": "...", "content": "..." } }
    ```

extract() scans every fenced block once and decodes each into one of:

  Ok(kind, payload)   parsed, gated by a known top-level key
  Malformed(kind)     mentions a known key but will not parse, or its payload
                      is not an object
  NotMatched          any other code block (left alone)

For every payload kind, in PAYLOAD_KINDS order, the first Ok block is removed
from the text and recorded.  Malformed blocks stay visible.  The function is
pure, so running it again on its own output finds nothing further.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from pydantic import BaseModel, ValidationError

from models.payloads import PAYLOAD_KINDS

logger = logging.getLogger(__name__)

# ```json ... ``` or bare ``` ... ```; the body is checked for a JSON object afterwards
_FENCED_BLOCK = re.compile(r"```(?:json)?[ \t]*\n?(.*?)\n?[ \t]*```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")

# Below this many visible characters a canned acknowledgement is appended
MIN_VISIBLE_TEXT = 50

ACKNOWLEDGEMENTS = {
    "new_kb_entry": "(I have saved this to the Knowledge Base.)",
    "new_task": "(I have added a task to the board.)",
    "chart_data": "(I have prepared a chart for you.)",
    "canvas_update": "(I have updated the Canvas with the details.)",
    "draft_email": "(I have drafted an email for you.)",
    "schedule_meeting": "(I have prepared a calendar invite.)",
}


@dataclass(frozen=True)
class Ok:
    kind: str
    payload: BaseModel
    block: str


@dataclass(frozen=True)
class Malformed:
    kind: str
    block: str


@dataclass(frozen=True)
class NotMatched:
    block: str


BlockDecode = Union[Ok, Malformed, NotMatched]


@dataclass
class ExtractionResult:
    text: str
    payloads: dict[str, BaseModel] = field(default_factory=dict)

    def get(self, kind: str) -> Optional[BaseModel]:
        return self.payloads.get(kind)

    @property
    def knowledge_entry(self):
        return self.payloads.get("new_kb_entry")

    @property
    def task(self):
        return self.payloads.get("new_task")

    @property
    def chart(self):
        return self.payloads.get("chart_data")

    @property
    def canvas_update(self):
        return self.payloads.get("canvas_update")

    @property
    def email_draft(self):
        return self.payloads.get("draft_email")

    @property
    def calendar_event(self):
        return self.payloads.get("schedule_meeting")


def _parse_lenient(body: str) -> Optional[object]:
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(_TRAILING_COMMA.sub(r"\1", body))
    except json.JSONDecodeError:
        return None


def _mentioned_kind(body: str) -> Optional[str]:
    for kind in PAYLOAD_KINDS:
        if f'"{kind}"' in body:
            return kind
    return None


def decode_block(block: str, body: str) -> BlockDecode:
    """Classify one fenced block.  `block` is the full fenced text, `body` the JSON inside."""
    parsed = _parse_lenient(body)
    if parsed is None:
        kind = _mentioned_kind(body)
        return Malformed(kind, block) if kind else NotMatched(block)

    if not isinstance(parsed, dict):
        return NotMatched(block)

    kind = next((k for k in PAYLOAD_KINDS if k in parsed), None)
    if kind is None:
        return NotMatched(block)

    try:
        payload = PAYLOAD_KINDS[kind].model_validate(parsed[kind])
    except ValidationError as exc:
        logger.warning("Leaving unusable %s payload visible: %s", kind, exc.errors()[:3])
        return Malformed(kind, block)
    return Ok(kind, payload, block)


def scan_blocks(text: str) -> list[BlockDecode]:
    decoded: list[BlockDecode] = []
    for m in _FENCED_BLOCK.finditer(text):
        body = m.group(1).strip()
        if body.startswith("{"):
            decoded.append(decode_block(m.group(0), body))
        else:
            decoded.append(NotMatched(m.group(0)))
    return decoded


def extract(raw_text: str) -> ExtractionResult:
    """Return the display text with recognised payload blocks removed, plus the payloads."""
    decoded = scan_blocks(raw_text or "")
    text = (raw_text or "").strip()
    payloads: dict[str, BaseModel] = {}

    for kind in PAYLOAD_KINDS:
        match = next((d for d in decoded if isinstance(d, Ok) and d.kind == kind), None)
        if match is None or match.block not in text:
            continue
        text = text.replace(match.block, "", 1)
        text = _EXCESS_BLANK_LINES.sub("\n\n", text).strip()
        payloads[kind] = match.payload
        if len(text) < MIN_VISIBLE_TEXT:
            text = f"{text}\n\n{ACKNOWLEDGEMENTS[kind]}".strip()

    for d in decoded:
        if isinstance(d, Malformed):
            logger.debug("Leaving malformed %s block visible", d.kind)

    return ExtractionResult(text=text, payloads=payloads)
