"""
KnowledgeAssistant - drafts knowledge-base entries with one JSON-mode call.

  format_note(raw_text)    -> {title, category, content} from a rough note
  analyze_file(attachment) -> {title, category, content} summarising an upload

Both return a KnowledgeEntryPayload draft for the user to review, or None on
any failure (no credentials, provider error, unusable JSON).
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError

import config
from models.message import Attachment
from models.payloads import KnowledgeEntryPayload
from models.suite import KNOWLEDGE_CATEGORIES
from utils.file_parser import extract_text_from_attachment, is_image

logger = logging.getLogger(__name__)

# Keep uploads within a cost-efficient prompt size
_MAX_FILE_CHARS = 12000

FORMAT_NOTE_SYSTEM = f"""You turn rough notes into clean knowledge-base entries for an executive team.

Rules:
- Write a short, specific title.
- Pick exactly one category from: {", ".join(KNOWLEDGE_CATEGORIES)}.
- Rewrite the content as clear, factual prose. Do not add facts that are not in the note.
- Return ONLY valid JSON.

Output format:
{{"title": "...", "category": "...", "content": "..."}}"""

ANALYZE_FILE_SYSTEM = f"""You analyse documents uploaded to a company knowledge base.

Identify what kind of document it is, summarise the key facts, numbers and decisions,
and categorise it as one of: {", ".join(KNOWLEDGE_CATEGORIES)}.
Return ONLY valid JSON.

Output format:
{{"title": "...", "category": "...", "summary": "..."}}"""


class KnowledgeAssistant:
    def __init__(self, client=None, model: str = config.MODEL):
        self._client = client
        self.model = model

    def _complete(self, system: str, user_content) -> Optional[dict]:
        if self._client is None:
            if not config.has_valid_credentials():
                logger.warning("KnowledgeAssistant: no credentials configured")
                return None
            self._client = config.make_openai_client()
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=1200,
                temperature=0.2,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user_content},
                ],
            )
            raw = (response.choices[0].message.content or "").strip()
            return json.loads(raw) if raw else None
        except Exception as exc:
            logger.exception("KnowledgeAssistant call failed: %s", exc)
            return None

    def format_note(self, raw_text: str) -> Optional[KnowledgeEntryPayload]:
        if not raw_text.strip():
            return None
        result = self._complete(FORMAT_NOTE_SYSTEM, f'Format as a knowledge-base entry.\n\nRAW: "{raw_text}"')
        return _to_draft(result, "content")

    def analyze_file(self, attachment: Attachment) -> Optional[KnowledgeEntryPayload]:
        if is_image(attachment):
            user_content = [
                {"type": "image_url", "image_url": {"url": f"data:{attachment.mime_type};base64,{attachment.data}"}},
                {"type": "text", "text": f"Analyse this upload: {attachment.name}"},
            ]
        else:
            try:
                text = extract_text_from_attachment(attachment)
            except ValueError as exc:
                logger.warning("KnowledgeAssistant: %s", exc)
                return None
            user_content = f"Analyse this upload: **{attachment.name}**\n\n---\n{text[:_MAX_FILE_CHARS]}\n---"
        result = self._complete(ANALYZE_FILE_SYSTEM, user_content)
        return _to_draft(result, "summary")


def _to_draft(result: Optional[dict], content_key: str) -> Optional[KnowledgeEntryPayload]:
    if not isinstance(result, dict):
        return None
    try:
        draft = KnowledgeEntryPayload(
            title=result["title"],
            category=str(result.get("category", "OTHER")).upper(),
            content=result[content_key],
        )
    except (KeyError, ValidationError) as exc:
        logger.warning("KnowledgeAssistant: unusable response %s", exc)
        return None
    if draft.category not in KNOWLEDGE_CATEGORIES:
        draft.category = "OTHER"
    return draft
