"""KnowledgeAssistant and attachment text extraction."""

import base64
import json

from agents.knowledge_assistant import KnowledgeAssistant
from models.message import Attachment
from utils.file_parser import attachment_extension, extract_text_from_attachment, extract_text_from_file


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def test_format_note_returns_draft(fake_client):
    client = fake_client(json.dumps({"title": "Hiring plan", "category": "strategy", "content": "Two engineers in Q2."}))
    draft = KnowledgeAssistant(client).format_note("need 2 engs q2")

    assert (draft.title, draft.category, draft.content) == ("Hiring plan", "STRATEGY", "Two engineers in Q2.")
    call = client.calls[0]
    assert call["response_format"] == {"type": "json_object"}
    assert "need 2 engs q2" in call["messages"][1]["content"]


def test_unknown_category_becomes_other(fake_client):
    client = fake_client(json.dumps({"title": "T", "category": "MISC", "content": "C"}))
    assert KnowledgeAssistant(client).format_note("x").category == "OTHER"


def test_unusable_response_returns_none(fake_client):
    assert KnowledgeAssistant(fake_client("not json")).format_note("x") is None
    assert KnowledgeAssistant(fake_client(json.dumps({"title": "only"}))).format_note("x") is None


def test_provider_error_returns_none(fake_client):
    assert KnowledgeAssistant(fake_client(RuntimeError("down"))).format_note("x") is None


def test_blank_note_makes_no_call(fake_client):
    client = fake_client()
    assert KnowledgeAssistant(client).format_note("   ") is None
    assert client.calls == []


def test_analyze_text_file_sends_extracted_text(fake_client):
    client = fake_client(json.dumps({"title": "Q3 KPIs", "category": "KPI", "summary": "Burn at 45k."}))
    upload = Attachment(mime_type="text/csv", data=_b64("metric,value\nburn,45000\n"), name="kpis.csv")

    draft = KnowledgeAssistant(client).analyze_file(upload)

    assert (draft.title, draft.content) == ("Q3 KPIs", "Burn at 45k.")
    assert "Row 1: metric: burn | value: 45000" in client.calls[0]["messages"][1]["content"]


def test_analyze_image_sends_inline_part(fake_client):
    client = fake_client(json.dumps({"title": "Whiteboard", "category": "PRODUCT", "summary": "Roadmap sketch."}))
    upload = Attachment(mime_type="image/png", data="aW1n", name="board.png")

    KnowledgeAssistant(client).analyze_file(upload)

    parts = client.calls[0]["messages"][1]["content"]
    assert parts[0]["image_url"]["url"] == "data:image/png;base64,aW1n"


def test_analyze_rejects_bad_base64(fake_client):
    client = fake_client()
    upload = Attachment(mime_type="text/plain", data="***", name="notes.txt")
    assert KnowledgeAssistant(client).analyze_file(upload) is None
    assert client.calls == []


def test_attachment_text_by_name_or_mime():
    named = Attachment(mime_type="application/octet-stream", data=_b64("# Title"), name="readme.md")
    unnamed = Attachment(mime_type="text/csv", data=_b64("a,b\n1,2\n"), name="upload")

    assert extract_text_from_attachment(named) == "# Title"
    assert attachment_extension(unnamed) == ".csv"
    assert extract_text_from_attachment(unnamed) == "Row 1: a: 1 | b: 2"


def test_extract_text_from_bytes_by_filename():
    assert extract_text_from_file(b"a,b\n1,2\n", "report.csv") == "Row 1: a: 1 | b: 2"
    assert extract_text_from_file(b"plain", "notes.txt") == "plain"
