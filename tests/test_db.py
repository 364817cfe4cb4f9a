"""Tests for SQLite persistence of documents, sessions and messages."""
import sqlite3

import pytest

from docqa import db
from docqa.memory import ConversationManager


def test_database_created_lazily(temp_database):
    assert not temp_database.exists()
    assert db.list_documents() == []
    assert temp_database.exists()


def test_document_lifecycle():
    created = db.create_document("d1", "d1_1_report.pdf", "report.pdf", 2048)

    assert created["status"] == "processing"
    assert created["chunks_count"] == 0
    assert created["vector_store_id"] == ""

    assert db.update_document("d1", status="ready", chunks_count=4, vector_store_id="doc_d1")
    document = db.get_document("d1")
    assert document["status"] == "ready"
    assert document["chunks_count"] == 4
    assert document["vector_store_id"] == "doc_d1"

    assert db.delete_document("d1") is True
    assert db.get_document("d1") is None
    assert db.delete_document("d1") is False


def test_unknown_status_rejected():
    db.create_document("d1", "f.pdf", "f.pdf", 1)
    with pytest.raises(ValueError):
        db.update_document("d1", status="done")


def test_update_without_fields_is_noop():
    db.create_document("d1", "f.pdf", "f.pdf", 1)
    assert db.update_document("d1") is False


def test_get_documents_keeps_requested_order():
    for document_id in ("a", "b", "c"):
        db.create_document(document_id, "f.pdf", "f.pdf", 1)
    db.update_document("b", status="ready")

    assert [d["id"] for d in db.get_documents(["c", "missing", "a", "b"])] == ["c", "a", "b"]
    assert [d["id"] for d in db.get_documents(["a", "b"], status="ready")] == ["b"]
    assert db.get_documents([]) == []


def test_messages_keep_order_and_window():
    db.create_session("s1", "Title", ["a"])
    for i in range(4):
        db.add_messages(
            "s1",
            [{"role": "user", "content": f"q{i}"}, {"role": "assistant", "content": f"a{i}"}],
        )

    assert [m["content"] for m in db.get_messages("s1")] == [
        "q0", "a0", "q1", "a1", "q2", "a2", "q3", "a3",
    ]
    assert [m["content"] for m in db.get_recent_messages("s1", 3)] == ["a2", "q3", "a3"]


def test_invalid_role_rolls_back_whole_pair():
    db.create_session("s1")
    with pytest.raises(sqlite3.IntegrityError):
        db.add_messages(
            "s1",
            [{"role": "user", "content": "q"}, {"role": "system", "content": "nope"}],
        )
    assert db.get_messages("s1") == []


def test_deleting_session_cascades_to_messages():
    db.create_session("s1")
    db.add_messages("s1", [{"role": "user", "content": "q"}])

    assert db.delete_session("s1") is True
    assert db.get_messages("s1") == []
    assert db.get_session("s1") is None


def test_conversation_manager_sessions():
    conversations = ConversationManager(context_window_size=2)
    session_id = conversations.create_session(document_ids=["a", "b"])
    conversations.add_exchange(session_id, "first question", "first answer")
    conversations.add_exchange(session_id, "second question", "second answer")

    assert conversations.format_conversation_history(session_id) == [
        {"role": "user", "content": "second question"},
        {"role": "assistant", "content": "second answer"},
    ]
    assert len(conversations.get_all_messages(session_id)) == 4

    conversations.update_session_title(session_id, "  " + "x" * 150)
    session = conversations.get_session(session_id)
    assert session["title"] == "x" * 100
    assert session["document_ids"] == ["a", "b"]
    assert [s["id"] for s in conversations.list_sessions()] == [session_id]

    assert conversations.delete_session(session_id) is True
    assert conversations.get_session(session_id) is None
