"""Database initialization and helpers.

SQLite database for storing:
- Document records (status, chunk count, vector collection id)
- Chat sessions and their messages
"""
import sqlite3
import json
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
import structlog

from docqa import config

logger = structlog.get_logger()

DB_PATH = config.DB_PATH

DOCUMENT_STATUSES = ("processing", "ready", "error")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection() -> sqlite3.Connection:
    """Get a connection to the SQLite database, creating the schema if needed.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    if not DB_PATH.exists():
        init_database()

    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database() -> None:
    """Initialize the database schema.

    Creates tables if they don't exist:
    - documents: uploaded PDFs and their ingestion status
    - sessions: chat sessions over a set of documents
    - messages: ordered user/assistant messages per session
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                filename TEXT NOT NULL,
                original_name TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                vector_store_id TEXT,
                chunks_count INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'processing'
                    CHECK (status IN ('processing', 'ready', 'error')),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                title TEXT,
                document_ids_json TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # Index for fast per-session history lookups
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_session
            ON messages(session_id, id)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(DB_PATH))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


# Documents


def create_document(
    document_id: str,
    filename: str,
    original_name: str,
    file_size: int,
) -> Dict[str, Any]:
    """Insert a document record in the 'processing' state.

    Returns:
        The created document as a dictionary
    """
    conn = get_connection()
    cursor = conn.cursor()
    now = _now()

    try:
        cursor.execute("""
            INSERT INTO documents (
                id, filename, original_name, file_size,
                vector_store_id, chunks_count, status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, '', 0, 'processing', ?, ?)
        """, (document_id, filename, original_name, file_size, now, now))

        conn.commit()
        logger.info("document_created", document_id=document_id, original_name=original_name)

    except Exception as e:
        conn.rollback()
        logger.error("document_insert_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()

    return get_document(document_id)


def update_document(
    document_id: str,
    status: Optional[str] = None,
    chunks_count: Optional[int] = None,
    vector_store_id: Optional[str] = None,
) -> bool:
    """Update status and ingestion fields of a document.

    Returns:
        True if a row was updated

    Raises:
        ValueError: For an unknown status
    """
    if status is not None and status not in DOCUMENT_STATUSES:
        raise ValueError(f"Unknown document status: {status}")

    fields = {"status": status, "chunks_count": chunks_count, "vector_store_id": vector_store_id}
    updates = {key: value for key, value in fields.items() if value is not None}
    if not updates:
        return False
    updates["updated_at"] = _now()

    conn = get_connection()
    cursor = conn.cursor()

    try:
        assignments = ", ".join(f"{key} = ?" for key in updates)
        cursor.execute(
            f"UPDATE documents SET {assignments} WHERE id = ?",
            (*updates.values(), document_id),
        )
        conn.commit()
        updated = cursor.rowcount > 0
        logger.info("document_updated", document_id=document_id, status=status, updated=updated)
        return updated

    except Exception as e:
        conn.rollback()
        logger.error("document_update_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


def get_document(document_id: str) -> Optional[Dict[str, Any]]:
    """Get a document record by id, or None."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_documents(document_ids: List[str], status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Get document records in the order of document_ids.

    Args:
        document_ids: Ids to look up (missing ids are skipped)
        status: Only return documents in this status

    Returns:
        List of document dictionaries
    """
    if not document_ids:
        return []

    conn = get_connection()
    try:
        placeholders = ",".join("?" * len(document_ids))
        query = f"SELECT * FROM documents WHERE id IN ({placeholders})"
        params: List[Any] = list(document_ids)
        if status:
            query += " AND status = ?"
            params.append(status)

        rows = {row["id"]: dict(row) for row in conn.execute(query, params).fetchall()}
        return [rows[doc_id] for doc_id in document_ids if doc_id in rows]
    finally:
        conn.close()


def list_documents(limit: int = 100) -> List[Dict[str, Any]]:
    """List documents, newest first."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM documents ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()


def delete_document(document_id: str) -> bool:
    """Delete a document record.

    Returns:
        True if deleted, False if not found
    """
    conn = get_connection()
    try:
        cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        conn.commit()
        return cursor.rowcount > 0
    except Exception as e:
        conn.rollback()
        logger.error("document_delete_failed", error=str(e), document_id=document_id)
        raise
    finally:
        conn.close()


# Sessions and messages


def create_session(
    session_id: str,
    title: Optional[str] = None,
    document_ids: Optional[List[str]] = None,
) -> None:
    """Insert a new chat session."""
    conn = get_connection()
    now = _now()
    try:
        conn.execute(
            """
            INSERT INTO sessions (id, title, document_ids_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (session_id, title, json.dumps(document_ids or []), now, now),
        )
        conn.commit()
    except Exception as e:
        conn.rollback()
        logger.error("session_insert_failed", error=str(e), session_id=session_id)
        raise
    finally:
        conn.close()


def _session_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    session = dict(row)
    session["document_ids"] = json.loads(session.pop("document_ids_json") or "[]")
    return session


def get_session(session_id: str) -> Optional[Dict[str, Any]]:
    """Get a session by id, or None."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return _session_from_row(row) if row else None
    finally:
        conn.close()


def list_sessions(limit: int = 50) -> List[Dict[str, Any]]:
    """List sessions, most recently updated first."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM sessions ORDER BY updated_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [_session_from_row(row) for row in rows]
    finally:
        conn.close()


def update_session_title(session_id: str, title: str) -> bool:
    """Set a session's title. Returns True if the session exists."""
    conn = get_connection()
    try:
        cursor = conn.execute(
            "UPDATE sessions SET title = ?, updated_at = ? WHERE id = ?",
            (title, _now(), session_id),
        )
        conn.commit()
        return cursor.rowcount > 0
    except Exception as e:
        conn.rollback()
        logger.error("session_title_update_failed", error=str(e), session_id=session_id)
        raise
    finally:
        conn.close()


def delete_session(session_id: str) -> bool:
    """Delete a session and its messages. Returns True if deleted."""
    conn = get_connection()
    try:
        cursor = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        conn.commit()
        return cursor.rowcount > 0
    except Exception as e:
        conn.rollback()
        logger.error("session_delete_failed", error=str(e), session_id=session_id)
        raise
    finally:
        conn.close()


def add_messages(session_id: str, messages: List[Dict[str, str]]) -> List[int]:
    """Append messages to a session in a single transaction.

    Args:
        session_id: Target session
        messages: Dicts with 'role' and 'content', in order

    Returns:
        IDs of the inserted messages
    """
    conn = get_connection()
    cursor = conn.cursor()
    now = _now()

    try:
        ids = []
        for message in messages:
            cursor.execute(
                """
                INSERT INTO messages (session_id, role, content, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (session_id, message["role"], message["content"], now),
            )
            ids.append(cursor.lastrowid)

        cursor.execute(
            "UPDATE sessions SET updated_at = ? WHERE id = ?", (now, session_id)
        )
        conn.commit()
        return ids

    except Exception as e:
        conn.rollback()
        logger.error("messages_insert_failed", error=str(e), session_id=session_id)
        raise
    finally:
        conn.close()


def get_messages(session_id: str) -> List[Dict[str, Any]]:
    """Get every message of a session in chronological order."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM messages WHERE session_id = ? ORDER BY id", (session_id,)
        ).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()


def get_recent_messages(session_id: str, limit: int) -> List[Dict[str, Any]]:
    """Get the last `limit` messages of a session in chronological order."""
    conn = get_connection()
    try:
        rows = conn.execute(
            """
            SELECT * FROM (
                SELECT * FROM messages WHERE session_id = ? ORDER BY id DESC LIMIT ?
            ) ORDER BY id
            """,
            (session_id, limit),
        ).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()
