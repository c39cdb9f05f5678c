"""Database initialization and helpers for docqa.

SQLite database for storing:
- Source documents
- Text chunks, keyed by their FAISS vector IDs
- Answered queries with embedded citations
- Escalation tickets for human review
"""
import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import structlog

from docqa import config

logger = structlog.get_logger()

DB_PATH = config.DB_PATH

TICKET_STATUSES = ("open", "closed")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection() -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database() -> None:
    """Initialize the database schema.

    Creates tables if they don't exist:
    - documents: one row per ingested source
    - chunks: chunk text, metadata and embedding dimension
    - queries: answered questions with citations
    - tickets: low-confidence queries awaiting human follow-up
    """
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                source_url TEXT,
                uploaded_by TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # Chunk ids double as vector ids in the FAISS index for embedding_dim
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chunks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id INTEGER NOT NULL REFERENCES documents(id),
                content TEXT NOT NULL,
                embedding_dim INTEGER NOT NULL,
                metadata_json TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_chunks_document_id
            ON chunks(document_id)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS queries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                question TEXT NOT NULL,
                answer TEXT NOT NULL,
                confidence REAL NOT NULL,
                citations_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS tickets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                query_id INTEGER NOT NULL REFERENCES queries(id),
                status TEXT NOT NULL CHECK (status IN ('open', 'closed')),
                created_at TEXT NOT NULL,
                closed_at TEXT
            )
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(DB_PATH))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_document(name: str, source_url: Optional[str], uploaded_by: str) -> int:
    """Insert a document row.

    Returns:
        ID of the new document
    """
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute(
            """
            INSERT INTO documents (name, source_url, uploaded_by, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (name, source_url, uploaded_by, _now()),
        )
        conn.commit()
        row_id = cursor.lastrowid
        logger.info("document_inserted", id=row_id, name=name)
        return row_id

    except Exception as e:
        conn.rollback()
        logger.error("document_insert_failed", error=str(e), name=name)
        raise
    finally:
        conn.close()


def insert_chunks(rows: Sequence[Dict[str, Any]]) -> List[int]:
    """Insert a batch of chunk rows in one transaction.

    Args:
        rows: Dicts with document_id, content, embedding_dim and metadata

    Returns:
        Row IDs in input order
    """
    conn = get_connection()
    cursor = conn.cursor()
    created_at = _now()

    try:
        ids = []
        for row in rows:
            cursor.execute(
                """
                INSERT INTO chunks (
                    document_id, content, embedding_dim, metadata_json, created_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    row["document_id"],
                    row["content"],
                    row["embedding_dim"],
                    json.dumps(row.get("metadata") or {}),
                    created_at,
                ),
            )
            ids.append(cursor.lastrowid)

        conn.commit()
        return ids

    except Exception as e:
        conn.rollback()
        logger.error("chunk_insert_failed", error=str(e), batch_size=len(rows))
        raise
    finally:
        conn.close()


def delete_chunks(chunk_ids: Sequence[int]) -> int:
    """Delete chunk rows by ID.

    Returns:
        Number of rows deleted
    """
    if not chunk_ids:
        return 0

    conn = get_connection()
    try:
        placeholders = ",".join("?" * len(chunk_ids))
        cursor = conn.execute(f"DELETE FROM chunks WHERE id IN ({placeholders})", list(chunk_ids))
        conn.commit()
        return cursor.rowcount
    except Exception as e:
        conn.rollback()
        logger.error("chunk_delete_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_chunks_by_ids(chunk_ids: Sequence[int]) -> Dict[int, Dict[str, Any]]:
    """Retrieve chunks by ID.

    Returns:
        Mapping of chunk ID to chunk dict (metadata parsed)
    """
    if not chunk_ids:
        return {}

    conn = get_connection()

    try:
        placeholders = ",".join("?" * len(chunk_ids))
        rows = conn.execute(
            f"""
            SELECT id, document_id, content, embedding_dim, metadata_json
            FROM chunks
            WHERE id IN ({placeholders})
            """,
            list(chunk_ids),
        ).fetchall()

        chunks = {}
        for row in rows:
            chunk = dict(row)
            chunk["metadata"] = json.loads(chunk.pop("metadata_json") or "{}")
            chunks[chunk["id"]] = chunk
        return chunks

    except Exception as e:
        logger.error("chunks_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_documents_by_ids(document_ids: Sequence[int]) -> List[Dict[str, Any]]:
    """Retrieve documents (id, name, source_url) by ID."""
    if not document_ids:
        return []

    conn = get_connection()

    try:
        placeholders = ",".join("?" * len(document_ids))
        rows = conn.execute(
            f"SELECT id, name, source_url FROM documents WHERE id IN ({placeholders})",
            list(document_ids),
        ).fetchall()
        return [dict(row) for row in rows]

    except Exception as e:
        logger.error("documents_retrieval_failed", error=str(e))
        raise
    finally:
        conn.close()


def insert_query(
    question: str,
    answer: str,
    confidence: float,
    citations: List[Dict[str, Any]],
) -> int:
    """Record an answered question.

    Returns:
        ID of the new query row
    """
    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute(
            """
            INSERT INTO queries (question, answer, confidence, citations_json, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (question, answer, confidence, json.dumps(citations), _now()),
        )
        conn.commit()
        return cursor.lastrowid

    except Exception as e:
        conn.rollback()
        logger.error("query_insert_failed", error=str(e))
        raise
    finally:
        conn.close()


def get_query(query_id: int) -> Optional[Dict[str, Any]]:
    """Get a query row with its citations parsed."""
    conn = get_connection()

    try:
        row = conn.execute("SELECT * FROM queries WHERE id = ?", (query_id,)).fetchone()
        if row is None:
            return None
        query = dict(row)
        query["citations"] = json.loads(query.pop("citations_json"))
        return query
    finally:
        conn.close()


def insert_ticket(query_id: int, status: str = "open") -> int:
    """Open a ticket for a saved query.

    Returns:
        ID of the new ticket
    """
    if status not in TICKET_STATUSES:
        raise ValueError(f"Invalid ticket status: {status}")

    conn = get_connection()
    cursor = conn.cursor()

    try:
        cursor.execute(
            "INSERT INTO tickets (query_id, status, created_at) VALUES (?, ?, ?)",
            (query_id, status, _now()),
        )
        conn.commit()
        row_id = cursor.lastrowid
        logger.info("ticket_inserted", id=row_id, query_id=query_id, status=status)
        return row_id

    except Exception as e:
        conn.rollback()
        logger.error("ticket_insert_failed", error=str(e), query_id=query_id)
        raise
    finally:
        conn.close()


def close_ticket(ticket_id: int) -> bool:
    """Mark a ticket closed.

    Returns:
        True if an open ticket was closed, False if it was missing or already closed
    """
    conn = get_connection()

    try:
        cursor = conn.execute(
            "UPDATE tickets SET status = 'closed', closed_at = ? WHERE id = ? AND status = 'open'",
            (_now(), ticket_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    except Exception as e:
        conn.rollback()
        logger.error("ticket_close_failed", error=str(e), ticket_id=ticket_id)
        raise
    finally:
        conn.close()


def list_tickets(status: Optional[str] = None) -> List[Dict[str, Any]]:
    """List tickets with their question, newest first."""
    conn = get_connection()

    try:
        sql = """
            SELECT t.id, t.query_id, t.status, t.created_at, t.closed_at,
                   q.question, q.confidence
            FROM tickets t JOIN queries q ON q.id = t.query_id
        """
        params: tuple = ()
        if status:
            sql += " WHERE t.status = ?"
            params = (status,)
        sql += " ORDER BY t.id DESC"
        return [dict(row) for row in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def get_chunk_count(document_id: Optional[int] = None) -> int:
    """Get the number of chunks, optionally for one document."""
    conn = get_connection()

    try:
        if document_id is None:
            row = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
            ).fetchone()
        return row[0]
    finally:
        conn.close()
