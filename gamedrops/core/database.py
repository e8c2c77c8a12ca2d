# ===== IMPORTS & DEPENDENCIES =====
import os
import re
import json
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from gamedrops.config import DATABASE_PATH
from gamedrops.core.errors import PersistenceError
from gamedrops.utils.deal_utils import to_iso, utc_now

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Filter = Tuple[str, str, Any]
OrderBy = Tuple[str, str]

_COLLECTION_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when the document is written."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def _compare(op: str, value: Any, expected: Any) -> bool:
    if op == '==':
        return value == expected
    if op == '!=':
        return value != expected
    if op == 'in':
        return value in expected
    if op == 'missing_or_gt':
        return value is None or value > expected
    if value is None:
        return False
    if op == '<':
        return value < expected
    if op == '<=':
        return value <= expected
    if op == '>':
        return value > expected
    if op == '>=':
        return value >= expected
    raise ValueError(f"Unsupported filter operator: {op}")


# ===== CORE BUSINESS LOGIC =====
class DocumentStore:
    """
    A small JSON document store on top of sqlite. Each collection is a table of
    (id, data, expires_at) rows; a batch is written inside one transaction so readers
    never observe a partially applied batch.
    """

    def __init__(self, db_path: str = DATABASE_PATH, now: Optional[Callable[[], datetime]] = None):
        self.db_path = db_path
        self._now = now or utc_now
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        logger.info(f"[{self.__class__.__name__}] Document store initialized at: {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yields a connection; commits on success, rolls back on error, always closes."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _table(collection: str) -> str:
        if not _COLLECTION_NAME.match(collection):
            raise ValueError(f"Invalid collection name: {collection!r}")
        return f'"{collection}"'

    def _ensure_collection(self, conn: sqlite3.Connection, collection: str) -> str:
        table = self._table(collection)
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                expires_at TEXT
            )
        """)
        return table

    def batch_upsert(
        self,
        collection: str,
        documents: Sequence[Document],
        merge: bool = True,
        insert_only_fields: Sequence[str] = ()
    ) -> int:
        """
        Creates or updates every document in one transaction, keyed by its 'id'.
        With merge=True, fields already stored but absent from the new document are kept,
        and `insert_only_fields` keep their stored value when the document already exists.
        Raises PersistenceError when anything fails; nothing from the batch is committed then.
        """
        if not documents:
            return 0

        server_time = to_iso(self._now())
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                table = self._ensure_collection(conn, collection)
                for document in documents:
                    doc_id = document.get('id')
                    if not doc_id:
                        raise PersistenceError("document without an 'id'")

                    data = {k: (server_time if v is SERVER_TIMESTAMP else v) for k, v in document.items()}
                    if merge:
                        row = conn.execute(f"SELECT data FROM {table} WHERE id = ?", (doc_id,)).fetchone()
                        if row:
                            existing = json.loads(row[0])
                            for field in insert_only_fields:
                                if field in existing:
                                    data.pop(field, None)
                            data = {**existing, **data}

                    conn.execute(
                        f"INSERT OR REPLACE INTO {table} (id, data, expires_at) VALUES (?, ?, ?)",
                        (doc_id, json.dumps(data, ensure_ascii=False), data.get('expiresAt'))
                    )
        except PersistenceError:
            raise
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceError(f"batch write to '{collection}' failed: {e}") from e

        logger.info(f"[{self.__class__.__name__}] Committed {len(documents)} documents to '{collection}'.")
        return len(documents)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Returns one document by id, or None."""
        with self._get_connection() as conn:
            table = self._ensure_collection(conn, collection)
            row = conn.execute(f"SELECT data FROM {table} WHERE id = ?", (doc_id,)).fetchone()
        return json.loads(row[0]) if row else None

    def query(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None
    ) -> List[Document]:
        """
        Returns documents matching every (field, op, value) filter, optionally ordered
        by (field, 'asc'|'desc') and truncated to `limit`. Missing fields sort last.
        """
        with self._get_connection() as conn:
            table = self._ensure_collection(conn, collection)
            rows = conn.execute(f"SELECT data FROM {table}").fetchall()

        documents = [json.loads(row[0]) for row in rows]
        for field, op, expected in filters or []:
            documents = [d for d in documents if _compare(op, d.get(field), expected)]

        if order_by:
            field, direction = order_by
            if direction == 'desc':
                documents.sort(key=lambda d: (d.get(field) is not None, d.get(field) or ''), reverse=True)
            else:
                documents.sort(key=lambda d: (d.get(field) is None, d.get(field) or ''))

        if limit is not None:
            documents = documents[:max(limit, 0)]
        return documents

    def purge_expired(self, collection: str, now: Optional[datetime] = None) -> int:
        """Physically removes documents whose store-side expiry has passed."""
        cutoff = to_iso(now or self._now())
        with self._get_connection() as conn:
            table = self._ensure_collection(conn, collection)
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE expires_at IS NOT NULL AND expires_at <= ?", (cutoff,)
            )
            removed = cursor.rowcount
        logger.info(f"[{self.__class__.__name__}] Purged {removed} expired documents from '{collection}'.")
        return removed
