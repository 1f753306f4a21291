"""
Record store - the host persistence collaborator.

Records are opaque attribute maps keyed by (resource, record_id). The
store runs registered pre-commit hooks inside the write transaction and
post-commit hooks after it, which is where the embedding pipeline plugs in.
"""

import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.exceptions import RecordNotFoundError, StorageError
from ..core.types import HookResponse, Mutation, MutationAction, Record


logger = logging.getLogger(__name__)

BeforeCommitHook = Callable[[Mutation], HookResponse]
AfterCommitHook = Callable[[Mutation], Any]


class RecordStore(ABC):
    """Abstract host record store with mutation hooks."""

    def __init__(self):
        self._before_commit: List[BeforeCommitHook] = []
        self._after_commit: List[AfterCommitHook] = []

    def register_hooks(
        self,
        before_commit: Optional[BeforeCommitHook] = None,
        after_commit: Optional[AfterCommitHook] = None,
    ) -> None:
        """Register pre- and/or post-commit hooks for every mutation."""
        if before_commit is not None:
            self._before_commit.append(before_commit)
        if after_commit is not None:
            self._after_commit.append(after_commit)

    @abstractmethod
    def get(self, resource: str, record_id: str) -> Optional[Record]:
        """Read a record, or None if it does not exist."""
        pass

    @abstractmethod
    def list_ids(self, resource: str) -> List[str]:
        """List record ids of a resource in insertion order."""
        pass

    @abstractmethod
    def mutate(
        self,
        resource: str,
        action: Union[str, MutationAction],
        changes: Dict[str, Any],
        record_id: Optional[str] = None,
    ) -> Record:
        """Create or update a record, running the registered hooks."""
        pass

    @abstractmethod
    def commit_changes(self, resource: str, record_id: str, changes: Dict[str, Any]) -> Record:
        """Write a follow-up mutation directly, without running hooks."""
        pass

    @abstractmethod
    def delete(self, resource: str, record_id: str) -> bool:
        pass


class SqliteRecordStore(RecordStore):
    """
    SQLite-backed record store.

    Attributes are stored as a JSON document per record; vector fields are
    plain JSON arrays inside it.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", auto_init: bool = True):
        """
        Initialize the record store.

        Args:
            db_path: SQLite database path (``:memory:`` for a private store)
            auto_init: Whether to create tables automatically
        """
        super().__init__()
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to SQLite record store: {self.db_path}")

        if auto_init:
            self._init_schema()

    def _init_schema(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                resource TEXT NOT NULL,
                record_id TEXT NOT NULL,
                attributes_json TEXT NOT NULL,
                created_utc TEXT NOT NULL,
                updated_utc TEXT NOT NULL,
                PRIMARY KEY (resource, record_id)
            )
        """)

    def get(self, resource: str, record_id: str) -> Optional[Record]:
        row = self.conn.execute(
            "SELECT attributes_json FROM records WHERE resource = ? AND record_id = ?",
            (resource, str(record_id)),
        ).fetchone()
        if row is None:
            return None
        return Record(resource=resource, record_id=str(record_id), attributes=json.loads(row["attributes_json"]))

    def list_ids(self, resource: str) -> List[str]:
        rows = self.conn.execute(
            "SELECT record_id FROM records WHERE resource = ? ORDER BY created_utc, rowid",
            (resource,),
        ).fetchall()
        return [row["record_id"] for row in rows]

    def _write(self, resource: str, record_id: str, attributes: Dict[str, Any], created: bool) -> None:
        now = datetime.now(timezone.utc).isoformat(timespec="microseconds")
        payload = json.dumps(attributes, default=str)
        if created:
            self.conn.execute(
                "INSERT INTO records (resource, record_id, attributes_json, created_utc, updated_utc) "
                "VALUES (?, ?, ?, ?, ?)",
                (resource, record_id, payload, now, now),
            )
        else:
            self.conn.execute(
                "UPDATE records SET attributes_json = ?, updated_utc = ? "
                "WHERE resource = ? AND record_id = ?",
                (payload, now, resource, record_id),
            )

    def mutate(
        self,
        resource: str,
        action: Union[str, MutationAction],
        changes: Dict[str, Any],
        record_id: Optional[str] = None,
    ) -> Record:
        """
        Create or update a record.

        Pre-commit hooks run inside the transaction; a rejected hook
        response rolls the transaction back and raises the carried error.
        Post-commit hooks run once the write is durable.

        Raises:
            RecordNotFoundError: If an update targets a missing record
            StorageError: If a create targets an existing record
            VectorSyncError: Whatever error a pre-commit hook rejected with
        """
        action = MutationAction(action)

        with self._lock:
            existing = self.get(resource, record_id) if record_id is not None else None
            if action == MutationAction.UPDATE:
                if existing is None:
                    raise RecordNotFoundError(resource, str(record_id))
            elif existing is not None:
                raise StorageError(f"Record already exists: {resource}/{record_id}")
            else:
                record_id = str(record_id) if record_id is not None else str(uuid.uuid4())

            mutation = Mutation(
                resource=resource,
                action=action,
                record_id=str(record_id),
                before=dict(existing.attributes) if existing else {},
                changes=dict(changes),
            )

            self.conn.execute("BEGIN IMMEDIATE")
            try:
                for hook in self._before_commit:
                    response = hook(mutation)
                    if not response.accepted:
                        raise response.error or StorageError(
                            f"Mutation on {resource}/{record_id} rejected"
                        )
                    mutation = response.mutation
                self._write(resource, mutation.record_id, mutation.post_image(), created=existing is None)
                self.conn.execute("COMMIT")
            except Exception:
                self.conn.execute("ROLLBACK")
                raise

        logger.debug(f"Committed {action.value} on {resource}/{mutation.record_id}")

        for hook in self._after_commit:
            hook(mutation)

        return Record(resource=resource, record_id=mutation.record_id, attributes=mutation.post_image())

    def commit_changes(self, resource: str, record_id: str, changes: Dict[str, Any]) -> Record:
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                current = self.get(resource, record_id)
                if current is None:
                    raise RecordNotFoundError(resource, str(record_id))
                attributes = dict(current.attributes)
                attributes.update(changes)
                self._write(resource, str(record_id), attributes, created=False)
                self.conn.execute("COMMIT")
            except Exception:
                self.conn.execute("ROLLBACK")
                raise

        logger.debug(f"Committed follow-up changes {list(changes)} on {resource}/{record_id}")
        return Record(resource=resource, record_id=str(record_id), attributes=attributes)

    def delete(self, resource: str, record_id: str) -> bool:
        with self._lock:
            cursor = self.conn.execute(
                "DELETE FROM records WHERE resource = ? AND record_id = ?",
                (resource, str(record_id)),
            )
        return cursor.rowcount > 0

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
