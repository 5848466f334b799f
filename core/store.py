"""
Workflow Store - Transactional Document Store for Workflow Entities

One collection per entity type, each keyed by a stable id. Every transition
runs inside `store.transaction()`:

- The transaction holds the store lock for its whole duration (pessimistic),
  so read-modify-write sequences never interleave.
- Writes are staged; reads inside the transaction see staged writes.
- On clean exit the staged state is persisted first, then swapped in. If
  persistence or any step before it raises, nothing is applied.

Multi-document writes (transfer completion touching a transfer and a
property) are therefore all-or-nothing.

Records are stored as plain dicts (the to_dict() form of each dataclass),
and every read returns a deep copy.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from core.errors import ConflictError
from utils.clock import utc_now


logger = logging.getLogger(__name__)

Record = dict[str, Any]
Predicate = Callable[[Record], bool]


class Collection(Enum):
    """Store collections."""

    PROPERTIES = "properties"
    DOCUMENTS = "documents"
    PAYMENTS = "payments"
    TRANSFERS = "transfers"
    DISPUTES = "disputes"


class Transaction:
    """Staged read-your-writes view over the store. Use via store.transaction()."""

    def __init__(self, state: dict[Collection, dict[str, Record]]):
        self._state = state
        self._writes: dict[Collection, dict[str, Record]] = {}

    def get(self, collection: Collection, key: str) -> Optional[Record]:
        staged = self._writes.get(collection, {})
        if key in staged:
            return copy.deepcopy(staged[key])
        record = self._state[collection].get(key)
        return copy.deepcopy(record) if record is not None else None

    def find(self, collection: Collection, predicate: Optional[Predicate] = None) -> list[Record]:
        merged = dict(self._state[collection])
        merged.update(self._writes.get(collection, {}))
        return [
            copy.deepcopy(record)
            for record in merged.values()
            if predicate is None or predicate(record)
        ]

    def put(self, collection: Collection, key: str, record: Record) -> None:
        self._writes.setdefault(collection, {})[key] = copy.deepcopy(record)

    def insert(self, collection: Collection, key: str, record: Record) -> None:
        """Stage a new record; the key must not exist."""
        if self.get(collection, key) is not None:
            raise ConflictError(f"{collection.value} record {key} already exists")
        self.put(collection, key, record)

    @property
    def has_writes(self) -> bool:
        return any(self._writes.values())

    def merged_state(self) -> dict[Collection, dict[str, Record]]:
        merged = {}
        for collection, records in self._state.items():
            staged = self._writes.get(collection)
            if staged:
                updated = dict(records)
                updated.update(staged)
                merged[collection] = updated
            else:
                merged[collection] = records
        return merged


class WorkflowStore:
    """
    Transactional store for workflow entities.

    Uses in-memory storage with optional JSON file persistence.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise store.

        Args:
            persist_path: Optional path to persist data to JSON file
        """
        self._state: dict[Collection, dict[str, Record]] = {c: {} for c in Collection}
        self._lock = threading.RLock()
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self, state: dict[Collection, dict[str, Record]]) -> None:
        """Persist the given state. Writes a temp file and renames it into place."""
        if not self._persist_path:
            return

        data = {
            "collections": {c.value: records for c, records in state.items()},
            "saved_at": utc_now().isoformat(),
        }
        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._persist_path.with_suffix(self._persist_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, default=str))
        tmp_path.replace(self._persist_path)

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._persist_path.read_text())
            for name, records in data.get("collections", {}).items():
                self._state[Collection(name)] = dict(records)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load workflow store from %s: %s", self._persist_path, e)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Open an atomic read-modify-write transaction.

        Transactions must not be nested: an inner transaction would not see
        the outer one's staged writes.
        """
        with self._lock:
            tx = Transaction(self._state)
            yield tx
            if tx.has_writes:
                merged = tx.merged_state()
                self._save_to_file(merged)
                self._state = merged

    # =========================================================================
    # Read-only access
    # =========================================================================

    def get(self, collection: Collection, key: str) -> Optional[Record]:
        with self._lock:
            record = self._state[collection].get(key)
            return copy.deepcopy(record) if record is not None else None

    def find(self, collection: Collection, predicate: Optional[Predicate] = None) -> list[Record]:
        with self._lock:
            return [
                copy.deepcopy(record)
                for record in self._state[collection].values()
                if predicate is None or predicate(record)
            ]

    def count(self, collection: Collection) -> int:
        with self._lock:
            return len(self._state[collection])
