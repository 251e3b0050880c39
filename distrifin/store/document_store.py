"""Document store interface plus in-memory and JSON-file implementations."""

import copy
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Document = Dict[str, object]
Listener = Callable[[List[Document]], None]
Unsubscribe = Callable[[], None]


@dataclass
class WriteResult:
    """Outcome of a write, delete or batch delete."""
    ok: bool
    doc_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failed(cls, doc_ids: List[str], error: str) -> "WriteResult":
        return cls(ok=False, doc_ids=list(doc_ids), error=error)


class DocumentStore(ABC):
    """
    Hosted document database as seen by the application.

    Subscribers receive the complete current document set of a collection,
    once on subscribe and again after every change. Consumers replace their
    working set with each emission rather than merging.
    """

    @abstractmethod
    def subscribe(self, collection: str, on_change: Listener) -> Unsubscribe:
        """Register a snapshot listener; returns a function that removes it."""

    @abstractmethod
    def snapshot(self, collection: str) -> List[Document]:
        """Return a copy of every document in a collection."""

    @abstractmethod
    def write(self, collection: str, doc_id: str, document: Document) -> WriteResult:
        """Create or overwrite a single document."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> WriteResult:
        """Delete a single document."""

    @abstractmethod
    def batch_delete(self, collection: str, doc_ids: List[str]) -> WriteResult:
        """Delete several documents atomically."""


class InMemoryDocumentStore(DocumentStore):
    """Document store held in process memory. Documents keep insertion order."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Document]]] = None):
        self._data: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        for collection, docs in (initial or {}).items():
            self._data[collection] = copy.deepcopy(dict(docs))

    def subscribe(self, collection: str, on_change: Listener) -> Unsubscribe:
        self._listeners[collection].append(on_change)
        on_change(self.snapshot(collection))

        def unsubscribe() -> None:
            if on_change in self._listeners[collection]:
                self._listeners[collection].remove(on_change)

        return unsubscribe

    def snapshot(self, collection: str) -> List[Document]:
        return copy.deepcopy(list(self._data[collection].values()))

    def write(self, collection: str, doc_id: str, document: Document) -> WriteResult:
        previous = copy.deepcopy(self._data[collection])
        self._data[collection][doc_id] = copy.deepcopy(document)
        return self._commit(collection, [doc_id], previous)

    def delete(self, collection: str, doc_id: str) -> WriteResult:
        previous = copy.deepcopy(self._data[collection])
        self._data[collection].pop(doc_id, None)
        return self._commit(collection, [doc_id], previous)

    def batch_delete(self, collection: str, doc_ids: List[str]) -> WriteResult:
        previous = copy.deepcopy(self._data[collection])
        for doc_id in doc_ids:
            self._data[collection].pop(doc_id, None)
        return self._commit(collection, doc_ids, previous)

    def _commit(
        self,
        collection: str,
        doc_ids: List[str],
        previous: Dict[str, Document],
    ) -> WriteResult:
        """Persist a change and notify listeners, restoring the old state on failure."""
        try:
            self._persist()
        except OSError as e:
            self._data[collection] = previous
            logger.error("Write to %s failed for %s: %s", collection, doc_ids, e)
            return WriteResult.failed(doc_ids, str(e))

        self._notify(collection)
        return WriteResult(ok=True, doc_ids=list(doc_ids))

    def _persist(self) -> None:
        """Hook for durable subclasses."""

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners[collection]):
            listener(self.snapshot(collection))


class JsonFileDocumentStore(InMemoryDocumentStore):
    """Document store saved to a single JSON file after every change."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        initial: Dict[str, Dict[str, Document]] = {}

        if self.path.exists():
            try:
                initial = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            except json.JSONDecodeError as e:
                raise ValueError(f"Store file is not valid JSON: {self.path}: {e}") from e

        super().__init__(initial)

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
