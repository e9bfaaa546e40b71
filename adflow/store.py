"""
Document store access for the ad-group services.

Services never touch the Firestore client directly; they go through a
``DocumentStore`` so that batching, error wrapping and subscriptions behave
the same everywhere.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from google.api_core import exceptions as g_exceptions

from .errors import StoreError, ValidationError

logger = logging.getLogger(__name__)

WriteType = Literal['set', 'update', 'delete']

# Firestore rejects batches with more writes than this.
MAX_BATCH_WRITES = 500


@dataclass
class WriteOp:
    type: WriteType
    path: str
    data: Optional[Dict[str, Any]] = field(default=None)

    @classmethod
    def set(cls, path: str, data: Dict[str, Any]) -> "WriteOp":
        return cls('set', path, data)

    @classmethod
    def update(cls, path: str, data: Dict[str, Any]) -> "WriteOp":
        return cls('update', path, data)

    @classmethod
    def delete(cls, path: str) -> "WriteOp":
        return cls('delete', path)


def snapshot_to_dict(snapshot) -> Dict[str, Any]:
    """Flatten a document snapshot into a dict with its id under ``id``."""
    data = dict(snapshot.to_dict() or {})
    data['id'] = snapshot.id
    return data


class DocumentStore:
    """Interface the services depend on. All paths are slash-separated."""

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list_children(self, parent_path: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def batch_write(self, ops: List[WriteOp]) -> None:
        raise NotImplementedError

    def update_document(self, path: str, partial: Dict[str, Any]) -> None:
        raise NotImplementedError

    def subscribe(self, collection_path: str, on_change: Callable[[List[Dict[str, Any]]], None]) -> Callable[[], None]:
        raise NotImplementedError


class FirestoreDocumentStore(DocumentStore):
    """``DocumentStore`` backed by a ``google.cloud.firestore`` client."""

    def __init__(self, db) -> None:
        self.db = db

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = self.db.document(path).get()
        except g_exceptions.GoogleAPIError as exc:
            logger.error(f"Failed to read {path}: {exc}")
            raise StoreError(f"Failed to read {path}", cause=exc) from exc
        if not snapshot.exists:
            return None
        return snapshot_to_dict(snapshot)

    def list_children(self, parent_path: str) -> List[Dict[str, Any]]:
        try:
            return [snapshot_to_dict(doc) for doc in self.db.collection(parent_path).stream()]
        except g_exceptions.GoogleAPIError as exc:
            logger.error(f"Failed to list {parent_path}: {exc}")
            raise StoreError(f"Failed to list {parent_path}", cause=exc) from exc

    def batch_write(self, ops: List[WriteOp]) -> None:
        if not ops:
            return
        if len(ops) > MAX_BATCH_WRITES:
            raise ValidationError(
                f"Batch of {len(ops)} writes exceeds the limit of {MAX_BATCH_WRITES}"
            )

        batch = self.db.batch()
        for op in ops:
            ref = self.db.document(op.path)
            if op.type == 'set':
                batch.set(ref, op.data or {})
            elif op.type == 'update':
                batch.update(ref, op.data or {})
            elif op.type == 'delete':
                batch.delete(ref)
            else:
                raise ValidationError(f"Unknown write type: {op.type}")

        try:
            batch.commit()
        except g_exceptions.GoogleAPIError as exc:
            logger.error(f"Batch of {len(ops)} writes failed: {exc}")
            raise StoreError("Batch commit failed", cause=exc) from exc

        logger.info(f"[store] committed batch of {len(ops)} writes")

    def update_document(self, path: str, partial: Dict[str, Any]) -> None:
        try:
            self.db.document(path).update(partial)
        except g_exceptions.GoogleAPIError as exc:
            logger.error(f"Failed to update {path}: {exc}")
            raise StoreError(f"Failed to update {path}", cause=exc) from exc

    def subscribe(self, collection_path: str, on_change: Callable[[List[Dict[str, Any]]], None]) -> Callable[[], None]:
        def _on_snapshot(col_snapshot, changes, read_time):
            try:
                on_change([snapshot_to_dict(doc) for doc in col_snapshot])
            except Exception:
                # The watch thread would otherwise die silently.
                logger.exception(f"Subscriber for {collection_path} failed")

        watch = self.db.collection(collection_path).on_snapshot(_on_snapshot)
        return watch.unsubscribe
