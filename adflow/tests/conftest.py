import copy
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from google.api_core import exceptions as g_exceptions

from adflow.store import FirestoreDocumentStore


def _split(path: str) -> Tuple[str, ...]:
    return tuple(part for part in path.split("/") if part)


class FakeDocumentSnapshot:
    def __init__(self, path: Tuple[str, ...], data: Optional[Dict], exists: bool):
        self._path = path
        self._data = data
        self.exists = exists

    @property
    def id(self) -> str:
        return self._path[-1]

    def to_dict(self) -> Optional[Dict]:
        return copy.deepcopy(self._data) if self.exists else None


class FakeDocumentRef:
    def __init__(self, client: "FakeFirestoreClient", path: Tuple[str, ...]):
        self._client = client
        self._path = path

    @property
    def id(self) -> str:
        return self._path[-1]

    @property
    def path(self) -> str:
        return "/".join(self._path)

    def get(self) -> FakeDocumentSnapshot:
        self._client._check_fail("get", self._path)
        data = self._client._documents.get(self._path)
        return FakeDocumentSnapshot(self._path, data, data is not None)

    def collection(self, name: str) -> "FakeCollection":
        return FakeCollection(self._client, self._path + (name,))

    def set(self, data: Dict, merge: bool = False):
        self._client._apply([("set", self._path, data)])

    def update(self, data: Dict):
        self._client._check_fail("update", self._path)
        self._client._apply([("update", self._path, data)])

    def delete(self):
        self._client._apply([("delete", self._path, None)])


class FakeWatch:
    def __init__(self, client: "FakeFirestoreClient", path: Tuple[str, ...], callback: Callable):
        self._client = client
        self._path = path
        self._callback = callback
        self.active = True

    def unsubscribe(self):
        self.active = False
        self._client._watches.remove(self)

    def fire(self):
        docs = FakeCollection(self._client, self._path).stream()
        self._callback(docs, [], None)


class FakeCollection:
    def __init__(self, client: "FakeFirestoreClient", path: Tuple[str, ...]):
        self._client = client
        self._path = path

    def document(self, doc_id: Optional[str] = None) -> FakeDocumentRef:
        if doc_id is None:
            doc_id = self._client._generate_id()
        return FakeDocumentRef(self._client, self._path + (doc_id,))

    def stream(self) -> List[FakeDocumentSnapshot]:
        self._client._check_fail("list", self._path)
        prefix_len = len(self._path)
        return [
            FakeDocumentSnapshot(path, copy.deepcopy(data), True)
            for path, data in sorted(self._client._documents.items())
            if len(path) == prefix_len + 1 and path[:prefix_len] == self._path
        ]

    def on_snapshot(self, callback: Callable) -> FakeWatch:
        watch = FakeWatch(self._client, self._path, callback)
        self._client._watches.append(watch)
        watch.fire()
        return watch


class FakeWriteBatch:
    def __init__(self, client: "FakeFirestoreClient"):
        self._client = client
        self._ops = []

    def set(self, ref: FakeDocumentRef, data: Dict, merge: bool = False):
        self._ops.append(("set", ref._path, data))

    def update(self, ref: FakeDocumentRef, data: Dict):
        self._ops.append(("update", ref._path, data))

    def delete(self, ref: FakeDocumentRef):
        self._ops.append(("delete", ref._path, None))

    def commit(self):
        if self._client.fail_next_commit:
            self._client.fail_next_commit = False
            raise g_exceptions.ServiceUnavailable("forced commit failure")
        self._client._apply(self._ops)
        self._client.commits.append(list(self._ops))
        return []


class FakeFirestoreClient:
    """In-memory stand-in for ``google.cloud.firestore.Client``."""

    def __init__(self):
        self._documents: Dict[Tuple[str, ...], Dict] = {}
        self._auto_counter = 0
        self._watches: List[FakeWatch] = []
        self.commits: List[list] = []
        self.fail_next_commit = False
        # (operation, path) -> remaining failures
        self._failures: Dict[Tuple[str, Tuple[str, ...]], int] = {}

    def _generate_id(self) -> str:
        self._auto_counter += 1
        return f"auto{self._auto_counter}"

    def document(self, path: str) -> FakeDocumentRef:
        return FakeDocumentRef(self, _split(path))

    def collection(self, path: str) -> FakeCollection:
        return FakeCollection(self, _split(path))

    def batch(self) -> FakeWriteBatch:
        return FakeWriteBatch(self)

    def fail(self, operation: str, path: str, times: int = 1):
        self._failures[(operation, _split(path))] = times

    def _check_fail(self, operation: str, path: Tuple[str, ...]):
        remaining = self._failures.get((operation, path), 0)
        if remaining:
            self._failures[(operation, path)] = remaining - 1
            raise g_exceptions.ServiceUnavailable(f"forced {operation} failure on {'/'.join(path)}")

    def _apply(self, ops):
        # validate first so a failing batch leaves nothing behind
        for kind, path, _ in ops:
            if kind == "update" and path not in self._documents:
                raise g_exceptions.NotFound(f"No document to update: {'/'.join(path)}")
        touched = set()
        for kind, path, data in ops:
            if kind == "set":
                self._documents[path] = copy.deepcopy(data)
            elif kind == "update":
                current = self._documents.get(path, {})
                current.update(copy.deepcopy(data))
                self._documents[path] = current
            else:
                self._documents.pop(path, None)
            touched.add(path[:-1])
        for watch in list(self._watches):
            if watch._path in touched:
                watch.fire()

    # --- test helpers ---
    def seed(self, path: str, data: Dict):
        self._documents[_split(path)] = copy.deepcopy(data)

    def get(self, path: str) -> Optional[Dict]:
        data = self._documents.get(_split(path))
        return copy.deepcopy(data) if data is not None else None

    def children(self, path: str) -> List[str]:
        parent = _split(path)
        return sorted(
            p[-1] for p in self._documents
            if len(p) == len(parent) + 1 and p[:len(parent)] == parent
        )


@pytest.fixture
def fake_db():
    return FakeFirestoreClient()


@pytest.fixture
def store(fake_db):
    return FirestoreDocumentStore(fake_db)
