"""
Document store abstraction for Firestore, SQL and an in-memory test implementation.

Field values written through any store may contain Firestore sentinels and
transforms (SERVER_TIMESTAMP, DELETE_FIELD, ArrayUnion, ArrayRemove); the
non-Firestore stores resolve them the same way Firestore does.
"""

from __future__ import annotations

import contextlib
import copy
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Protocol, Sequence

from google.api_core import exceptions
from google.cloud.firestore_v1 import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
)
from google.cloud.firestore_v1.base_query import FieldFilter
from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from shared.errors import NotFoundError, StoreError

# (field_path, op, value); op is "==" or "array-contains".
Filter = tuple[str, str, Any]

SUPPORTED_OPERATORS = ("==", "array-contains")


@dataclass
class StoredDocument:
    id: str
    data: dict


class DocumentStore(Protocol):
    """Interface for the hosted document database."""

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        ...

    def add(self, collection: str, data: dict) -> str:
        ...

    def delete(self, collection: str, doc_id: str) -> None:
        ...

    def where(
        self, collection: str, filters: Sequence[Filter], limit: int | None = None
    ) -> list[StoredDocument]:
        ...

    def stream(self, collection: str) -> list[StoredDocument]:
        ...

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _resolve_value(value: Any, current: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, ArrayUnion):
        merged = list(current) if isinstance(current, list) else []
        for item in value.values:
            if item not in merged:
                merged.append(item)
        return merged
    if isinstance(value, ArrayRemove):
        existing = list(current) if isinstance(current, list) else []
        return [item for item in existing if item not in value.values]
    if isinstance(value, dict):
        return {
            key: _resolve_value(item, None, now)
            for key, item in value.items()
            if item is not DELETE_FIELD
        }
    if isinstance(value, (list, tuple)):
        return [_resolve_value(item, None, now) for item in value]
    return copy.deepcopy(value)


def apply_field_updates(data: dict, fields: dict, now: datetime) -> dict:
    """
    Applies a Firestore-style update to a plain document dict in place.

    Keys are dotted field paths; intermediate maps are created as needed and
    a top-level key replaces the whole field.
    """
    for path, value in fields.items():
        parts = path.split(".")
        target = data
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        leaf = parts[-1]
        if value is DELETE_FIELD:
            target.pop(leaf, None)
        else:
            target[leaf] = _resolve_value(value, target.get(leaf), now)
    return data


def _lookup(data: dict, field_path: str) -> tuple[bool, Any]:
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def matches_filters(data: dict, filters: Sequence[Filter]) -> bool:
    for field_path, op, value in filters:
        found, current = _lookup(data, field_path)
        if op == "==":
            if not found or current != value:
                return False
        elif op == "array-contains":
            if not isinstance(current, list) or value not in current:
                return False
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return True


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.Lock()

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        with self._lock:
            self._collection(collection)[doc_id] = _resolve_value(data, None, _now())

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise NotFoundError(f"No document to update: {collection}/{doc_id}")
            docs[doc_id] = apply_field_updates(
                copy.deepcopy(docs[doc_id]), fields, _now()
            )

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.set(collection, doc_id, data)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collection(collection).pop(doc_id, None)

    def where(
        self, collection: str, filters: Sequence[Filter], limit: int | None = None
    ) -> list[StoredDocument]:
        results: list[StoredDocument] = []
        with self._lock:
            for doc_id, data in self._collection(collection).items():
                if matches_filters(data, filters):
                    results.append(StoredDocument(doc_id, copy.deepcopy(data)))
                    if limit and len(results) >= limit:
                        break
        return results

    def stream(self, collection: str) -> list[StoredDocument]:
        return self.where(collection, [])

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        with self._lock:
            docs = self._collection(collection)
            missing = [doc_id for doc_id in updates if doc_id not in docs]
            if missing:
                raise NotFoundError(
                    f"No document to update: {collection}/{missing[0]}"
                )
            now = _now()
            for doc_id, fields in updates.items():
                docs[doc_id] = apply_field_updates(
                    copy.deepcopy(docs[doc_id]), fields, now
                )

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.collections.clear()


_DATETIME_TAG = "__datetime__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_DATETIME_TAG}:
            return datetime.fromisoformat(value[_DATETIME_TAG])
        return {key: _decode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    return value


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Queries load the collection and filter in Python; the portal's
    collections are small enough that this is not a concern.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDocumentStore")
        in_memory_sqlite = database_url.startswith("sqlite") and ":memory:" in database_url
        if in_memory_sqlite:
            # One shared connection, otherwise every thread sees its own empty database.
            self.engine = create_engine(
                database_url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            self._lock = threading.Lock()
        else:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
            self._lock = contextlib.nullcontext()
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        with self._lock:
            try:
                with self.Session() as session:
                    yield session
            except SQLAlchemyError as e:
                raise StoreError(f"Store call failed during {action}: {e}") from e

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._session(f"get {collection}/{doc_id}") as session:
            row = session.get(DocumentRow, (collection, doc_id))
            return _decode(row.data) if row else None

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        payload = _encode(_resolve_value(data, None, _now()))
        with self._session(f"set {collection}/{doc_id}") as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if row:
                row.data = payload
                row.updated_at = time.time()
            else:
                now = time.time()
                session.add(
                    DocumentRow(
                        collection=collection,
                        doc_id=doc_id,
                        data=payload,
                        created_at=now,
                        updated_at=now,
                    )
                )
            session.commit()

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        self.batch_update(collection, {doc_id: fields})

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.set(collection, doc_id, data)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> None:
        with self._session(f"delete {collection}/{doc_id}") as session:
            row = session.get(DocumentRow, (collection, doc_id))
            if row:
                session.delete(row)
                session.commit()

    def where(
        self, collection: str, filters: Sequence[Filter], limit: int | None = None
    ) -> list[StoredDocument]:
        with self._session(f"query {collection}") as session:
            stmt = (
                select(DocumentRow)
                .where(DocumentRow.collection == collection)
                .order_by(DocumentRow.created_at.asc())
            )
            rows = session.execute(stmt).scalars().all()
            results: list[StoredDocument] = []
            for row in rows:
                data = _decode(row.data)
                if matches_filters(data, filters):
                    results.append(StoredDocument(row.doc_id, data))
                    if limit and len(results) >= limit:
                        break
            return results

    def stream(self, collection: str) -> list[StoredDocument]:
        return self.where(collection, [])

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        with self._session(f"update {collection}") as session:
            now = _now()
            for doc_id, fields in updates.items():
                row = session.get(DocumentRow, (collection, doc_id))
                if not row:
                    raise NotFoundError(
                        f"No document to update: {collection}/{doc_id}"
                    )
                data = apply_field_updates(_decode(row.data), fields, now)
                row.data = _encode(data)
                row.updated_at = time.time()
            session.commit()


@contextmanager
def _firestore_errors(action: str) -> Iterator[None]:
    try:
        yield
    except exceptions.NotFound as e:
        raise NotFoundError(f"Document not found during {action}") from e
    except exceptions.GoogleAPIError as e:
        raise StoreError(f"Store call failed during {action}: {e}") from e


class FirestoreDocumentStore:
    """Firestore-backed implementation wrapping a firestore.Client."""

    def __init__(self, client):
        self.client = client

    def _doc(self, collection: str, doc_id: str):
        return self.client.collection(collection).document(doc_id)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        with _firestore_errors(f"get {collection}/{doc_id}"):
            snapshot = self._doc(collection, doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def set(self, collection: str, doc_id: str, data: dict) -> None:
        with _firestore_errors(f"set {collection}/{doc_id}"):
            self._doc(collection, doc_id).set(data)

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        with _firestore_errors(f"update {collection}/{doc_id}"):
            self._doc(collection, doc_id).update(fields)

    def add(self, collection: str, data: dict) -> str:
        with _firestore_errors(f"add {collection}"):
            _, doc_ref = self.client.collection(collection).add(data)
        return doc_ref.id

    def delete(self, collection: str, doc_id: str) -> None:
        with _firestore_errors(f"delete {collection}/{doc_id}"):
            self._doc(collection, doc_id).delete()

    def where(
        self, collection: str, filters: Sequence[Filter], limit: int | None = None
    ) -> list[StoredDocument]:
        query = self.client.collection(collection)
        for field_path, op, value in filters:
            if op not in SUPPORTED_OPERATORS:
                raise ValueError(f"Unsupported filter operator: {op}")
            query = query.where(filter=FieldFilter(field_path, op, value))
        if limit:
            query = query.limit(limit)
        with _firestore_errors(f"query {collection}"):
            snapshots = list(query.stream())
        return [
            StoredDocument(snapshot.id, snapshot.to_dict() or {})
            for snapshot in snapshots
        ]

    def stream(self, collection: str) -> list[StoredDocument]:
        return self.where(collection, [])

    def batch_update(self, collection: str, updates: Dict[str, dict]) -> None:
        batch = self.client.batch()
        for doc_id, fields in updates.items():
            batch.update(self._doc(collection, doc_id), fields)
        with _firestore_errors(f"batch update {collection}"):
            batch.commit()


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)
