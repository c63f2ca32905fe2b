# backend/maintenance_engine/store.py
from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import Conflict, NotFound
from .models import Document


class DuplicateDocument(Conflict):
    pass


class VersionConflict(Conflict):
    pass


@dataclass(frozen=True)
class StoredDocument:
    id: str
    data: dict[str, Any]
    version: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field_expr(field: str, value: Any):
    col = Document.body[field]
    # bool first: bool is an int subclass
    if isinstance(value, bool):
        return col.as_boolean() == value
    if isinstance(value, int):
        return col.as_integer() == value
    if isinstance(value, float):
        return col.as_float() == value
    return col.as_string() == str(value)


def _to_stored(row: Document) -> StoredDocument:
    return StoredDocument(id=str(row.doc_id), data=copy.deepcopy(dict(row.body or {})), version=int(row.version))


class DocumentStore:
    """
    Key-value document collections over a single SQL table.

    Every write commits on its own; there are no multi-document transactions.
    The only atomic guarantees are the (collection, doc_id) unique constraint
    and the version check in ``update(..., expected_version=...)``.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # -------------------------
    # reads
    # -------------------------
    def _row(self, collection: str, doc_id: str) -> Optional[Document]:
        return self.db.scalar(
            select(Document).where(Document.collection == collection, Document.doc_id == str(doc_id))
        )

    def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        row = self._row(collection, doc_id)
        return _to_stored(row) if row is not None else None

    def query(self, collection: str, **equals: Any) -> list[StoredDocument]:
        q = select(Document).where(Document.collection == collection)
        for field, value in equals.items():
            q = q.where(_field_expr(field, value))
        return [_to_stored(r) for r in self.db.scalars(q.order_by(Document.id)).all()]

    def first(self, collection: str, **equals: Any) -> Optional[StoredDocument]:
        rows = self.query(collection, **equals)
        return rows[0] if rows else None

    # -------------------------
    # writes
    # -------------------------
    def add(self, collection: str, data: dict[str, Any]) -> StoredDocument:
        return self.create(collection, uuid.uuid4().hex, data)

    def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> StoredDocument:
        now = _utcnow()
        row = Document(
            collection=collection,
            doc_id=str(doc_id),
            body=copy.deepcopy(data),
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateDocument(f"{collection}/{doc_id} already exists")
        self.db.refresh(row)
        return _to_stored(row)

    def update(
        self,
        collection: str,
        doc_id: str,
        changes: dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> StoredDocument:
        """
        Shallow-merge ``changes`` into the document.

        With ``expected_version`` the write only lands if nobody else has
        written the document since that version was read.
        """
        row = self._row(collection, doc_id)
        if row is None:
            raise NotFound(f"{collection}/{doc_id} not found")

        base_version = int(row.version)
        if expected_version is not None and base_version != int(expected_version):
            raise VersionConflict(f"{collection}/{doc_id} changed (version {base_version} != {expected_version})")

        merged = copy.deepcopy(dict(row.body or {}))
        merged.update(copy.deepcopy(changes))

        stmt = update(Document).where(Document.id == row.id)
        if expected_version is not None:
            stmt = stmt.where(Document.version == base_version)
        res = self.db.execute(
            stmt.values(body=merged, version=Document.version + 1, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if expected_version is not None and res.rowcount == 0:
            self.db.rollback()
            raise VersionConflict(f"{collection}/{doc_id} changed concurrently")
        self.db.commit()

        self.db.expire(row)
        self.db.refresh(row)
        return _to_stored(row)

    def delete(self, collection: str, doc_id: str) -> bool:
        res = self.db.execute(
            delete(Document).where(Document.collection == collection, Document.doc_id == str(doc_id))
        )
        self.db.commit()
        return bool(res.rowcount)

    def delete_where(self, collection: str, **equals: Any) -> int:
        ids = [d.id for d in self.query(collection, **equals)]
        if not ids:
            return 0
        res = self.db.execute(
            delete(Document).where(Document.collection == collection, Document.doc_id.in_(ids))
        )
        self.db.commit()
        return int(res.rowcount or 0)

    def rollback(self) -> None:
        self.db.rollback()
