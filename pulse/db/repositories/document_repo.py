"""Repository layer for keyed JSON documents"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from pulse.core.cache_keys import READ_BATCH_LIMIT
from pulse.core.metrics import store_batch_reads_total
from pulse.db.models.documents import Document


def _project(data: Optional[dict], fields: Optional[Sequence[str]]) -> dict:
    """Keep only the requested top-level fields (all fields when None)"""
    data = data or {}
    if fields is None:
        return dict(data)
    return {f: data[f] for f in fields if f in data}


def chunked(items: Sequence[str], size: int = READ_BATCH_LIMIT) -> Iterable[List[str]]:
    """Split keys into batches no larger than the store's read-many limit"""
    for i in range(0, len(items), size):
        yield list(items[i : i + size])


def get_document(
    session: Session,
    collection: str,
    doc_id: str,
    *,
    fields: Optional[Sequence[str]] = None,
) -> Optional[dict]:
    """Single keyed read; None when the document does not exist"""
    row = session.get(Document, (collection, doc_id))
    if row is None:
        return None
    return _project(row.data, fields)


def get_many(
    session: Session,
    collection: str,
    doc_ids: Sequence[str],
    *,
    fields: Optional[Sequence[str]] = None,
) -> Dict[str, dict]:
    """
    Read many documents by key.

    Keys are de-duplicated (first occurrence order) and fetched in batches of
    at most READ_BATCH_LIMIT. Missing documents are simply absent from the
    returned mapping.
    """
    unique_ids = list(dict.fromkeys(d for d in doc_ids if d))
    found: Dict[str, dict] = {}
    for batch in chunked(unique_ids):
        stmt = select(Document.doc_id, Document.data).where(
            Document.collection == collection, Document.doc_id.in_(batch)
        )
        store_batch_reads_total.labels(collection=collection.split("/")[0]).inc()
        for doc_id, data in session.execute(stmt).all():
            found[doc_id] = _project(data, fields)
    return found


def set_document(session: Session, collection: str, doc_id: str, data: dict) -> None:
    """
    Full overwrite of one document in a single statement.

    Uses INSERT .. ON CONFLICT DO UPDATE where the dialect supports it so
    concurrent writers never collide on the primary key; the last write wins.
    """
    values = {"collection": collection, "doc_id": doc_id, "data": data}
    dialect = session.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = postgresql.insert(Document).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite.insert(Document).values(**values)
    else:
        session.merge(Document(**values))
        return

    stmt = stmt.on_conflict_do_update(
        index_elements=["collection", "doc_id"],
        set_={"data": stmt.excluded.data, "updated_at": func.now()},
    )
    session.execute(stmt)


def delete_document(session: Session, collection: str, doc_id: str) -> bool:
    row = session.get(Document, (collection, doc_id))
    if row is None:
        return False
    session.delete(row)
    return True


def list_documents(session: Session, collection: str) -> List[Tuple[str, dict]]:
    """All documents of one collection, ordered by id"""
    stmt = (
        select(Document.doc_id, Document.data)
        .where(Document.collection == collection)
        .order_by(Document.doc_id)
    )
    return [(doc_id, dict(data or {})) for doc_id, data in session.execute(stmt).all()]


class DocumentStore:
    """
    Session-managing facade over the repository functions.

    Services depend on this object rather than on sessions so each read or
    write is its own short transaction.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_env(cls) -> "DocumentStore":
        from pulse.database import get_session_local

        return cls(get_session_local())

    def get(self, collection: str, doc_id: str, *, fields: Optional[Sequence[str]] = None) -> Optional[dict]:
        with self._session_factory() as session:
            return get_document(session, collection, doc_id, fields=fields)

    def get_many(
        self, collection: str, doc_ids: Sequence[str], *, fields: Optional[Sequence[str]] = None
    ) -> Dict[str, dict]:
        with self._session_factory() as session:
            return get_many(session, collection, doc_ids, fields=fields)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._session_factory.begin() as session:
            set_document(session, collection, doc_id, data)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._session_factory.begin() as session:
            return delete_document(session, collection, doc_id)

    def list(self, collection: str) -> List[Tuple[str, dict]]:
        with self._session_factory() as session:
            return list_documents(session, collection)
