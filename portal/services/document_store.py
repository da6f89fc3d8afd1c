"""
Document store.
Structured records in named collections. Writes are atomic per document;
``batch_write`` is atomic across documents of a single root collection only.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Callable, Literal, Optional, List
import uuid

from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy import select, delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal.models.documents import StoredDocument
from portal.db.paths import split_document_path, root_of
from portal.core.errors import DocumentStoreUnavailable, NotFound


Transform = Callable[[dict[str, Any]], dict[str, Any]]


class WriteOp(BaseModel):
    """One operation of a batch."""
    kind: Literal["set", "update", "delete"]
    path: str
    data: Optional[dict[str, Any]] = None


class DocumentStore(ABC):
    """Interface of the document store."""

    @abstractmethod
    async def write_document(
        self,
        collection_path: str,
        data: dict[str, Any],
        doc_id: Optional[str] = None
    ) -> str:
        """Create or overwrite a document; returns its id (generated if omitted)."""

    @abstractmethod
    async def get_document(self, path: str) -> Optional[dict[str, Any]]:
        ...

    @abstractmethod
    async def update_document(self, path: str, fields: dict[str, Any]) -> None:
        """Merge top-level fields into an existing document. Raises NotFound."""

    @abstractmethod
    async def transform_document(self, path: str, fn: Transform) -> dict[str, Any]:
        """
        Atomically replace a document with ``fn(current)``.
        No other write to the document can interleave. Raises NotFound.
        """

    @abstractmethod
    async def delete_document(self, path: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""

    @abstractmethod
    async def list_documents(
        self,
        collection_path: str,
        where: Optional[dict[str, Any]] = None
    ) -> List[dict[str, Any]]:
        """Documents of a collection, optionally matching top-level field values."""

    @abstractmethod
    async def batch_write(self, root_collection: str, ops: List[WriteOp]) -> None:
        """Apply all ops or none. Every op must live under ``root_collection``."""


def check_batch_root(root_collection: str, ops: List[WriteOp]) -> None:
    outside = [op.path for op in ops if root_of(op.path) != root_collection]
    if outside:
        raise ValueError(
            f"batch on {root_collection!r} cannot touch other roots: {outside}"
        )


class PostgresDocumentStore(DocumentStore):
    """Document store on a single PostgreSQL JSONB table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self):
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise DocumentStoreUnavailable(f"Document store error: {e}")

    async def _set(self, session: AsyncSession, path: str, data: dict[str, Any]) -> None:
        collection, doc_id = split_document_path(path)
        body = to_jsonable_python(data)
        stmt = pg_insert(StoredDocument).values(
            path=path,
            collection=collection,
            root=root_of(path),
            doc_id=doc_id,
            data=body,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[StoredDocument.path],
            set_={"data": stmt.excluded.data, "updated_at": func.now()},
        )
        await session.execute(stmt)

    async def _locked(self, session: AsyncSession, path: str) -> StoredDocument:
        row = await session.get(StoredDocument, path, with_for_update=True)
        if row is None:
            raise NotFound(f"Document {path} not found")
        return row

    async def write_document(
        self,
        collection_path: str,
        data: dict[str, Any],
        doc_id: Optional[str] = None
    ) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        async with self._transaction() as session:
            await self._set(session, f"{collection_path}/{doc_id}", data)
        return doc_id

    async def get_document(self, path: str) -> Optional[dict[str, Any]]:
        async with self._transaction() as session:
            row = await session.get(StoredDocument, path)
            return dict(row.data) if row else None

    async def update_document(self, path: str, fields: dict[str, Any]) -> None:
        async with self._transaction() as session:
            row = await self._locked(session, path)
            row.data = {**row.data, **to_jsonable_python(fields)}

    async def transform_document(self, path: str, fn: Transform) -> dict[str, Any]:
        async with self._transaction() as session:
            row = await self._locked(session, path)
            updated = to_jsonable_python(fn(dict(row.data)))
            row.data = updated
        return updated

    async def delete_document(self, path: str) -> None:
        async with self._transaction() as session:
            await session.execute(delete(StoredDocument).where(StoredDocument.path == path))

    async def list_documents(
        self,
        collection_path: str,
        where: Optional[dict[str, Any]] = None
    ) -> List[dict[str, Any]]:
        query = select(StoredDocument).where(StoredDocument.collection == collection_path)
        if where:
            query = query.where(StoredDocument.data.contains(to_jsonable_python(where)))
        query = query.order_by(StoredDocument.created_at, StoredDocument.path)
        async with self._transaction() as session:
            result = await session.execute(query)
            return [dict(row.data) for row in result.scalars().all()]

    async def batch_write(self, root_collection: str, ops: List[WriteOp]) -> None:
        check_batch_root(root_collection, ops)
        async with self._transaction() as session:
            for op in ops:
                if op.kind == "set":
                    await self._set(session, op.path, op.data or {})
                elif op.kind == "update":
                    row = await self._locked(session, op.path)
                    row.data = {**row.data, **to_jsonable_python(op.data or {})}
                else:
                    await session.execute(
                        delete(StoredDocument).where(StoredDocument.path == op.path)
                    )
