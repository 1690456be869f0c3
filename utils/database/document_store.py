"""
Document store used by the role panel system.

Both implementations offer the same small surface: whole-document get/set
(optionally a shallow merge), equality queries, delete, and ``update_if`` - a
conditional merge that only applies when the stored document still contains
the expected values. ``update_if`` is what makes approval resolution
at-most-once when several approvers react at the same time.
"""
from __future__ import annotations

import asyncio
import copy
import os
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import bindparam, delete, select, update
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.sql import func

from utils.logging_setup import get_logger

from .connection import DatabaseConnection
from .models import Document

logger = get_logger(__name__)


class DocumentStore(Protocol):
    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]: ...

    async def set(self, collection: str, key: str, doc: Dict[str, Any], merge: bool = False) -> None: ...

    async def query(self, collection: str, **equals: Any) -> List[Dict[str, Any]]: ...

    async def update_if(
        self, collection: str, key: str, expected: Dict[str, Any], changes: Dict[str, Any]
    ) -> bool:
        """Merge ``changes`` only if every ``expected`` field still matches. True if applied."""
        ...

    async def delete(self, collection: str, key: str) -> bool: ...


def _matches(doc: Dict[str, Any], equals: Dict[str, Any]) -> bool:
    return all(doc.get(field) == value for field, value in equals.items())


class MemoryDocumentStore:
    """In-process store for tests and local runs (DOCUMENT_STORE=memory)"""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection, key):
        doc = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection, key, doc, merge=False):
        async with self._lock:
            bucket = self._collections.setdefault(collection, {})
            if merge and key in bucket:
                bucket[key].update(copy.deepcopy(doc))
            else:
                bucket[key] = copy.deepcopy(doc)

    async def query(self, collection, **equals):
        return [
            copy.deepcopy(doc)
            for doc in self._collections.get(collection, {}).values()
            if _matches(doc, equals)
        ]

    async def update_if(self, collection, key, expected, changes):
        async with self._lock:
            doc = self._collections.get(collection, {}).get(key)
            if doc is None or not _matches(doc, expected):
                return False
            doc.update(copy.deepcopy(changes))
            return True

    async def delete(self, collection, key):
        async with self._lock:
            return self._collections.get(collection, {}).pop(key, None) is not None


class SqlDocumentStore:
    """PostgreSQL store: one JSONB row per document"""

    def __init__(self, connection: DatabaseConnection):
        self.connection = connection

    async def get(self, collection, key):
        async with self.connection.get_session() as session:
            result = await session.execute(
                select(Document.data).where(Document.collection == collection, Document.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, collection, key, doc, merge=False):
        stmt = insert(Document).values(collection=collection, key=key, data=doc)
        new_data = stmt.excluded.data
        if merge:
            new_data = Document.data.op('||', return_type=JSONB)(stmt.excluded.data)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Document.collection, Document.key],
            set_={'data': new_data, 'updated_at': func.now()},
        )
        async with self.connection.get_session() as session:
            await session.execute(stmt)
            await session.commit()

    async def query(self, collection, **equals):
        stmt = select(Document.data).where(Document.collection == collection)
        if equals:
            stmt = stmt.where(Document.data.contains(equals))
        async with self.connection.get_session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_if(self, collection, key, expected, changes):
        # Single UPDATE: the row lock taken by PostgreSQL decides the winner,
        # the loser re-evaluates the WHERE clause and matches nothing.
        stmt = (
            update(Document)
            .where(
                Document.collection == collection,
                Document.key == key,
                Document.data.contains(expected),
            )
            .values(
                data=Document.data.op('||', return_type=JSONB)(bindparam('changes', changes, type_=JSONB)),
                updated_at=func.now(),
            )
        )
        async with self.connection.get_session() as session:
            result = await session.execute(stmt)
            await session.commit()
            applied = result.rowcount == 1
        if not applied:
            logger.debug("Conditional update skipped for %s/%s", collection, key)
        return applied

    async def delete(self, collection, key):
        async with self.connection.get_session() as session:
            result = await session.execute(
                delete(Document).where(Document.collection == collection, Document.key == key)
            )
            await session.commit()
            return result.rowcount > 0


async def open_document_store():
    """
    Build the store selected by DOCUMENT_STORE (postgres by default).

    Returns ``(store, connection)``; connection is None for the memory store.
    """
    kind = os.getenv('DOCUMENT_STORE', 'postgres').lower()
    if kind == 'memory':
        logger.warning("DOCUMENT_STORE=memory: данные панелей не сохраняются между перезапусками")
        return MemoryDocumentStore(), None

    connection = DatabaseConnection()
    if not await connection.initialize():
        raise RuntimeError("PostgreSQL is not available, check DATABASE_URL / POSTGRES_* settings")
    return SqlDocumentStore(connection), connection
