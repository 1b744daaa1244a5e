"""
This module provides the SQLite implementation of the `DocumentStore`
protocol. Every mutation writes the document and a change-log row inside one
`SAVEPOINT`, and the change log is what the notifier polls to drive live
subscriptions.
"""
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Tuple
from contextlib import asynccontextmanager
import aiosqlite
import asyncio
import json
import logging
import uuid

from folio_blog.errors import StoreError
from folio_blog.models import StoreEvent
from .notifier import SQLiteNotifier, load_collection


def split_document_path(document_path: str) -> Tuple[str, str]:
    collection, _, doc_id = document_path.rpartition("/")
    if not collection or not doc_id:
        raise StoreError(f"Malformed document path: {document_path!r}")
    return collection, doc_id


class SQLiteDocumentStore:
    """
    A document store over a write connection, a read connection and a shared
    notifier. The locks serialize use of each connection; when the database is
    in memory all three roles share one connection and one lock.
    """

    def __init__(
        self,
        write_conn: aiosqlite.Connection,
        write_lock: asyncio.Lock,
        read_conn: aiosqlite.Connection,
        read_lock: asyncio.Lock,
        notifier: SQLiteNotifier,
    ):
        self.write_conn = write_conn
        self.write_lock = write_lock
        self.read_conn = read_conn
        self.read_lock = read_lock
        self.notifier = notifier

    @asynccontextmanager
    async def _savepoint(self, name: str) -> AsyncIterator[aiosqlite.Connection]:
        async with self.write_lock:
            await self.write_conn.execute(f"SAVEPOINT {name}")
            try:
                yield self.write_conn
            except BaseException:
                await self.write_conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                await self.write_conn.execute(f"RELEASE SAVEPOINT {name}")
                raise
            await self.write_conn.execute(f"RELEASE SAVEPOINT {name}")

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        try:
            async with self._savepoint("document_create") as conn:
                await conn.execute(
                    "INSERT INTO documents (collection, doc_id, fields) VALUES (?, ?, ?)",
                    (collection_path, doc_id, json.dumps(fields)),
                )
                await conn.execute(
                    "INSERT INTO changes (collection) VALUES (?)", (collection_path,)
                )
        except aiosqlite.Error as e:
            logging.error(f"Failed to create document in {collection_path}: {e}")
            raise StoreError(f"Failed to create document: {e}") from e
        return doc_id

    async def update(self, document_path: str, fields: Dict[str, Any]) -> None:
        """Merges `fields` into the document. A missing document is left alone."""
        collection, doc_id = split_document_path(document_path)
        try:
            async with self._savepoint("document_update") as conn:
                async with conn.execute(
                    "SELECT fields FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                ) as cursor:
                    row = await cursor.fetchone()
                if row is None:
                    logging.warning(f"Update ignored, no document at {document_path}")
                    return
                merged = {**json.loads(row[0]), **fields}
                await conn.execute(
                    "UPDATE documents SET fields = ? WHERE collection = ? AND doc_id = ?",
                    (json.dumps(merged), collection, doc_id),
                )
                await conn.execute("INSERT INTO changes (collection) VALUES (?)", (collection,))
        except aiosqlite.Error as e:
            logging.error(f"Failed to update {document_path}: {e}")
            raise StoreError(f"Failed to update document: {e}") from e

    async def delete(self, document_path: str) -> None:
        collection, doc_id = split_document_path(document_path)
        try:
            async with self._savepoint("document_delete") as conn:
                cursor = await conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                )
                deleted = cursor.rowcount
                await cursor.close()
                if not deleted:
                    logging.warning(f"Delete ignored, no document at {document_path}")
                    return
                await conn.execute("INSERT INTO changes (collection) VALUES (?)", (collection,))
        except aiosqlite.Error as e:
            logging.error(f"Failed to delete {document_path}: {e}")
            raise StoreError(f"Failed to delete document: {e}") from e

    async def subscribe(self, collection_path: str) -> AsyncGenerator[StoreEvent, None]:
        """
        Emits the current collection, then a full collection event after every
        change to it. An `error` event ends the feed.
        """
        # Register before the initial read so no change can fall in between.
        queue = await self.notifier.subscribe(collection_path)
        try:
            try:
                async with self.read_lock:
                    initial = await load_collection(self.read_conn, collection_path)
            except aiosqlite.Error as e:
                logging.error(f"Failed to read {collection_path}: {e}")
                yield StoreEvent(event="error", detail=f"Failed to read collection: {e}")
                return
            yield initial
            last_version = initial.version

            while True:
                event = await queue.get()
                if event.event == "error":
                    yield event
                    return
                if event.version > last_version:
                    yield event
                    last_version = event.version
        finally:
            await self.notifier.unsubscribe(collection_path, queue)
