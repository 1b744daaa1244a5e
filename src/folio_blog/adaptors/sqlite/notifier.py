from typing import Dict, List
import aiosqlite
import json
import logging
import asyncio
from collections import defaultdict

import pydantic

from folio_blog.models import Document, StoreEvent


async def load_collection(conn: aiosqlite.Connection, collection: str) -> StoreEvent:
    """
    Reads the whole collection in arrival order. The event's version is the
    change-log position it is at least as new as.
    """
    async with conn.execute("SELECT MAX(id) FROM changes") as cursor:
        row = await cursor.fetchone()
        version = row[0] if row and row[0] is not None else 0

    documents = []
    async with conn.execute(
        "SELECT doc_id, fields FROM documents WHERE collection = ? ORDER BY seq",
        (collection,),
    ) as cursor:
        async for doc_id, fields_json in cursor:
            try:
                documents.append(Document(id=doc_id, fields=json.loads(fields_json)))
            except (json.JSONDecodeError, pydantic.ValidationError) as e:
                logging.warning(f"Skipping unreadable document {collection}/{doc_id}: {e}")
    return StoreEvent(event="snapshot", documents=documents, version=version)


class SQLiteNotifier:
    """
    A centralized watcher that polls the change log once for all collections
    and pushes a fresh full-collection event to every watcher of a collection
    that changed.
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        polling_interval: float = 0.2,
        db_lock: asyncio.Lock | None = None,
    ):
        self._polling_interval = polling_interval
        self._conn = conn
        # Held while polling; shared with the writer when both use one connection.
        self._db_lock = db_lock or asyncio.Lock()
        self._watchers: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self._last_id = 0
        self._task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    async def _create_schema(self):
        # The notifier owns the schema: the factory starts it before the store
        # is handed out.
        await self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                fields TEXT NOT NULL,
                UNIQUE (collection, doc_id)
            )
        """
        )
        await self._conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents (collection, seq)
            """
        )
        await self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS changes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL
            )
        """
        )

    async def start(self):
        """Ensures schema exists and starts the polling task."""
        if self._task:
            return
        async with self._db_lock:
            await self._create_schema()
            async with self._conn.execute("SELECT MAX(id) FROM changes") as cursor:
                row = await cursor.fetchone()
                self._last_id = row[0] if row and row[0] is not None else 0
        self._task = asyncio.create_task(self._poll_for_changes())
        logging.info(f"Notifier started, polling from change {self._last_id}")

    async def stop(self):
        """Stops the polling task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        # The connection is managed by the factory, so we don't close it here.
        logging.info("Notifier stopped")

    async def _poll_for_changes(self):
        """The single background task that polls the change log."""
        while True:
            try:
                async with self._db_lock:
                    async with self._conn.execute(
                        "SELECT id, collection FROM changes WHERE id > ? ORDER BY id",
                        (self._last_id,),
                    ) as cursor:
                        rows = await cursor.fetchall()
                    events = {}
                    if rows:
                        # Ordered and de-duplicated: one event per touched collection.
                        for collection in dict.fromkeys(row[1] for row in rows):
                            if collection in self._watchers:
                                events[collection] = await load_collection(self._conn, collection)
                        self._last_id = rows[-1][0]
                for collection, event in events.items():
                    for queue in list(self._watchers.get(collection, ())):
                        await queue.put(event)
            except Exception as e:
                logging.error(f"Notifier poll loop error: {e}")
                error = StoreEvent(event="error", detail=f"Change feed failed: {e}")
                for queues in list(self._watchers.values()):
                    for queue in list(queues):
                        await queue.put(error)
            await asyncio.sleep(self._polling_interval)

    async def subscribe(self, collection: str) -> asyncio.Queue:
        """Allows a watcher to subscribe to a collection."""
        async with self._lock:
            queue = asyncio.Queue()
            self._watchers[collection].append(queue)
            return queue

    async def unsubscribe(self, collection: str, queue: asyncio.Queue):
        """Removes a watcher's queue."""
        async with self._lock:
            if collection in self._watchers and queue in self._watchers[collection]:
                self._watchers[collection].remove(queue)
                if not self._watchers[collection]:
                    del self._watchers[collection]
