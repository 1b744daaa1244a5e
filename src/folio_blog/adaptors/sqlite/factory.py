from typing import AsyncIterator, List
from contextlib import asynccontextmanager
import aiosqlite
import asyncio

from folio_blog.errors import ConfigurationError
from .handle import SQLiteDocumentStore
from .notifier import SQLiteNotifier


async def _connect(connect_string: str, *, uri: bool = False) -> aiosqlite.Connection:
    # Autocommit mode: transactions are managed with explicit savepoints.
    conn = await aiosqlite.connect(connect_string, uri=uri, isolation_level=None)
    await conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


@asynccontextmanager
async def sqlite_store_factory(
    db_path: str,
    *,
    polling_interval: float = 0.2,
) -> AsyncIterator[SQLiteDocumentStore]:
    """
    Opens a SQLite-backed document store and yields it for the duration of the
    context. The notifier task and every connection are closed on exit.

    A file database gets a notifier connection, a write connection and a
    read-only connection in WAL mode. `":memory:"` uses a single private
    connection for all three.
    """
    if not db_path:
        raise ConfigurationError("`db_path` must be provided to open the store.")

    connections: List[aiosqlite.Connection] = []
    notifier: SQLiteNotifier | None = None
    try:
        if db_path == ":memory:":
            conn = await _connect(":memory:")
            connections.append(conn)
            lock = asyncio.Lock()
            notifier = SQLiteNotifier(conn, polling_interval=polling_interval, db_lock=lock)
            await notifier.start()
            store = SQLiteDocumentStore(
                write_conn=conn,
                write_lock=lock,
                read_conn=conn,
                read_lock=lock,
                notifier=notifier,
            )
        else:
            notifier_conn = await _connect(db_path)
            connections.append(notifier_conn)
            await notifier_conn.execute("PRAGMA journal_mode=WAL;")
            notifier = SQLiteNotifier(notifier_conn, polling_interval=polling_interval)
            await notifier.start()

            write_conn = await _connect(db_path)
            connections.append(write_conn)
            await write_conn.execute("PRAGMA synchronous = NORMAL;")

            # The schema exists by now, so the file can be opened read-only.
            read_conn = await _connect(f"file:{db_path}?mode=ro", uri=True)
            connections.append(read_conn)

            store = SQLiteDocumentStore(
                write_conn=write_conn,
                write_lock=asyncio.Lock(),
                read_conn=read_conn,
                read_lock=asyncio.Lock(),
                notifier=notifier,
            )
        yield store
    finally:
        if notifier is not None:
            await notifier.stop()
        await asyncio.gather(*(conn.close() for conn in connections))
