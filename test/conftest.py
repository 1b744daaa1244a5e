import asyncio
from collections import defaultdict
from typing import Dict, List

import pytest
from pytest_asyncio import fixture

from folio_blog import Settings
from folio_blog.adaptors.sqlite import sqlite_store_factory
from folio_blog.context import SessionContext
from folio_blog.errors import AuthFailure
from folio_blog.gateway import PostMutationGateway
from folio_blog.models import Document, Identity, StoreEvent


class FakeStore:
    """
    An in-memory store. Mutations emit a fresh snapshot to open feeds unless
    `auto_emit` is off; `emit` and `emit_error` drive feeds by hand.
    """

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = defaultdict(dict)
        self.calls: List[tuple] = []
        self.feeds: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self.auto_emit = True
        self.fail_with: Exception | None = None
        self._next_id = 0

    @property
    def open_feeds(self) -> int:
        return sum(len(queues) for queues in self.feeds.values())

    def subscribe(self, collection_path):
        return self._feed(collection_path)

    async def _feed(self, collection_path):
        queue = asyncio.Queue()
        self.feeds[collection_path].append(queue)
        try:
            yield self._snapshot_event(collection_path)
            while True:
                event = await queue.get()
                yield event
                if event.event == "error":
                    return
        finally:
            self.feeds[collection_path].remove(queue)

    def _snapshot_event(self, collection_path, documents=None):
        if documents is None:
            documents = [
                Document(id=doc_id, fields=dict(fields))
                for doc_id, fields in self.collections[collection_path].items()
            ]
        return StoreEvent(event="snapshot", documents=documents)

    def emit(self, collection_path, documents=None):
        event = self._snapshot_event(collection_path, documents)
        for queue in self.feeds[collection_path]:
            queue.put_nowait(event)

    def emit_error(self, collection_path, detail="connection lost"):
        for queue in self.feeds[collection_path]:
            queue.put_nowait(StoreEvent(event="error", detail=detail))

    def _check_failure(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def create(self, collection_path, fields):
        self.calls.append(("create", collection_path, dict(fields)))
        self._check_failure()
        self._next_id += 1
        doc_id = f"post-{self._next_id}"
        self.collections[collection_path][doc_id] = dict(fields)
        if self.auto_emit:
            self.emit(collection_path)
        return doc_id

    async def update(self, document_path, fields):
        self.calls.append(("update", document_path, dict(fields)))
        self._check_failure()
        collection_path, _, doc_id = document_path.rpartition("/")
        if doc_id in self.collections[collection_path]:
            self.collections[collection_path][doc_id].update(fields)
            if self.auto_emit:
                self.emit(collection_path)

    async def delete(self, document_path):
        self.calls.append(("delete", document_path, None))
        self._check_failure()
        collection_path, _, doc_id = document_path.rpartition("/")
        if self.collections[collection_path].pop(doc_id, None) is not None and self.auto_emit:
            self.emit(collection_path)


class SilentStore(FakeStore):
    """A store whose feeds never emit."""

    async def _feed(self, collection_path):
        await asyncio.Event().wait()
        yield


class FakeProvider:
    def __init__(self, fail: Exception | None = None, delay: float = 0):
        self.fail = fail
        self.delay = delay
        self.anonymous_calls = 0
        self.restore_calls = 0
        self.callbacks = []

    async def restore_session(self, token):
        self.restore_calls += 1
        if token != "good-token":
            raise AuthFailure("Session token was rejected.")
        identity = Identity(uid="owner")
        self._publish(identity)
        return identity

    async def create_anonymous_identity(self):
        self.anonymous_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        identity = Identity(uid="anon-1", anonymous=True)
        self._publish(identity)
        return identity

    def on_identity_change(self, callback):
        self.callbacks.append(callback)

    def _publish(self, identity):
        for callback in self.callbacks:
            callback(identity)


async def drain(subscription, timeout=1.0):
    """Collects the remaining snapshots of a subscription until it closes."""
    async def collect():
        return [snapshot async for snapshot in subscription]
    return await asyncio.wait_for(collect(), timeout)


@pytest.fixture
def settings():
    return Settings(
        app_id="test-app",
        author_name="Site Owner",
        polling_interval=0.01,
        auth_timeout=1.0,
        first_snapshot_timeout=1.0,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def identity():
    return Identity(uid="user-1", anonymous=True)


@pytest.fixture
def context(settings, store, identity):
    return SessionContext(settings, store, identity)


@pytest.fixture
def gateway(context):
    return PostMutationGateway(context, clock=lambda: 1_700_000_000_000)


@fixture
async def memory_store():
    async with sqlite_store_factory(":memory:", polling_interval=0.01) as sqlite_store:
        yield sqlite_store
