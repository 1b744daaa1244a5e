"""
Keeps an ordered local snapshot of the identity's posts in step with the
store's live feed.

Every store emission is treated as the complete state of the collection: the
snapshot is rebuilt and replaced wholesale, never patched. Only one
subscription is open at a time; opening a new one closes the previous one
first, so a superseded feed can never overwrite a newer snapshot.
"""
import asyncio
import enum
import logging
from typing import List

import pydantic

from .config import Settings
from .errors import StoreError
from .models import Document, Identity, Post, Snapshot, posts_collection_path
from .protocols import DocumentStore


class FeedState(str, enum.Enum):
    CLOSED = "closed"
    SUBSCRIBING = "subscribing"
    LIVE = "live"


_END = object()


def build_snapshot(documents: List[Document], sequence: int = 0) -> Snapshot:
    """
    Converts one store emission into a snapshot sorted by timestamp, most
    recent first. Missing timestamps sort as 0 and ties keep emission order.
    """
    posts = []
    for document in documents:
        try:
            posts.append(Post.model_validate({**document.fields, "id": document.id}))
        except pydantic.ValidationError as e:
            logging.warning(f"Skipping malformed post document {document.id}: {e}")
    # sorted() is stable, including with reverse=True.
    posts.sort(key=lambda post: post.timestamp or 0, reverse=True)
    return Snapshot(posts=posts, sequence=sequence)


class FeedSubscription:
    """
    Handle for one live feed. Iterate it to receive snapshots in the order the
    store emitted them; iteration ends when the feed closes. `error` holds the
    `StoreError` that closed it, if any.
    """

    def __init__(self, synchronizer: "PostFeedSynchronizer", identity: Identity, path: str):
        self.identity = identity
        self.path = path
        self.error: StoreError | None = None
        self.closed = False
        self._synchronizer = synchronizer
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    def __aiter__(self):
        return self

    async def __anext__(self) -> Snapshot:
        item = await self._queue.get()
        if item is _END:
            # Leave the marker in place so later reads also stop.
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        return item

    def pending(self) -> int:
        """Number of snapshots delivered but not yet read."""
        return self._queue.qsize()

    async def cancel(self):
        await self._synchronizer.unsubscribe(self)

    def _deliver(self, snapshot: Snapshot):
        if not self.closed:
            self._queue.put_nowait(snapshot)

    def _finish(self):
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_END)


class PostFeedSynchronizer:
    """
    Owns the single active subscription handle. State moves
    CLOSED -> SUBSCRIBING -> LIVE -> CLOSED.
    """

    def __init__(self, store: DocumentStore, settings: Settings):
        self.store = store
        self.settings = settings
        self.state = FeedState.CLOSED
        self.snapshot: Snapshot | None = None
        self.error: StoreError | None = None
        self._active: FeedSubscription | None = None
        self._lock = asyncio.Lock()

    @property
    def stale(self) -> bool:
        """True when the feed broke and the last good snapshot is still shown."""
        return self.error is not None and self.snapshot is not None

    async def subscribe(self, identity: Identity) -> FeedSubscription:
        """
        Opens the feed for `identity` and returns once the first snapshot has
        been applied. Raises `StoreError` if the feed fails or does not emit
        within `settings.first_snapshot_timeout`.
        """
        async with self._lock:
            if self._active is not None:
                await self._shutdown(self._active)

            path = posts_collection_path(self.settings.app_id, identity.uid)
            subscription = FeedSubscription(self, identity, path)
            self._active = subscription
            self.state = FeedState.SUBSCRIBING
            self.snapshot = None
            self.error = None
            logging.info(f"Subscribing to {path}")

            first = asyncio.get_running_loop().create_future()
            subscription._task = asyncio.create_task(self._pump(subscription, first))
            try:
                await asyncio.wait_for(first, timeout=self.settings.first_snapshot_timeout)
            except asyncio.TimeoutError as e:
                await self._shutdown(subscription)
                raise StoreError(
                    f"No snapshot from {path} within {self.settings.first_snapshot_timeout}s"
                ) from e
            except StoreError:
                await self._shutdown(subscription)
                raise
            return subscription

    async def unsubscribe(self, subscription: FeedSubscription):
        async with self._lock:
            await self._shutdown(subscription)

    async def close(self):
        """Cancels the active subscription, if any."""
        async with self._lock:
            if self._active is not None:
                await self._shutdown(self._active)

    async def _shutdown(self, subscription: FeedSubscription):
        was_active = self._active is subscription
        task = subscription._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if was_active:
            self._active = None
            self.state = FeedState.CLOSED
            if subscription.error is None:
                self.snapshot = None
        subscription._finish()
        logging.info(f"Subscription to {subscription.path} closed")

    async def _pump(self, subscription: FeedSubscription, first: asyncio.Future):
        """The background task that applies store emissions for one subscription."""
        feed = self.store.subscribe(subscription.path)
        sequence = 0
        try:
            async for event in feed:
                if self._active is not subscription:
                    break
                if event.event == "error":
                    raise StoreError(event.detail or f"Subscription to {subscription.path} failed")
                sequence += 1
                snapshot = build_snapshot(event.documents, sequence)
                self.snapshot = snapshot
                if self.state is FeedState.SUBSCRIBING:
                    logging.info(f"Subscription to {subscription.path} is live")
                self.state = FeedState.LIVE
                subscription._deliver(snapshot)
                if not first.done():
                    first.set_result(snapshot)
            if not first.done():
                first.set_exception(
                    StoreError(f"Feed for {subscription.path} ended before its first snapshot")
                )
        except StoreError as e:
            self._fail(subscription, e, first)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = StoreError(f"Subscription to {subscription.path} failed: {e}")
            error.__cause__ = e
            self._fail(subscription, error, first)
        finally:
            await feed.aclose()
            if self._active is subscription:
                self._active = None
                self.state = FeedState.CLOSED
            subscription._finish()

    def _fail(self, subscription: FeedSubscription, error: StoreError, first: asyncio.Future):
        logging.error(f"Feed error on {subscription.path}: {error}")
        subscription.error = error
        if self._active is subscription:
            # The last good snapshot stays available.
            self.error = error
        if not first.done():
            first.set_exception(error)
