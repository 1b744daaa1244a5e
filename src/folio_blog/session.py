"""
This module wires the components of one blog session together.

`open_session` is the only place the bootstrap, synchronizer, gateway and
controller meet. It resolves the identity, opens the feed and forwards every
snapshot to the controller, and tears all of it down on exit. No module-level
state is kept, so several sessions can coexist in one process (as the tests do).
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .config import Settings
from .context import SessionContext
from .controller import ViewStateController
from .errors import AuthFailure, StoreError
from .gateway import PostMutationGateway
from .identity import IdentityBootstrap
from .protocols import DocumentStore, IdentityProvider
from .synchronizer import FeedSubscription, PostFeedSynchronizer


class BlogSession:
    def __init__(self, settings: Settings, store: DocumentStore, provider: IdentityProvider):
        self.settings = settings
        self.store = store
        self.bootstrap = IdentityBootstrap(provider, settings)
        self.synchronizer = PostFeedSynchronizer(store, settings)
        self.gateway = PostMutationGateway()
        self.controller = ViewStateController(self.gateway, settings)
        self.context: SessionContext | None = None
        self.subscription: FeedSubscription | None = None
        self._pump_task: asyncio.Task | None = None

    @property
    def ready(self) -> bool:
        return self.context is not None and self.subscription is not None

    async def start(self):
        """
        Runs the bootstrap and opens the feed. Failures are routed to the
        controller instead of being raised.
        """
        try:
            identity = await self.bootstrap.authenticate()
        except AuthFailure as e:
            self.controller.show_fatal(e)
            return

        self.context = SessionContext(self.settings, self.store, identity)
        self.gateway.bind(self.context)

        try:
            self.subscription = await self.synchronizer.subscribe(identity)
        except StoreError as e:
            self.controller.show_fatal(e)
            return
        # The first snapshot is already queued, so posts are shown before start returns.
        self.controller.show_snapshot(await anext(self.subscription))
        self._pump_task = asyncio.create_task(self._forward(self.subscription))

    async def _forward(self, subscription: FeedSubscription):
        async for snapshot in subscription:
            self.controller.show_snapshot(snapshot)
        if subscription.error is not None:
            self.controller.show_feed_error(subscription.error)

    async def settle(self):
        """Waits until every snapshot received so far has reached the controller."""
        while (
            self._pump_task is not None
            and not self._pump_task.done()
            and self.subscription.pending()
        ):
            await asyncio.sleep(0)

    async def wait_for_update(self, after_sequence: int, timeout: float = 5.0) -> bool:
        """
        Waits until the controller shows a snapshot newer than `after_sequence`.
        Returns False on timeout or when the feed is closed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            snapshot = self.synchronizer.snapshot
            if snapshot is not None and snapshot.sequence > after_sequence:
                await self.settle()
                return True
            if self.subscription is None or self.subscription.closed:
                return False
            await asyncio.sleep(self.settings.polling_interval / 2)
        return False

    async def close(self):
        await self.synchronizer.close()
        if self._pump_task is not None:
            # The subscription is finished, so the forwarder drains and exits.
            await self._pump_task
            self._pump_task = None
        logging.info("Blog session closed")


@asynccontextmanager
async def open_session(
    settings: Settings, store: DocumentStore, provider: IdentityProvider
) -> AsyncIterator[BlogSession]:
    session = BlogSession(settings, store, provider)
    await session.start()
    try:
        yield session
    finally:
        await session.close()
