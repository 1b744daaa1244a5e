"""
Establishes the caller identity exactly once per application lifetime and
publishes it to the components that depend on it.
"""
import asyncio
import enum
import logging
from typing import Any, Callable, List

from .config import Settings
from .errors import AuthFailure
from .models import Identity
from .protocols import IdentityProvider


class BootstrapState(str, enum.Enum):
    NOT_READY = "not_ready"
    READY = "ready"
    FAILED = "failed"


class IdentityBootstrap:
    """
    Resolves a single `Identity` through the provider: a pre-issued session
    token is restored first, otherwise an anonymous identity is created.

    Failure is terminal for the session. Callers that want retries must build
    a new bootstrap.
    """

    def __init__(self, provider: IdentityProvider, settings: Settings):
        self.provider = provider
        self.settings = settings
        self.state = BootstrapState.NOT_READY
        self.identity: Identity | None = None
        self.failure: AuthFailure | None = None
        self._task: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._listeners: List[Callable[[Identity], Any]] = []
        provider.on_identity_change(self._on_provider_identity)

    @property
    def ready(self) -> bool:
        return self.state is BootstrapState.READY

    async def authenticate(self) -> Identity:
        """Resolves the identity, sharing one attempt between all callers."""
        if self._task is None:
            self._task = asyncio.create_task(self._resolve())
        # Shielded so a cancelled caller does not abort the shared attempt.
        return await asyncio.shield(self._task)

    async def wait_ready(self) -> Identity:
        await self._ready.wait()
        if self.failure is not None:
            raise self.failure
        return self.identity

    def on_ready(self, callback: Callable[[Identity], Any]):
        """Registers a dependent. Called immediately if already resolved."""
        if self.identity is not None:
            callback(self.identity)
        else:
            self._listeners.append(callback)

    async def _resolve(self) -> Identity:
        try:
            identity = await asyncio.wait_for(
                self._sign_in(), timeout=self.settings.auth_timeout
            )
        except AuthFailure as e:
            self._fail(e)
            raise
        except asyncio.TimeoutError as e:
            failure = AuthFailure(
                f"Identity was not resolved within {self.settings.auth_timeout}s"
            )
            self._fail(failure)
            raise failure from e
        except Exception as e:
            failure = AuthFailure(f"Identity provider failed: {e}")
            self._fail(failure)
            raise failure from e

        self.identity = identity
        self.state = BootstrapState.READY
        self._ready.set()
        logging.info(
            f"Identity resolved for {identity.uid} (anonymous={identity.anonymous})"
        )
        listeners, self._listeners = self._listeners, []
        for callback in listeners:
            callback(identity)
        return identity

    async def _sign_in(self) -> Identity:
        token = self.settings.initial_auth_token
        if token:
            return await self.provider.restore_session(token)
        return await self.provider.create_anonymous_identity()

    def _fail(self, failure: AuthFailure):
        self.failure = failure
        self.state = BootstrapState.FAILED
        self._ready.set()
        logging.error(f"Identity bootstrap failed: {failure}")

    def _on_provider_identity(self, identity: Identity):
        if self.identity is not None and identity != self.identity:
            logging.warning(
                f"Ignoring identity change to {identity.uid}; session is bound to {self.identity.uid}"
            )
