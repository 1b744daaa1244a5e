"""
This module defines the abstract protocols for the external collaborators:
the document store and the identity provider.

The synchronizer, gateway and bootstrap only ever talk to these protocols, so
the SQLite adaptor, the local identity provider and the test fakes are
interchangeable.
"""
from typing import Protocol, AsyncGenerator, Any, Callable, Dict

from .models import Identity, StoreEvent


class DocumentStore(Protocol):
    """
    Defines the contract that all store adaptors must implement.
    Paths are namespaced by app id and identity, see `models.posts_collection_path`.
    """

    def subscribe(self, collection_path: str) -> AsyncGenerator[StoreEvent, None]:
        """
        Returns a live feed for a collection. The first event describes the
        whole collection; every later event replaces it. Closing the generator
        ends the subscription.
        """
        ...

    async def create(self, collection_path: str, fields: Dict[str, Any]) -> str:
        ...

    async def update(self, document_path: str, fields: Dict[str, Any]) -> None:
        ...

    async def delete(self, document_path: str) -> None:
        ...


class IdentityProvider(Protocol):
    """
    Defines the contract for establishing a caller identity.
    """

    async def restore_session(self, token: str) -> Identity:
        ...

    async def create_anonymous_identity(self) -> Identity:
        ...

    def on_identity_change(self, callback: Callable[[Identity], Any]) -> None:
        ...
