from dataclasses import dataclass

from .config import Settings
from .models import Identity, post_document_path, posts_collection_path
from .protocols import DocumentStore


@dataclass(frozen=True)
class SessionContext:
    """
    Session-wide handles, constructed once the identity is resolved and passed
    explicitly to the components that need them.
    """
    settings: Settings
    store: DocumentStore
    identity: Identity

    @property
    def collection_path(self) -> str:
        return posts_collection_path(self.settings.app_id, self.identity.uid)

    def document_path(self, post_id: str) -> str:
        return post_document_path(self.settings.app_id, self.identity.uid, post_id)
