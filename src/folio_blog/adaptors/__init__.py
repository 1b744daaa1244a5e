from .local_identity import LocalIdentityProvider
from .sqlite import sqlite_store_factory

__all__ = ["LocalIdentityProvider", "sqlite_store_factory"]
