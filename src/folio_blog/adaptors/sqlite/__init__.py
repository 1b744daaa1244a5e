from .factory import sqlite_store_factory
from .handle import SQLiteDocumentStore
from .notifier import SQLiteNotifier

__all__ = ["sqlite_store_factory", "SQLiteDocumentStore", "SQLiteNotifier"]
