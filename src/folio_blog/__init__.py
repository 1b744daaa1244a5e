"""
Live post synchronization and CRUD for a single-author portfolio blog.
"""
from .config import Settings, load_settings
from .context import SessionContext
from .controller import BlogView, EditMode, MainView, ViewStateController
from .errors import (
    AuthFailure,
    ConfigurationError,
    FolioError,
    NotReadyError,
    StoreError,
    ValidationError,
)
from .gateway import PostMutationGateway
from .identity import BootstrapState, IdentityBootstrap
from .models import Document, Draft, Identity, Post, Snapshot, StoreEvent
from .session import BlogSession, open_session
from .synchronizer import FeedState, FeedSubscription, PostFeedSynchronizer

__all__ = [
    "Settings",
    "load_settings",
    "SessionContext",
    "BlogView",
    "EditMode",
    "MainView",
    "ViewStateController",
    "AuthFailure",
    "ConfigurationError",
    "FolioError",
    "NotReadyError",
    "StoreError",
    "ValidationError",
    "PostMutationGateway",
    "BootstrapState",
    "IdentityBootstrap",
    "Document",
    "Draft",
    "Identity",
    "Post",
    "Snapshot",
    "StoreEvent",
    "BlogSession",
    "open_session",
    "FeedState",
    "FeedSubscription",
    "PostFeedSynchronizer",
]
