"""
This module defines the core data models for the blog using Pydantic.
These models are the data transfer objects passed between the store, the
feed synchronizer and the view state controller.
"""
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from typing import Dict, Any, List, Literal


class Identity(BaseModel, frozen=True):
    uid: str
    anonymous: bool = False


class Post(BaseModel):
    id: str
    title: str = ""
    content: str = ""
    author: str = ""
    timestamp: int | None = None  # Milliseconds since epoch

    @field_validator("timestamp", mode="before")
    @classmethod
    def _drop_unusable_timestamp(cls, value):
        # Anything that is not a number sorts like a missing timestamp.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        try:
            return int(value)
        except (OverflowError, ValueError):
            return None


class Draft(BaseModel):
    title: str = ""
    content: str = ""


class Document(BaseModel):
    id: str
    fields: Dict[str, Any] = Field(default_factory=dict)


class StoreEvent(BaseModel):
    event: Literal["snapshot", "error"]
    documents: List[Document] = Field(default_factory=list)
    detail: str | None = None
    # Store-defined position of this emission; later emissions are higher.
    version: int = 0


class Snapshot(BaseModel):
    posts: List[Post] = Field(default_factory=list)
    # Number of store emissions applied by the owning subscription.
    sequence: int = 0
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def posts_collection_path(app_id: str, uid: str) -> str:
    return f"artifacts/{app_id}/users/{uid}/blogPosts"


def post_document_path(app_id: str, uid: str, post_id: str) -> str:
    return f"{posts_collection_path(app_id, uid)}/{post_id}"
