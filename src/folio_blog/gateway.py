"""
Create, update and delete operations against the identity's post collection.

Writes are never echoed into the local snapshot; the synchronizer's next
emission is the only way a mutation becomes visible. Failures are raised to
the caller and never retried.
"""
import logging
import time
from contextlib import contextmanager
from typing import Callable

from .context import SessionContext
from .errors import NotReadyError, StoreError, ValidationError
from .models import Draft


def now_millis() -> int:
    return int(time.time() * 1000)


def validate_draft(draft: Draft):
    if not draft.title or not draft.content:
        raise ValidationError("Title and content cannot be empty.")


@contextmanager
def _store_call(operation: str, path: str):
    """Logs a failed store call and re-raises it as `StoreError`."""
    try:
        yield
    except StoreError as e:
        logging.error(f"Error during {operation} of {path}: {e}")
        raise
    except Exception as e:
        logging.error(f"Error during {operation} of {path}: {e}")
        raise StoreError(f"Store failed to {operation} post: {e}") from e


class PostMutationGateway:
    def __init__(self, context: SessionContext | None = None, clock: Callable[[], int] = now_millis):
        self.context = context
        self.clock = clock

    def bind(self, context: SessionContext):
        """Attaches the session context once the identity is available."""
        self.context = context

    def _require_context(self) -> SessionContext:
        if self.context is None:
            raise NotReadyError("No identity yet; mutations are not accepted.")
        return self.context

    async def create(self, draft: Draft) -> str:
        """Writes a new post and returns the id assigned by the store."""
        validate_draft(draft)
        context = self._require_context()
        fields = {
            "title": draft.title,
            "content": draft.content,
            "author": context.settings.author_name,
            "timestamp": self.clock(),
        }
        with _store_call("create", context.collection_path):
            post_id = await context.store.create(context.collection_path, fields)
        logging.info(f"Created post {post_id}")
        return post_id

    async def update(self, post_id: str, draft: Draft):
        """Overwrites title and content; author and timestamp are untouched."""
        validate_draft(draft)
        context = self._require_context()
        path = context.document_path(post_id)
        with _store_call("update", path):
            await context.store.update(path, {"title": draft.title, "content": draft.content})
        logging.info(f"Updated post {post_id}")

    async def delete(self, post_id: str):
        """Removes the post permanently."""
        context = self._require_context()
        path = context.document_path(post_id)
        with _store_call("delete", path):
            await context.store.delete(path)
        logging.info(f"Deleted post {post_id}")
