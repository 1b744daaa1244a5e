"""
UI-only state for the portfolio page: navigation, the single draft, and the
pending deletion. The controller never touches the store; mutations go
through the gateway and come back through the next feed snapshot.
"""
import enum
import logging
from typing import List

from .config import Settings
from .errors import FolioError, NotReadyError, StoreError, ValidationError
from .gateway import PostMutationGateway
from .models import Draft, Post, Snapshot

DELETE_CONFIRMATION = "Are you sure you want to delete this post? This action cannot be undone."


class MainView(str, enum.Enum):
    HOME = "home"
    BLOG = "blog"


class BlogView(str, enum.Enum):
    PUBLIC = "public"
    ADMIN = "admin"


class EditMode(str, enum.Enum):
    NONE = "none"
    CREATING = "creating"
    EDITING = "editing"


class ViewStateController:
    def __init__(self, gateway: PostMutationGateway, settings: Settings):
        self.gateway = gateway
        self.settings = settings

        self.main_view = MainView.HOME
        self.blog_view = BlogView.PUBLIC
        self.mobile_menu_open = False

        self.edit_mode = EditMode.NONE
        self.editing_id: str | None = None
        self.draft = Draft()

        self.pending_delete: Post | None = None
        self.delete_prompt_open = False

        self.posts: List[Post] = []
        self.loading = True
        self.fatal_error: FolioError | None = None
        self.feed_error: StoreError | None = None
        self.inline_error: str | None = None
        self.notice: str | None = None

    # --- Navigation ---

    def show_home(self):
        self.main_view = MainView.HOME
        self.mobile_menu_open = False

    def show_blog(self):
        self.main_view = MainView.BLOG
        self.mobile_menu_open = False

    def show_public(self):
        self.blog_view = BlogView.PUBLIC

    def show_admin(self):
        self.blog_view = BlogView.ADMIN

    def toggle_mobile_menu(self):
        self.mobile_menu_open = not self.mobile_menu_open

    # --- Draft editing ---

    def set_title(self, title: str):
        self._touch_draft()
        self.draft = self.draft.model_copy(update={"title": title})

    def set_content(self, content: str):
        self._touch_draft()
        self.draft = self.draft.model_copy(update={"content": content})

    def _touch_draft(self):
        if self.edit_mode is EditMode.NONE:
            self.edit_mode = EditMode.CREATING

    def start_edit(self, post: Post):
        """Loads `post` into the draft, discarding whatever was being composed."""
        self.draft = Draft(title=post.title, content=post.content)
        self.edit_mode = EditMode.EDITING
        self.editing_id = post.id
        self.inline_error = None

    def cancel_edit(self):
        self._reset_draft()

    def _reset_draft(self):
        self.draft = Draft()
        self.edit_mode = EditMode.NONE
        self.editing_id = None
        self.inline_error = None

    async def submit(self) -> bool:
        """
        Sends the draft to the gateway as a create or an update. Returns True
        on success; on failure the draft is kept so the user can retry.
        """
        try:
            if self.edit_mode is EditMode.EDITING:
                await self.gateway.update(self.editing_id, self.draft)
            else:
                await self.gateway.create(self.draft)
        except ValidationError as e:
            self.inline_error = str(e)
            return False
        except (StoreError, NotReadyError) as e:
            self.notice = str(e)
            return False
        self._reset_draft()
        self.notice = None
        return True

    # --- Deletion ---

    def request_delete(self, post: Post):
        self.pending_delete = post
        self.delete_prompt_open = True

    def cancel_delete(self):
        self.pending_delete = None
        self.delete_prompt_open = False

    async def confirm_delete(self) -> bool:
        """
        Issues the delete for the pending post. The prompt closes whatever
        the outcome unless `keep_delete_prompt_on_failure` is set.
        """
        post = self.pending_delete
        if post is None:
            return False
        try:
            await self.gateway.delete(post.id)
        except (StoreError, NotReadyError) as e:
            self.notice = str(e)
            if not self.settings.keep_delete_prompt_on_failure:
                self.cancel_delete()
            return False
        self.cancel_delete()
        return True

    # --- Feed projection ---

    def show_snapshot(self, snapshot: Snapshot):
        self.posts = list(snapshot.posts)
        self.loading = False

    def show_feed_error(self, error: StoreError):
        """Keeps the current posts on screen and flags them as stale."""
        self.feed_error = error
        self.notice = f"Live updates stopped: {error}"

    def show_fatal(self, error: FolioError):
        logging.error(f"Blog unavailable: {error}")
        self.fatal_error = error
        self.loading = True

    # --- Text of the page ---

    def listing_message(self) -> str | None:
        if self.posts:
            return None
        if self.blog_view is BlogView.ADMIN:
            return "No blog posts to manage."
        return "No blog posts found."

    def form_heading(self) -> str:
        if self.edit_mode is EditMode.EDITING:
            return "Edit Post"
        return "Create New Post"
