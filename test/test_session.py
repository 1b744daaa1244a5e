import asyncio

import pytest

from folio_blog import AuthFailure, StoreError, open_session
from folio_blog.adaptors import LocalIdentityProvider
from folio_blog.controller import BlogView, MainView
from folio_blog.models import posts_collection_path
from folio_blog.synchronizer import FeedState

from conftest import FakeProvider, FakeStore


@pytest.mark.asyncio
async def test_anonymous_bootstrap_shows_empty_blog(settings, memory_store):
    async with open_session(settings, memory_store, LocalIdentityProvider()) as session:
        assert session.ready
        assert session.context.identity.anonymous
        await session.settle()

        controller = session.controller
        controller.show_blog()
        assert controller.main_view is MainView.BLOG
        assert controller.blog_view is BlogView.PUBLIC
        assert not controller.loading
        assert controller.posts == []
        assert controller.listing_message() == "No blog posts found."

    assert session.synchronizer.state is FeedState.CLOSED


@pytest.mark.asyncio
async def test_auth_failure_opens_no_subscription(settings):
    store = FakeStore()
    settings = settings.model_copy(update={"initial_auth_token": "forged"})

    async with open_session(settings, store, FakeProvider()) as session:
        assert not session.ready
        assert isinstance(session.controller.fatal_error, AuthFailure)
        assert session.controller.loading
        assert store.open_feeds == 0
        assert session.synchronizer.state is FeedState.CLOSED

        session.controller.set_title("Hi")
        session.controller.set_content("World")
        assert not await session.controller.submit()
        assert store.calls == []


@pytest.mark.asyncio
async def test_create_edit_delete_round_trip(settings, memory_store):
    async with open_session(settings, memory_store, LocalIdentityProvider()) as session:
        controller = session.controller
        controller.show_blog()
        controller.show_admin()

        controller.set_title("Hi")
        controller.set_content("World")
        sequence = session.synchronizer.snapshot.sequence
        assert await controller.submit()
        assert await session.wait_for_update(sequence)
        [post] = controller.posts
        assert (post.title, post.content, post.author) == ("Hi", "World", "Site Owner")

        controller.start_edit(post)
        controller.set_content("Everyone")
        sequence = session.synchronizer.snapshot.sequence
        assert await controller.submit()
        assert await session.wait_for_update(sequence)
        [edited] = controller.posts
        assert edited.content == "Everyone"
        assert edited.timestamp == post.timestamp

        controller.request_delete(edited)
        sequence = session.synchronizer.snapshot.sequence
        assert await controller.confirm_delete()
        assert await session.wait_for_update(sequence)
        assert controller.posts == []
        assert controller.listing_message() == "No blog posts to manage."


@pytest.mark.asyncio
async def test_validation_error_leaves_feed_open(settings, memory_store):
    async with open_session(settings, memory_store, LocalIdentityProvider()) as session:
        session.controller.set_content("World")

        assert not await session.controller.submit()

        assert session.controller.inline_error
        assert session.synchronizer.state is FeedState.LIVE
        assert not session.subscription.closed


@pytest.mark.asyncio
async def test_feed_error_marks_view_stale(settings):
    store = FakeStore()
    async with open_session(settings, store, FakeProvider()) as session:
        controller = session.controller
        controller.set_title("Hi")
        controller.set_content("World")
        assert await controller.submit()
        assert await session.wait_for_update(1)
        shown = list(controller.posts)

        store.emit_error(session.subscription.path)
        await asyncio.wait_for(session._pump_task, timeout=1)

        assert isinstance(controller.feed_error, StoreError)
        assert controller.posts == shown
        assert session.synchronizer.stale


@pytest.mark.asyncio
async def test_stored_posts_are_shown_when_session_opens(settings, memory_store):
    provider = LocalIdentityProvider()
    identity = await provider.create_anonymous_identity()
    path = posts_collection_path(settings.app_id, identity.uid)
    doc_id = await memory_store.create(
        path, {"title": "Hi", "content": "World", "author": "Site Owner", "timestamp": 1}
    )
    settings = settings.model_copy(update={"initial_auth_token": provider.issue_token(identity)})

    async with open_session(settings, memory_store, provider) as session:
        assert [post.id for post in session.controller.posts] == [doc_id]
        assert not session.controller.loading
