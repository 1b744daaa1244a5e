import pytest

from folio_blog.errors import NotReadyError, StoreError, ValidationError
from folio_blog.gateway import PostMutationGateway
from folio_blog.models import Draft

COLLECTION = "artifacts/test-app/users/user-1/blogPosts"


@pytest.mark.asyncio
async def test_create_writes_author_and_timestamp(gateway, store):
    post_id = await gateway.create(Draft(title="Hi", content="World"))

    assert store.calls == [
        (
            "create",
            COLLECTION,
            {
                "title": "Hi",
                "content": "World",
                "author": "Site Owner",
                "timestamp": 1_700_000_000_000,
            },
        )
    ]
    assert post_id in store.collections[COLLECTION]


@pytest.mark.asyncio
@pytest.mark.parametrize("title,content", [("", "World"), ("Hi", ""), ("", "")])
async def test_empty_fields_never_reach_the_store(gateway, store, title, content):
    with pytest.raises(ValidationError):
        await gateway.create(Draft(title=title, content=content))
    with pytest.raises(ValidationError):
        await gateway.update("post-1", Draft(title=title, content=content))
    assert store.calls == []


@pytest.mark.asyncio
async def test_update_only_touches_title_and_content(gateway, store):
    post_id = await gateway.create(Draft(title="Hi", content="World"))

    await gateway.update(post_id, Draft(title="Hello", content="Everyone"))

    assert store.calls[-1] == (
        "update",
        f"{COLLECTION}/{post_id}",
        {"title": "Hello", "content": "Everyone"},
    )
    stored = store.collections[COLLECTION][post_id]
    assert stored["timestamp"] == 1_700_000_000_000
    assert stored["author"] == "Site Owner"


@pytest.mark.asyncio
async def test_update_of_unknown_post_is_not_prechecked(gateway, store):
    await gateway.update("missing", Draft(title="a", content="b"))
    assert store.calls == [("update", f"{COLLECTION}/missing", {"title": "a", "content": "b"})]


@pytest.mark.asyncio
async def test_delete_removes_the_document(gateway, store):
    post_id = await gateway.create(Draft(title="Hi", content="World"))

    await gateway.delete(post_id)

    assert store.calls[-1] == ("delete", f"{COLLECTION}/{post_id}", None)
    assert post_id not in store.collections[COLLECTION]


@pytest.mark.asyncio
async def test_store_errors_pass_through(gateway, store):
    store.fail_with = StoreError("quota exceeded")

    with pytest.raises(StoreError, match="quota exceeded"):
        await gateway.delete("post-1")


@pytest.mark.asyncio
async def test_unexpected_store_failures_become_store_errors(gateway, store):
    store.fail_with = ConnectionResetError("reset by peer")

    with pytest.raises(StoreError, match="reset by peer") as excinfo:
        await gateway.create(Draft(title="Hi", content="World"))
    assert isinstance(excinfo.value.__cause__, ConnectionResetError)
    # At most once: the failed write is not retried.
    assert len(store.calls) == 1


@pytest.mark.asyncio
async def test_mutations_wait_for_an_identity(store):
    gateway = PostMutationGateway()

    with pytest.raises(NotReadyError):
        await gateway.create(Draft(title="Hi", content="World"))
    with pytest.raises(NotReadyError):
        await gateway.delete("post-1")
    assert store.calls == []
