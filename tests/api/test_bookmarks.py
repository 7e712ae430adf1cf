"""Tests for bookmark CRUD endpoints."""
from collections.abc import Callable

from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.bookmark import Bookmark
from models.user import User
from schemas.change_event import ChangeType


async def create(client: AsyncClient, title: str, url: str) -> dict:
    response = await client.post("/bookmarks/", json={"title": title, "url": url})
    assert response.status_code == 201
    return response.json()


async def test_create_bookmark(client: AsyncClient, test_user: User) -> None:
    """Test creating a bookmark returns the stored row."""
    response = await client.post(
        "/bookmarks/",
        json={"title": "  Python Docs ", "url": " https://docs.python.org "},
    )
    assert response.status_code == 201

    data = response.json()
    assert data["title"] == "Python Docs"
    assert data["url"] == "https://docs.python.org"
    assert data["user_id"] == test_user.id
    assert isinstance(data["id"], int)
    assert "created_at" in data


async def test_create_bookmark_does_not_normalize_url(client: AsyncClient) -> None:
    """The url is stored as submitted."""
    data = await create(client, "Bare", "example.com/page")
    assert data["url"] == "example.com/page"


async def test_create_bookmark_empty_title_rejected(client: AsyncClient) -> None:
    """Test that a blank title is rejected."""
    response = await client.post(
        "/bookmarks/", json={"title": "   ", "url": "https://example.com"},
    )
    assert response.status_code == 422
    assert "Title cannot be empty" in response.text


async def test_create_bookmark_empty_url_rejected(client: AsyncClient) -> None:
    """Test that a blank url is rejected."""
    response = await client.post("/bookmarks/", json={"title": "Title", "url": ""})
    assert response.status_code == 422
    assert "URL cannot be empty" in response.text


async def test_create_bookmark_title_too_long_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/bookmarks/", json={"title": "x" * 501, "url": "https://example.com"},
    )
    assert response.status_code == 422
    assert "exceeds maximum length" in response.text


async def test_create_bookmark_publishes_insert(client: AsyncClient, change_feed) -> None:
    """A committed insert is announced on the change feed."""
    data = await create(client, "A", "https://a.example")
    assert [(e.type, e.record_id) for e in change_feed.events] == [
        (ChangeType.INSERT, data["id"]),
    ]


async def test_list_bookmarks_newest_first(client: AsyncClient) -> None:
    """Test listing returns bookmarks newest first."""
    first = await create(client, "First", "https://one.example")
    second = await create(client, "Second", "https://two.example")
    third = await create(client, "Third", "https://three.example")

    response = await client.get("/bookmarks/")
    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [third["id"], second["id"], first["id"]]


async def test_list_bookmarks_empty(client: AsyncClient) -> None:
    response = await client.get("/bookmarks/")
    assert response.status_code == 200
    assert response.json() == []


async def test_count_bookmarks(client: AsyncClient) -> None:
    assert (await client.get("/bookmarks/count")).json() == {"count": 0}
    await create(client, "A", "https://a.example")
    await create(client, "B", "https://b.example")
    assert (await client.get("/bookmarks/count")).json() == {"count": 2}


async def test_delete_bookmark(client: AsyncClient, change_feed) -> None:
    """Test deleting a bookmark removes it and announces the change."""
    data = await create(client, "Doomed", "https://doomed.example")

    response = await client.delete(f"/bookmarks/{data['id']}")
    assert response.status_code == 204

    assert (await client.get("/bookmarks/")).json() == []
    assert change_feed.events[-1].type == ChangeType.DELETE
    assert change_feed.events[-1].record_id == data["id"]


async def test_delete_bookmark_not_found(client: AsyncClient, change_feed) -> None:
    """Test deleting a missing bookmark returns 404 and announces nothing."""
    response = await client.delete("/bookmarks/99999")
    assert response.status_code == 404
    assert response.json()["detail"] == "Bookmark not found"
    assert change_feed.events == []


async def test_bookmarks_are_isolated_between_users(
    client_factory: Callable[[User], AsyncClient],
    test_user: User,
    other_user: User,
    db_session: AsyncSession,
) -> None:
    """A user can neither see nor delete another user's bookmarks."""
    async with client_factory(other_user) as other_client:
        theirs = await create(other_client, "Theirs", "https://theirs.example")

    async with client_factory(test_user) as client:
        assert (await client.get("/bookmarks/")).json() == []
        assert (await client.get("/bookmarks/count")).json() == {"count": 0}

        response = await client.delete(f"/bookmarks/{theirs['id']}")
        assert response.status_code == 404

    result = await db_session.execute(
        select(func.count()).select_from(Bookmark).where(Bookmark.id == theirs["id"]),
    )
    assert result.scalar_one() == 1


async def test_unauthenticated_request_rejected(
    client_factory: Callable[[User], AsyncClient],
    test_user: User,
) -> None:
    """Without a bearer token (and outside DEV_MODE) the API answers 401."""
    from api.main import app
    from core.auth import get_current_user

    client = client_factory(test_user)
    app.dependency_overrides.pop(get_current_user)
    async with client:
        response = await client.get("/bookmarks/")
    assert response.status_code == 401
