"""Tests for the current-user endpoint."""
from collections.abc import Callable

from httpx import AsyncClient

from models.user import User


async def test_get_current_user(client: AsyncClient, test_user: User) -> None:
    """Test that /users/me returns the signed-in user's profile."""
    response = await client.get("/users/me")
    assert response.status_code == 200

    data = response.json()
    assert data["id"] == test_user.id
    assert data["email"] == "test@example.com"
    assert data["display_name"] == "Ada"
    assert data["avatar_url"] is None


async def test_get_current_user_without_name_shows_user(
    client_factory: Callable[[User], AsyncClient],
    other_user: User,
) -> None:
    """Test that a profile without a name displays as 'User'."""
    async with client_factory(other_user) as client:
        response = await client.get("/users/me")
    assert response.json()["display_name"] == "User"
