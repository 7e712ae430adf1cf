"""Pydantic schemas for the current-user endpoint."""
from pydantic import BaseModel, ConfigDict


class UserResponse(BaseModel):
    """Profile of the signed-in user, used by the navigation bar."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str | None
    display_name: str
    avatar_url: str | None
