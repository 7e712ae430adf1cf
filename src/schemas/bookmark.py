"""Pydantic schemas for bookmark endpoints."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from core.config import get_settings


def validate_required_text(value: str, field_name: str) -> str:
    """
    Trim a required text field and reject it when nothing is left.

    Args:
        value: The raw submitted value.
        field_name: Used in the error message.

    Returns:
        The value with surrounding whitespace removed.

    Raises:
        ValueError: If the value is empty after trimming.
    """
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{field_name} cannot be empty")
    return trimmed


def validate_title_length(title: str) -> str:
    """Validate that title doesn't exceed maximum length."""
    settings = get_settings()
    if len(title) > settings.max_title_length:
        raise ValueError(
            f"Title exceeds maximum length of {settings.max_title_length:,} characters "
            f"(got {len(title):,} characters).",
        )
    return title


def validate_url_length(url: str) -> str:
    """Validate that url doesn't exceed maximum length."""
    settings = get_settings()
    if len(url) > settings.max_url_length:
        raise ValueError(
            f"URL exceeds maximum length of {settings.max_url_length:,} characters "
            f"(got {len(url):,} characters).",
        )
    return url


class BookmarkCreate(BaseModel):
    """
    Schema for creating a new bookmark.

    The URL is stored as submitted (trimmed). It is not normalized so that the
    list shows exactly what the user saved; display code copes with values
    that do not parse as URLs.
    """

    title: str
    url: str

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        """Trim, require, and length-check the title."""
        return validate_title_length(validate_required_text(v, "Title"))

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """Trim, require, and length-check the url."""
        return validate_url_length(validate_required_text(v, "URL"))


class BookmarkResponse(BaseModel):
    """A stored bookmark as seen by its owner."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    user_id: int
    title: str
    url: str
    created_at: datetime


class BookmarkCountResponse(BaseModel):
    """Number of bookmarks owned by the current user."""

    count: int
