"""Schema for change notifications on a watched table."""
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from models.base import utcnow


class ChangeType(StrEnum):
    """Kind of row change that triggered a notification."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    Content-less signal that something changed in a table.

    Subscribers are expected to re-read rather than apply the event, so the
    payload carries no row data beyond the id.
    """

    type: ChangeType
    table: str = "bookmarks"
    record_id: int | None = None
    committed_at: datetime = Field(default_factory=utcnow)
