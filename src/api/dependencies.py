"""FastAPI dependencies for injection."""
from core.auth import get_current_user
from core.config import get_settings
from db.session import get_async_session
from services.change_feed import get_change_feed

__all__ = [
    "get_async_session",
    "get_change_feed",
    "get_current_user",
    "get_settings",
]
