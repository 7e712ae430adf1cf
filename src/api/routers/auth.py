"""Sign-in and sign-out redirects to the identity provider."""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from api.dependencies import get_settings
from core.auth import build_authorize_url, build_logout_url
from core.config import Settings
from services.exceptions import AuthError

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/login")
async def login(
    provider: str | None = Query(default=None, description="Social provider, e.g. 'google'"),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Redirect the browser to the identity provider's sign-in page."""
    try:
        url = build_authorize_url(settings, provider)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RedirectResponse(url, status_code=307)


@router.get("/logout")
async def logout(settings: Settings = Depends(get_settings)) -> RedirectResponse:
    """Redirect the browser to the identity provider's sign-out endpoint."""
    try:
        url = build_logout_url(settings)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RedirectResponse(url, status_code=307)
