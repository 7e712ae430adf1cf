"""Authentication module for Auth0 sign-in redirects and JWT validation."""
import logging
from urllib.parse import urlencode

import httpx
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.session import get_async_session
from models.user import User
from services.exceptions import AuthError

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

# Cache for JWKS client (reuse across requests)
_jwks_clients: dict[str, PyJWKClient] = {}

# Public provider names mapped to Auth0 connection names
PROVIDER_CONNECTIONS = {
    "google": "google-oauth2",
    "github": "github",
}

DEV_USER_AUTH0_ID = "dev|local-development-user"


def _require_identity_provider(settings: Settings) -> None:
    if not settings.auth0_domain or not settings.auth0_client_id:
        raise AuthError("Identity provider is not configured")


def build_authorize_url(settings: Settings, provider: str | None = None) -> str:
    """
    Build the URL that starts sign-in with a social provider.

    The browser is sent to Auth0, which hands off to the provider and finally
    redirects back to the site's /auth/callback. Offline access and a forced
    consent prompt are requested so the provider issues a refresh token.

    Raises:
        AuthError: If Auth0 is not configured or the provider is unknown.
    """
    _require_identity_provider(settings)
    provider = (provider or settings.auth0_default_provider).lower()
    connection = PROVIDER_CONNECTIONS.get(provider)
    if connection is None:
        raise AuthError(f"Unsupported identity provider: {provider}")

    params = {
        "response_type": "code",
        "client_id": settings.auth0_client_id,
        "redirect_uri": settings.auth_callback_url,
        "scope": "openid profile email",
        "connection": connection,
        "access_type": "offline",
        "prompt": "consent",
    }
    if settings.auth0_audience:
        params["audience"] = settings.auth0_audience
    return f"https://{settings.auth0_domain}/authorize?{urlencode(params)}"


def build_logout_url(settings: Settings) -> str:
    """
    Build the URL that ends the provider session and returns to the sign-in page.

    Raises:
        AuthError: If Auth0 is not configured.
    """
    _require_identity_provider(settings)
    params = {
        "client_id": settings.auth0_client_id,
        "returnTo": f"{settings.site_url.rstrip('/')}/auth",
    }
    return f"https://{settings.auth0_domain}/v2/logout?{urlencode(params)}"


def get_jwks_client(settings: Settings) -> PyJWKClient:
    """Get or create a cached JWKS client for the given settings."""
    if settings.auth0_jwks_url not in _jwks_clients:
        _jwks_clients[settings.auth0_jwks_url] = PyJWKClient(
            settings.auth0_jwks_url,
            cache_jwk_set=True,
            lifespan=3600,  # Cache keys for 1 hour
        )
    return _jwks_clients[settings.auth0_jwks_url]


def decode_jwt(token: str, settings: Settings) -> dict:
    """
    Decode and validate a JWT token from Auth0.

    Raises:
        HTTPException: If token is invalid, expired, or has wrong audience/issuer.
    """
    try:
        jwks_client = get_jwks_client(settings)
        signing_key = jwks_client.get_signing_key_from_jwt(token)

        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth0_audience,
            issuer=settings.auth0_issuer,
        )

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidAudienceError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid audience",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidIssuerError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid issuer",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.PyJWTError as e:
        # Log full details for debugging (server-side only)
        logger.warning("JWT validation failed: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except httpx.HTTPError as e:
        logger.error("Failed to fetch JWKS from Auth0: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not validate credentials",
        )


async def get_or_create_user(
    db: AsyncSession,
    auth0_id: str,
    email: str | None = None,
    name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    """
    Get existing user or create new one from identity provider claims.

    Handles the race where concurrent first requests from the same user both
    try to insert: on IntegrityError the existing row is fetched instead.
    Profile fields are refreshed whenever the provider reports new values.

    Note: Uses flush(), not commit. Session generator handles commit at request end.
    """
    result = await db.execute(select(User).where(User.auth0_id == auth0_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(auth0_id=auth0_id, email=email, name=name, avatar_url=avatar_url)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Another request created the user between our SELECT and INSERT
            await db.rollback()
            result = await db.execute(select(User).where(User.auth0_id == auth0_id))
            user = result.scalar_one()

    changed = False
    for field, value in (("email", email), ("name", name), ("avatar_url", avatar_url)):
        if value and getattr(user, field) != value:
            setattr(user, field, value)
            changed = True
    if changed:
        await db.flush()

    return user


async def get_or_create_dev_user(db: AsyncSession) -> User:
    """Get or create a development user for DEV_MODE."""
    return await get_or_create_user(
        db,
        auth0_id=DEV_USER_AUTH0_ID,
        email="dev@localhost",
        name="Local Developer",
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> User:
    """
    Dependency that validates the Auth0 token and returns the current user.

    In DEV_MODE, bypasses auth and returns a local development user.
    """
    if settings.dev_mode:
        return await get_or_create_dev_user(db)

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_jwt(credentials.credentials, settings)

    auth0_id = payload.get("sub")
    if not auth0_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing sub claim",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await get_or_create_user(
        db,
        auth0_id=auth0_id,
        email=payload.get("email"),
        name=payload.get("name") or payload.get("full_name"),
        avatar_url=payload.get("picture") or payload.get("avatar_url"),
    )
