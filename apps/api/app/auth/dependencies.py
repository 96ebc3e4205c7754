"""Authentication dependency for the prototype routes.

Uploads, link creation and status polling act on behalf of a Supabase user;
the bearer token the web client already holds is verified here. Two signing
schemes are accepted, chosen by the token's ``alg`` header:

  HS256 — the project's shared JWT secret (SUPABASE_JWT_SECRET)
  ES256 — the project's public signing keys, served as a JWKS

The deployment trigger is deliberately not guarded by this dependency; it
is called server-to-server right after an upload.
"""

import logging
import uuid
from typing import Optional

import httpx
from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.db.models import User
from app.db.session import get_db

logger = logging.getLogger(__name__)

AUDIENCE = "authenticated"
JWKS_TIMEOUT = 10


class JwksCache:
    """Per-process cache of the project's JWKS document."""

    def __init__(self) -> None:
        self._keys: Optional[dict] = None

    async def get(self, supabase_url: str) -> dict:
        if self._keys is None:
            url = f"{supabase_url}/auth/v1/.well-known/jwks.json"
            async with httpx.AsyncClient(timeout=JWKS_TIMEOUT) as client:
                res = await client.get(url)
                res.raise_for_status()
                self._keys = res.json()
            logger.info("auth: loaded %d signing keys from %s", len(self._keys.get("keys", [])), url)
        return self._keys

    def invalidate(self) -> None:
        self._keys = None


_jwks = JwksCache()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def bearer_token(authorization: str) -> str:
    """Return the token of a ``Bearer`` header, or an empty string."""
    scheme, _, token = authorization.partition(" ")
    return token.strip() if scheme == "Bearer" else ""


async def verify_token(token: str, settings: Settings) -> dict:
    """Verify signature, expiry and audience; return the claims.

    Raises:
        JWTError: If the token is malformed, unverifiable or uses an
            algorithm other than HS256/ES256.
    """
    alg = jwt.get_unverified_header(token).get("alg", "HS256")

    if alg == "HS256":
        if not settings.supabase_jwt_secret:
            raise JWTError("SUPABASE_JWT_SECRET is not configured")
        return jwt.decode(token, settings.supabase_jwt_secret, algorithms=["HS256"], audience=AUDIENCE)

    if alg == "ES256":
        keys = await _jwks.get(settings.supabase_url)
        try:
            return jwt.decode(token, keys, algorithms=["ES256"], audience=AUDIENCE)
        except JWTError:
            # Signing keys may have rotated since they were cached.
            _jwks.invalidate()
            keys = await _jwks.get(settings.supabase_url)
            return jwt.decode(token, keys, algorithms=["ES256"], audience=AUDIENCE)

    raise JWTError(f"Unsupported algorithm: {alg}")


async def _ensure_user(db: AsyncSession, user_id: uuid.UUID, email: str) -> None:
    # prototypes.created_by references users.id
    existing = await db.execute(select(User.id).where(User.id == user_id))
    if existing.scalar_one_or_none() is None:
        db.add(User(id=user_id, email=email))
        await db.flush()
        logger.info("auth: registered user %s on first request", user_id)


async def get_current_user(
    request: Request,
    authorization: str = Header(default=""),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> uuid.UUID:
    """Resolve the calling user's id from their Supabase access token."""
    token = bearer_token(authorization)
    if not token:
        logger.warning("auth: missing or malformed Authorization header")
        raise _unauthorized("Missing token")

    try:
        claims = await verify_token(token, settings)
    except JWTError as exc:
        logger.warning("auth: token rejected: %s", exc)
        raise _unauthorized("Invalid token")

    try:
        user_id = uuid.UUID(str(claims.get("sub") or ""))
    except ValueError:
        raise _unauthorized("Invalid sub claim")

    await _ensure_user(db, user_id, claims.get("email") or f"{user_id}@supabase.auth")

    # The rate limiter keys on this.
    request.state.user_id = user_id
    return user_id
