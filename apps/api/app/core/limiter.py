"""SlowAPI rate limiter singleton.

The limiter is keyed on the authenticated user ID when one has been
resolved, and on the client IP otherwise. The deployment trigger is an
unauthenticated internal callback, so it is limited per IP.

Usage in route handlers:
    @router.post("/some-endpoint")
    @limiter.limit(settings.process_rate_limit)
    async def handler(request: Request, ...):
        ...

The `Request` parameter is required by SlowAPI even if the handler doesn't
use it directly; it uses it to extract the key.
"""

from slowapi import Limiter


def _user_id_key(request) -> str:
    """Key function: rate-limit per user ID, falling back to client IP."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=_user_id_key, default_limits=[])
