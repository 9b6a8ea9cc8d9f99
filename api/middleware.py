"""Identity middleware using ContextVar.

Authentication happens upstream: the identity provider's gateway forwards the
caller as an ``X-User-ID`` header and marks administrators with
``X-User-Role: admin``. The identity is stored in a ContextVar so that any
downstream code (routers, dependencies) can call get_current_identity()
without explicit parameter passing. A request without the header has no
identity.
"""

from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from verticals.storefront.identity import Identity

USER_HEADER = "X-User-ID"
ROLE_HEADER = "X-User-Role"

# ---------------------------------------------------------------------------
# Context variable holding the per-request identity
# ---------------------------------------------------------------------------

_current_identity: ContextVar[Identity | None] = ContextVar("current_identity", default=None)


def get_current_identity() -> Identity | None:
    """Return the caller for the current request, or None if anonymous.

    Usable directly as a FastAPI dependency::

        identity: Identity | None = Depends(get_current_identity)
    """
    return _current_identity.get()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class IdentityMiddleware(BaseHTTPMiddleware):
    """Build an Identity from the gateway headers."""

    async def dispatch(self, request: Request, call_next) -> Response:
        user_id = request.headers.get(USER_HEADER, "").strip()
        identity = None
        if user_id:
            role = request.headers.get(ROLE_HEADER, "").strip().lower()
            identity = Identity(user_id=user_id, is_admin=role == "admin")

        token = _current_identity.set(identity)
        try:
            response = await call_next(request)
            return response
        finally:
            _current_identity.reset(token)
