"""
Session validation middleware.

Gates protected paths on a valid session cookie. On success the
authenticated DID is attached to ``request.state.did`` for downstream
handlers. On failure API callers get a 401 and page requests are
redirected to the login page; neither response says why.
"""

import logging
from typing import Iterable, Optional

from fastapi import HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, RedirectResponse, Response

from ..auth.errors import SessionError

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = (
    "/dashboard",
    "/api/session",
)

PUBLIC_PREFIXES = (
    "/api/auth",
    "/login",
    "/signup",
    "/health",
)

LOGIN_PATH = "/login"


def _matches(path: str, prefixes: Iterable[str]) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Authenticate requests to protected paths using the ``token`` cookie.

    Signup, nonce issuance and verification live under the public
    prefixes and are never gated.
    """

    def __init__(
        self,
        app,
        protected_prefixes: Iterable[str] = PROTECTED_PREFIXES,
        public_prefixes: Iterable[str] = PUBLIC_PREFIXES,
        login_path: str = LOGIN_PATH,
    ):
        super().__init__(app)
        self.protected_prefixes = tuple(protected_prefixes)
        self.public_prefixes = tuple(public_prefixes)
        self.login_path = login_path

    def is_protected(self, path: str) -> bool:
        if _matches(path, self.public_prefixes):
            return False
        return _matches(path, self.protected_prefixes)

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if not self.is_protected(path):
            return await call_next(request)

        server = request.app.state.server
        token = request.cookies.get(server.settings.cookie_name)

        try:
            session = server.sessions.validate(token)
        except SessionError as e:
            logger.info(f"Unauthenticated request to {path}: {e}")
            return self._reject(path, e)

        request.state.did = session.did
        request.state.session = session
        return await call_next(request)

    def _reject(self, path: str, error: SessionError) -> Response:
        if path.startswith("/api/"):
            return JSONResponse(
                {"error": SessionError.default_message, "kind": error.kind},
                status_code=error.status_code,
            )
        return RedirectResponse(self.login_path, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


def current_did(request: Request) -> str:
    """
    FastAPI dependency returning the DID attached by SessionMiddleware.

    Raises 401 if a handler using it was reached without the middleware
    having authenticated the request.
    """
    did: Optional[str] = getattr(request.state, "did", None)
    if did is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=SessionError.default_message,
        )
    return did
