"""
FastAPI server for PeerFlash.
"""

import logging
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from ..auth.challenge import NonceIssuer
from ..auth.errors import AuthError, InternalError, ValidationError
from ..auth.sessions import SessionIssuer
from ..auth.verifier import CredentialVerifier
from ..config import Config, get_config, set_config
from ..registry.identities import IdentityRegistry
from .middleware import SessionMiddleware

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class PeerFlashServer:
    """
    PeerFlash authentication server.

    Owns all components:
    - Immutable auth settings
    - Identity registry
    - Nonce issuer
    - Credential verifier
    - Session issuer
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[IdentityRegistry] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or get_config()
        self.settings = self.config.auth_settings()

        self.registry = registry or IdentityRegistry(self.config.registry_path, clock=clock)
        self.nonces = NonceIssuer(
            self.registry,
            ttl_seconds=self.settings.nonce_ttl,
            clock=clock,
        )
        self.verifier = CredentialVerifier(
            self.registry,
            clock=clock,
            invalidate_nonce_on_failure=self.settings.invalidate_nonce_on_failure,
        )
        self.sessions = SessionIssuer(
            self.settings.session_secret,
            ttl_seconds=self.settings.session_ttl,
            clock=clock,
        )
        logger.info(
            f"PeerFlash server ready ({self.config.environment}, "
            f"{len(self.registry)} identities)"
        )

    def status(self) -> dict:
        return {
            "environment": self.config.environment,
            "identities": len(self.registry),
        }


def get_server(request: Request) -> PeerFlashServer:
    """FastAPI dependency for the server owning this app."""
    return request.app.state.server


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}", exc_info=exc)
    error = InternalError()
    return JSONResponse(error.to_dict(), status_code=error.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Invalid request body for {request.url.path}")
    body = ValidationError().to_dict()
    body["details"] = jsonable_encoder(exc.errors())
    return JSONResponse(body, status_code=ValidationError.status_code)


def create_app(
    config: Optional[Config] = None,
    server: Optional[PeerFlashServer] = None,
) -> FastAPI:
    """Create the FastAPI application."""
    from .routes import auth_router, router

    if config:
        set_config(config)
    server = server or PeerFlashServer(config)

    app = FastAPI(
        title="PeerFlash",
        description="Decentralized-identity login for PeerFlash",
        version=VERSION,
    )
    app.state.server = server

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.add_middleware(SessionMiddleware)

    if server.config.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=server.config.server.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(router)

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api")
    async def api_status():
        return {"name": "PeerFlash", "version": VERSION, **server.status()}

    return app


def run_server(
    host: str = "127.0.0.1",
    port: int = 3000,
    config: Optional[Config] = None,
):
    """Run the server with uvicorn."""
    app = create_app(config)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
    )
