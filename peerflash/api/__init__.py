"""
API server for PeerFlash.

Provides REST endpoints for:
- Identity signup and profiles
- DID challenge-response login
- Session-gated routes
"""

from .server import create_app, PeerFlashServer
from .routes import auth_router, router

__all__ = [
    "create_app",
    "PeerFlashServer",
    "auth_router",
    "router",
]
