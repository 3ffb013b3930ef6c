"""
API routes for PeerFlash.

``auth_router`` (mounted at /api/auth) carries the public signup and
challenge-response endpoints. ``router`` carries the login page stub and
the routes gated by SessionMiddleware.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..auth.credentials import VerifiableCredential
from ..auth.errors import ValidationError
from ..auth.identity import short_did
from .middleware import current_did
from .server import PeerFlashServer, get_server

logger = logging.getLogger(__name__)

auth_router = APIRouter()
router = APIRouter()


# ============ Request/Response Models ============

class SignupRequest(BaseModel):
    """Register a new identity."""
    did: str = Field(..., min_length=1, description="Self-certifying identifier")
    name: str = Field(..., min_length=1, description="Display name")
    major: str = Field(..., min_length=1, description="Field of study")


class LoginRequest(BaseModel):
    """Request a login nonce."""
    did: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    nonce: str


class CredentialSubjectModel(BaseModel):
    id: str
    nonce: str


class ProofModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    created: str
    verification_method: str = Field(..., alias="verificationMethod")
    proof_purpose: str = Field(..., alias="proofPurpose")
    signature: str = Field(..., description="Base64 Ed25519 signature")


class CredentialModel(BaseModel):
    """Wire shape of a signed login credential."""
    model_config = ConfigDict(populate_by_name=True)

    context: List[str] = Field(..., alias="@context")
    type: List[str]
    issuer: str
    issuance_date: str = Field(..., alias="issuanceDate")
    credential_subject: CredentialSubjectModel = Field(..., alias="credentialSubject")
    proof: ProofModel

    def to_credential(self) -> VerifiableCredential:
        return VerifiableCredential.from_dict(self.model_dump(by_alias=True))


class VerifyRequest(BaseModel):
    """Answer a login nonce with a signed credential."""
    did: str = Field(..., min_length=1)
    credential: CredentialModel


class ProfileResponse(BaseModel):
    did: str
    displayName: str
    major: str


# ============ Auth Routes ============

@auth_router.post("/signup", status_code=201)
def signup(body: SignupRequest, server: PeerFlashServer = Depends(get_server)):
    """Register an identity. The DID is stored as given."""
    record = server.registry.create(body.did, body.name, body.major)
    return {
        "message": "User created successfully",
        "user": record.profile(),
    }


@auth_router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, server: PeerFlashServer = Depends(get_server)):
    """
    Issue a login nonce for a registered identity.

    Any earlier outstanding nonce for the identity stops being valid.
    """
    challenge = server.nonces.issue(body.did)
    return LoginResponse(nonce=challenge.value)


@auth_router.post("/verify")
def verify(body: VerifyRequest, server: PeerFlashServer = Depends(get_server)):
    """
    Verify a signed credential and start a session.

    Sets the session cookie on success. Every failure maps to a distinct
    error kind and never issues a session.
    """
    credential = body.credential.to_credential()
    if body.did != credential.issuer:
        logger.info(f"Verify rejected: did {short_did(body.did)} is not the credential issuer")
        raise ValidationError("DID does not match credential issuer")

    record = server.verifier.verify(credential)

    session = server.sessions.issue(record.did)
    settings = server.settings

    response = JSONResponse({"success": True})
    response.set_cookie(
        key=settings.cookie_name,
        value=session.token,
        max_age=settings.session_ttl,
        path="/",
        secure=settings.secure_cookies,
        httponly=True,
        samesite="lax",
    )
    return response


@auth_router.get("/profile", response_model=ProfileResponse)
def profile(
    did: Optional[str] = Query(None),
    server: PeerFlashServer = Depends(get_server),
):
    """Public profile of an identity."""
    if not did:
        raise ValidationError("DID is required")
    record = server.registry.require(did)
    return record.profile()


# ============ Pages & Protected Routes ============

@router.get("/login")
async def login_page():
    return {
        "name": "PeerFlash",
        "message": "Sign in with your decentralized identity",
        "nonce_endpoint": "/api/auth/login",
        "verify_endpoint": "/api/auth/verify",
    }


@router.get("/api/session")
def session_info(
    request: Request,
    did: str = Depends(current_did),
    server: PeerFlashServer = Depends(get_server),
):
    """The identity behind the current session."""
    record = server.registry.require(did)
    return {
        **record.profile(),
        "expiresAt": request.state.session.expires_at,
    }


@router.get("/dashboard")
def dashboard(
    did: str = Depends(current_did),
    server: PeerFlashServer = Depends(get_server),
):
    record = server.registry.require(did)
    return {
        "message": f"Welcome back, {record.display_name}",
        "user": record.profile(),
    }
