"""
HTTP client for the PeerFlash login flow.

Drives signup, nonce request, credential signing and verification against
a running server. Signing happens locally; only the DID, the public
credential and its proof ever leave the machine.
"""

import logging
from typing import Optional

import httpx

from .auth.credentials import VerifiableCredential, build_credential, sign_credential
from .auth.identity import LocalIdentity, short_did
from .config import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class AuthClientError(Exception):
    """The server rejected a request."""

    def __init__(self, status_code: int, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class AuthClient:
    """
    Client for the PeerFlash auth API.

    Pass ``http`` to reuse an existing httpx.Client (for example a
    FastAPI TestClient); otherwise one is created for ``base_url``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if http is None:
            if not base_url:
                raise ValueError("base_url is required when no http client is given")
            http = httpx.Client(base_url=base_url, timeout=timeout)
            self._owns_http = True
        else:
            self._owns_http = False
        self.http = http
        self.session_token: Optional[str] = None

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def __enter__(self) -> "AuthClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _post(self, path: str, payload: dict) -> httpx.Response:
        response = self.http.post(path, json=payload)
        self._raise_for_error(response)
        return response

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("error") or body.get("detail") or response.reason_phrase
        raise AuthClientError(response.status_code, str(message), body.get("kind"))

    def signup(self, identity: LocalIdentity) -> dict:
        """Register ``identity`` with the server."""
        response = self._post("/api/auth/signup", {
            "did": identity.did,
            "name": identity.name,
            "major": identity.major,
        })
        logger.info(f"Signed up {short_did(identity.did)}")
        return response.json()["user"]

    def request_nonce(self, did: str) -> str:
        response = self._post("/api/auth/login", {"did": did})
        return response.json()["nonce"]

    def verify(self, did: str, credential: VerifiableCredential) -> str:
        """Submit a signed credential; returns the session token."""
        response = self._post("/api/auth/verify", {
            "did": did,
            "credential": credential.to_dict(),
        })
        token = response.cookies.get(SESSION_COOKIE_NAME)
        if token is None:
            raise AuthClientError(response.status_code, "Server did not set a session cookie")
        self.session_token = token
        return token

    def login(self, identity: LocalIdentity) -> str:
        """
        Run the full challenge-response login.

        Returns:
            The session token set by the server.

        Raises:
            AuthClientError: with the server's specific failure message.
        """
        nonce = self.request_nonce(identity.did)
        credential = sign_credential(build_credential(identity.did, nonce), identity.keypair)
        token = self.verify(identity.did, credential)
        logger.info(f"Logged in as {short_did(identity.did)}")
        return token

    def session(self) -> dict:
        """Fetch the identity behind the current session (cookie jar carries the token)."""
        response = self.http.get("/api/session")
        self._raise_for_error(response)
        return response.json()

    def profile(self, did: str) -> dict:
        response = self.http.get("/api/auth/profile", params={"did": did})
        self._raise_for_error(response)
        return response.json()
