"""
Tests for session tokens.
"""

import jwt
import pytest

from peerflash.auth.errors import SessionError, SessionExpired
from peerflash.auth.sessions import SessionIssuer

DID = "did:key:zAAAA"
TEST_SECRET = "test-session-secret-0123456789abcdef0123456789abcdef"


@pytest.fixture
def sessions(clock):
    return SessionIssuer(TEST_SECRET, clock=clock)


class TestSessionIssuer:
    """Tests for minting and validating sessions."""

    def test_issue(self, sessions, clock):
        """A session lasts 24 hours from issue."""
        session = sessions.issue(DID)

        assert session.did == DID
        assert session.issued_at == int(clock.now)
        assert session.expires_at == session.issued_at + 86400

    def test_payload(self, sessions):
        """The token is an HS256 JWT carrying the DID."""
        token = sessions.issue(DID).token

        assert jwt.get_unverified_header(token)["alg"] == "HS256"
        payload = jwt.decode(token, options={"verify_signature": False})
        assert payload["did"] == DID
        assert set(payload) == {"did", "iat", "exp"}

    def test_validate(self, sessions):
        token = sessions.issue(DID).token
        assert sessions.validate(token).did == DID

    def test_valid_through_expiry(self, sessions, clock):
        """Accepted for the full 24 hours."""
        token = sessions.issue(DID).token
        clock.advance(86400)
        assert sessions.validate(token).did == DID

    def test_fractional_issue_time(self, clock):
        """A session minted mid-second still lasts the full 24 hours."""
        clock.now = 1000.9
        sessions = SessionIssuer(TEST_SECRET, clock=clock)
        session = sessions.issue(DID)

        assert session.issued_at == 1000
        assert session.expires_at == 1001 + 86400

        clock.advance(86399.5)
        assert sessions.validate(session.token).did == DID
        clock.advance(0.5)
        assert sessions.validate(session.token).did == DID

    def test_expired(self, sessions, clock):
        """Rejected after 24 hours."""
        token = sessions.issue(DID).token
        clock.advance(86401)
        with pytest.raises(SessionExpired):
            sessions.validate(token)

    def test_expired_is_auth_failure(self):
        assert issubclass(SessionExpired, SessionError)
        assert SessionExpired.status_code == 401

    def test_wrong_secret(self, sessions, clock):
        """Tokens from another key are rejected."""
        other = SessionIssuer("another-secret-0123456789abcdef0123456789abcdef", clock=clock)
        with pytest.raises(SessionError):
            sessions.validate(other.issue(DID).token)

    def test_tampered(self, sessions):
        """Re-signing the payload without the secret is rejected."""
        forged = jwt.encode({"did": "did:key:zEVIL", "iat": 0, "exp": 2**40},
                            "guessed-secret-0123456789abcdef0123456789ab", algorithm="HS256")
        with pytest.raises(SessionError):
            sessions.validate(forged)

    def test_unsigned_token(self, sessions):
        """alg=none tokens are rejected."""
        forged = jwt.encode({"did": DID, "iat": 0, "exp": 2**40}, None, algorithm="none")
        with pytest.raises(SessionError):
            sessions.validate(forged)

    def test_missing_claims(self, sessions):
        token = jwt.encode({"did": DID}, TEST_SECRET, algorithm="HS256")
        with pytest.raises(SessionError):
            sessions.validate(token)

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_garbage(self, sessions, token):
        with pytest.raises(SessionError):
            sessions.validate(token)

    def test_empty_secret(self):
        with pytest.raises(ValueError):
            SessionIssuer("")
