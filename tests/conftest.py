"""
Shared fixtures for PeerFlash tests.
"""

import pytest
from fastapi.testclient import TestClient

from peerflash.api.server import PeerFlashServer, create_app
from peerflash.auth.identity import generate_identity
from peerflash.config import Config
from peerflash.registry.identities import IdentityRegistry

T0 = 1_700_000_000.0
TEST_SECRET = "test-session-secret-0123456789abcdef0123456789abcdef"


class FakeClock:
    """Manually advanced clock shared by every component under test."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return IdentityRegistry(clock=clock)


@pytest.fixture
def alice():
    return generate_identity("Alice", "Computer Science")


@pytest.fixture
def config(tmp_path):
    return Config(data_dir=tmp_path, session_secret=TEST_SECRET)


@pytest.fixture
def server(config, clock):
    return PeerFlashServer(config, clock=clock)


@pytest.fixture
def app(server):
    return create_app(server=server)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
