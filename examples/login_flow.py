#!/usr/bin/env python3
"""
Login Flow Demo

Walks one identity through the whole challenge-response login against an
in-process server:
1. Generate a keypair and register the DID
2. Request a nonce and sign a credential over it
3. Verify the credential and receive the session cookie
4. Call a protected route, then show that replaying the credential fails

Usage:
    python examples/login_flow.py --name Ada --major Mathematics
"""

import argparse
import logging
import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from peerflash.api.server import PeerFlashServer, create_app
from peerflash.auth.credentials import build_credential, sign_credential
from peerflash.auth.identity import generate_identity
from peerflash.config import Config

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def run(name: str, major: str, data_dir: Path):
    config = Config(data_dir=data_dir)
    app = create_app(server=PeerFlashServer(config))
    identity = generate_identity(name=name, major=major)
    logger.info(f"Generated identity {identity.did}")

    with TestClient(app) as http:
        response = http.post("/api/auth/signup", json={
            "did": identity.did, "name": name, "major": major,
        })
        logger.info(f"signup -> {response.status_code} {response.json()}")

        nonce = http.post("/api/auth/login", json={"did": identity.did}).json()["nonce"]
        logger.info(f"nonce: {nonce}")

        credential = sign_credential(build_credential(identity.did, nonce), identity.keypair)
        body = {"did": identity.did, "credential": credential.to_dict()}

        response = http.post("/api/auth/verify", json=body)
        logger.info(f"verify -> {response.status_code} {response.json()}")
        logger.info(f"Set-Cookie: {response.headers.get('set-cookie', '')[:60]}...")

        response = http.get("/api/session")
        logger.info(f"/api/session -> {response.status_code} {response.json()}")

        # The nonce was consumed, so the same credential cannot be reused
        response = http.post("/api/auth/verify", json=body)
        logger.info(f"replay -> {response.status_code} {response.json()}")


def main():
    parser = argparse.ArgumentParser(description="PeerFlash login flow demo")
    parser.add_argument("--name", default="Ada")
    parser.add_argument("--major", default="Mathematics")
    args = parser.parse_args()

    with tempfile.TemporaryDirectory() as tmp:
        run(args.name, args.major, Path(tmp))


if __name__ == "__main__":
    main()
