"""
Configuration management for PeerFlash.

Handles:
- Local identity storage (client side)
- Identity registry location (server side)
- Session signing secret and auth lifetimes
- Runtime settings

Environment variables override the stored file:
PEERFLASH_DATA_DIR, PEERFLASH_ENV, PEERFLASH_SESSION_SECRET.
"""

import json
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import logging

from .auth.challenge import DEFAULT_NONCE_TTL
from .auth.sessions import DEFAULT_SESSION_TTL

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".peerflash"

DEFAULT_API_PORT = 3000

ENV_DATA_DIR = "PEERFLASH_DATA_DIR"
ENV_ENVIRONMENT = "PEERFLASH_ENV"
ENV_SESSION_SECRET = "PEERFLASH_SESSION_SECRET"

DEVELOPMENT = "development"
PRODUCTION = "production"

SESSION_COOKIE_NAME = "token"


class ConfigError(ValueError):
    """Configuration cannot be used to start the server."""


@dataclass(frozen=True)
class AuthSettings:
    """
    Immutable auth configuration, built once at startup.

    Request handlers read these values; nothing re-reads the environment
    or the config file per request.
    """
    session_secret: str
    nonce_ttl: int = DEFAULT_NONCE_TTL
    session_ttl: int = DEFAULT_SESSION_TTL
    invalidate_nonce_on_failure: bool = False
    secure_cookies: bool = True
    cookie_name: str = SESSION_COOKIE_NAME


@dataclass
class ServerConfig:
    """Configuration for the API server."""
    host: str = "127.0.0.1"
    port: int = DEFAULT_API_PORT
    cors_origins: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "cors_origins": self.cors_origins,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        # Filter to only known fields to handle config evolution
        known_fields = {"host", "port", "cors_origins"}
        return cls(**{k: v for k, v in data.items() if k in known_fields})


@dataclass
class Config:
    """
    Main PeerFlash configuration.

    Stored at ~/.peerflash/config.json
    """
    # Paths
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    # "development" or "production"; controls the cookie Secure flag
    environment: str = DEVELOPMENT

    # Auth
    session_secret: Optional[str] = None
    nonce_ttl: int = DEFAULT_NONCE_TTL
    session_ttl: int = DEFAULT_SESSION_TTL
    invalidate_nonce_on_failure: bool = False

    # Client side: where `peerflash signup/login` talk to
    server_url: str = f"http://127.0.0.1:{DEFAULT_API_PORT}"

    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"

    @property
    def identity_path(self) -> Path:
        return self.data_dir / "identity.json"

    @property
    def registry_path(self) -> Path:
        return self.data_dir / "identities.json"

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def auth_settings(self) -> AuthSettings:
        """
        Freeze the auth configuration for the server process.

        Raises:
            ConfigError: in production when no session secret is configured.
        """
        secret = self.session_secret
        if not secret:
            if self.is_production:
                raise ConfigError(
                    f"No session secret configured. Set {ENV_SESSION_SECRET} "
                    f"or 'session_secret' in {self.config_path}."
                )
            secret = secrets.token_hex(32)
            logger.warning(
                "No session secret configured; using an ephemeral one. "
                "Sessions will not survive a restart."
            )
        if self.nonce_ttl <= 0 or self.session_ttl <= 0:
            raise ConfigError("nonce_ttl and session_ttl must be positive")

        return AuthSettings(
            session_secret=secret,
            nonce_ttl=self.nonce_ttl,
            session_ttl=self.session_ttl,
            invalidate_nonce_on_failure=self.invalidate_nonce_on_failure,
            secure_cookies=self.is_production,
        )

    def save(self) -> None:
        """Save configuration to disk."""
        self.ensure_data_dir()

        data = {
            "environment": self.environment,
            "session_secret": self.session_secret,
            "nonce_ttl": self.nonce_ttl,
            "session_ttl": self.session_ttl,
            "invalidate_nonce_on_failure": self.invalidate_nonce_on_failure,
            "server_url": self.server_url,
            "server": self.server.to_dict(),
        }

        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

        # The file may hold the session secret
        self.config_path.chmod(0o600)
        logger.debug(f"Configuration saved to {self.config_path}")

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from disk, then apply environment overrides."""
        if data_dir is None:
            env_dir = os.getenv(ENV_DATA_DIR)
            data_dir = Path(env_dir) if env_dir else DEFAULT_DATA_DIR
        data_dir = Path(data_dir)
        config_path = data_dir / "config.json"

        if config_path.exists():
            with open(config_path, 'r') as f:
                data = json.load(f)

            config = cls(
                data_dir=data_dir,
                environment=data.get("environment", DEVELOPMENT),
                session_secret=data.get("session_secret"),
                nonce_ttl=data.get("nonce_ttl", DEFAULT_NONCE_TTL),
                session_ttl=data.get("session_ttl", DEFAULT_SESSION_TTL),
                invalidate_nonce_on_failure=data.get("invalidate_nonce_on_failure", False),
                server_url=data.get("server_url", cls.server_url),
            )
            if "server" in data:
                config.server = ServerConfig.from_dict(data["server"])
        else:
            config = cls(data_dir=data_dir)

        config.environment = os.getenv(ENV_ENVIRONMENT, config.environment)
        config.session_secret = os.getenv(ENV_SESSION_SECRET) or config.session_secret
        return config


# Global config instance
_config: Optional[Config] = None


def get_config(data_dir: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load(data_dir)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
