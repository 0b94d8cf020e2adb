"""Configuration management for the event booking service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

logger = logging.getLogger("booking.config")

HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})

_ENV_PREFIX = "BOOKING_"
_ENV_FIELDS = {
    "JWT_SECRET": "jwt_secret",
    "JWT_ALGORITHM": "jwt_algorithm",
    "TOKEN_TTL_SECONDS": "token_ttl_seconds",
    "TOKEN_EXPIRY_GRACE_SECONDS": "expiry_grace_seconds",
    "BCRYPT_ROUNDS": "bcrypt_rounds",
    "DB_PATH": "database_path",
    "DB_MAX_CONNECTIONS": "pool_max_connections",
    "DB_MAX_IDLE": "pool_max_idle",
    "DB_POOL_TIMEOUT": "pool_timeout",
    "ALLOW_DUPLICATE_REGISTRATIONS": "allow_duplicate_registrations",
}
_MIN_SECRET_LENGTH = 32


def _parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "events.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "booking.yaml").resolve(strict=False)
    return candidate


@dataclass(frozen=True)
class Settings:
    """Process-wide settings fixed at startup."""

    jwt_secret: str
    database_path: Path
    jwt_algorithm: str = "HS256"
    token_ttl: timedelta = timedelta(hours=1)
    expiry_grace: timedelta = timedelta(0)
    bcrypt_rounds: int = 14
    pool_max_connections: int = 10
    pool_max_idle: int = 5
    pool_timeout: float = 30.0
    allow_duplicate_registrations: bool = False

    def __post_init__(self) -> None:
        if not self.jwt_secret:
            raise ValueError("A token signing secret must be configured (BOOKING_JWT_SECRET)")
        if self.jwt_algorithm not in HMAC_ALGORITHMS:
            raise ValueError(
                f"Unsupported signing algorithm '{self.jwt_algorithm}'; expected one of "
                f"{', '.join(sorted(HMAC_ALGORITHMS))}"
            )
        if self.token_ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        if self.expiry_grace < timedelta(0):
            raise ValueError("Token expiry grace must not be negative")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        if self.pool_max_connections < 1:
            raise ValueError("The connection pool needs at least one connection")
        if not 1 <= self.pool_max_idle <= self.pool_max_connections:
            raise ValueError("Idle connections must be between 1 and the pool size")
        if self.pool_timeout <= 0:
            raise ValueError("Pool timeout must be positive")

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        if not data.get("jwt_secret"):
            raise ValueError("A token signing secret must be configured (BOOKING_JWT_SECRET)")

        secret = str(data["jwt_secret"])
        if len(secret) < _MIN_SECRET_LENGTH:
            logger.warning(
                "Token signing secret is shorter than %s characters; use a longer random value",
                _MIN_SECRET_LENGTH,
            )

        raw_db_path = data.get("database_path")
        if raw_db_path and base_path is not None and not Path(str(raw_db_path)).is_absolute():
            database_path = (base_path / Path(str(raw_db_path)).expanduser()).resolve(strict=False)
        else:
            database_path = resolve_database_path(str(raw_db_path) if raw_db_path else None)

        return Settings(
            jwt_secret=secret,
            database_path=database_path,
            jwt_algorithm=str(data.get("jwt_algorithm", "HS256")).upper(),
            token_ttl=timedelta(seconds=int(data.get("token_ttl_seconds", 3600))),
            expiry_grace=timedelta(seconds=int(data.get("expiry_grace_seconds", 0))),
            bcrypt_rounds=int(data.get("bcrypt_rounds", 14)),
            pool_max_connections=int(data.get("pool_max_connections", 10)),
            pool_max_idle=int(data.get("pool_max_idle", 5)),
            pool_timeout=float(data.get("pool_timeout", 30.0)),
            allow_duplicate_registrations=_parse_bool(data.get("allow_duplicate_registrations", False)),
        )


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, overlaid with ``BOOKING_*`` variables."""
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get(f"{_ENV_PREFIX}CONFIG_PATH"))

    raw: Dict[str, object] = {}
    base_path: Path | None = None
    if config_path.is_file():
        with config_path.open("r", encoding="utf-8") as handle:
            try:
                loaded = yaml.safe_load(handle) or {}
            except yaml.YAMLError as exc:
                raise ValueError(f"Configuration file {config_path} is not valid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {config_path} must contain a mapping")
        raw.update(loaded)
        base_path = config_path.parent
        logger.info("Loaded configuration from %s", config_path)

    for suffix, key in _ENV_FIELDS.items():
        value = env.get(f"{_ENV_PREFIX}{suffix}")
        if value is not None and value.strip():
            raw[key] = value.strip()
            if key == "database_path":
                base_path = None

    return Settings.from_dict(raw, base_path=base_path)


__all__ = [
    "HMAC_ALGORITHMS",
    "Settings",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
