# Taskboard — configuration
# Defaults, overridden by config.yaml, overridden by environment variables.

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import yaml
from werkzeug.security import generate_password_hash

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path("config") / "taskboard.yaml"
DEV_JWT_SECRET = "dev-secret"
ACCESS_MODES = ("open", "shared-secret", "per-account")

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value) -> int:
    """'15m' → 900. Bare numbers are seconds."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        return value
    m = _DURATION_RE.match(str(value))
    if not m:
        raise ConfigError(f"Invalid duration: {value!r}")
    return int(m.group(1)) * _UNIT_SECONDS[m.group(2)]


@dataclass
class Config:
    """Runtime configuration for the board server."""

    host: str = "127.0.0.1"
    port: int = 3001
    mode: str = "per-account"

    # Storage (one snapshot per file)
    data_path: str = "data.json"
    auth_path: str = "auth.json"
    audit_log: Optional[str] = None

    # Shared-secret mode
    username: str = "admin"
    password: str = ""
    password_hash: str = ""
    shared_token_ttl: Optional[int] = None

    # Per-account mode
    jwt_secret: str = DEV_JWT_SECRET
    access_token_ttl: str = "15m"
    refresh_token_ttl_ms: int = 1000 * 60 * 60 * 24 * 30

    # HTTP
    cors_origins: List[str] = field(default_factory=list)  # empty = reflect request origin
    max_body_bytes: int = 50 * 1024
    production: bool = False

    @property
    def access_ttl_seconds(self) -> int:
        return parse_duration(self.access_token_ttl)

    def resolved_password_hash(self) -> str:
        """Configured hash, or a hash of the configured plain password."""
        if self.password_hash:
            return self.password_hash
        if self.password:
            return generate_password_hash(self.password)
        return ""

    def apply_env(self, env=None) -> "Config":
        """Override fields from environment variables."""
        env = os.environ if env is None else env
        if env.get("PORT"):
            self.port = int(env["PORT"])
        if env.get("TASKBOARD_HOST"):
            self.host = env["TASKBOARD_HOST"]
        if env.get("TASKBOARD_MODE"):
            self.mode = env["TASKBOARD_MODE"].strip().lower()
        if env.get("TASKBOARD_DATA"):
            self.data_path = env["TASKBOARD_DATA"]
        if env.get("TASKBOARD_AUTH_DB"):
            self.auth_path = env["TASKBOARD_AUTH_DB"]
        if env.get("TASKBOARD_AUDIT_LOG"):
            self.audit_log = env["TASKBOARD_AUDIT_LOG"]
        if env.get("TASKBOARD_USERNAME"):
            self.username = env["TASKBOARD_USERNAME"]
        if env.get("TASKBOARD_PASSWORD"):
            self.password = env["TASKBOARD_PASSWORD"]
        if env.get("TASKBOARD_PASSWORD_HASH"):
            self.password_hash = env["TASKBOARD_PASSWORD_HASH"]
        if env.get("JWT_SECRET"):
            self.jwt_secret = env["JWT_SECRET"]
        if env.get("ACCESS_TOKEN_TTL"):
            self.access_token_ttl = env["ACCESS_TOKEN_TTL"]
        if env.get("REFRESH_TOKEN_TTL_MS"):
            self.refresh_token_ttl_ms = int(env["REFRESH_TOKEN_TTL_MS"])
        if env.get("CORS_ORIGIN"):
            self.cors_origins = [o.strip() for o in env["CORS_ORIGIN"].split(",") if o.strip()]
        if env.get("TASKBOARD_ENV"):
            self.production = env["TASKBOARD_ENV"].strip().lower() == "production"
        return self

    def validate(self) -> "Config":
        if self.mode not in ACCESS_MODES:
            raise ConfigError(
                f"Unknown mode '{self.mode}'. Available: {list(ACCESS_MODES)}"
            )
        if self.mode == "shared-secret" and not (self.password or self.password_hash):
            raise ConfigError(
                "shared-secret mode needs a password.\n"
                "Set it:  export TASKBOARD_PASSWORD=…  (or TASKBOARD_PASSWORD_HASH)"
            )
        parse_duration(self.access_token_ttl)
        if self.mode == "per-account" and self.jwt_secret == DEV_JWT_SECRET:
            logger.warning(
                "JWT_SECRET is not set. Using insecure default. Set JWT_SECRET in the environment"
            )
        return self

    @classmethod
    def load(cls, path: Optional[str] = None, env=None) -> "Config":
        """Load config from YAML file, then environment, then validate."""
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            with open(cfg_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        else:
            cfg = cls()
        return cfg.apply_env(env).validate()
