from __future__ import annotations

import os
import secrets
from enum import Enum
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from sessiongate.logging import get_logger

logger = get_logger(__name__)

# Limits the identity provider accepts for session cookie lifetimes.
MIN_SESSION_MAX_AGE_SECONDS = 5 * 60
MAX_SESSION_MAX_AGE_SECONDS = 14 * 24 * 60 * 60

SECURE_COOKIE_PREFIX = "__Secure-"


class Environment(str, Enum):
    """Deployment environments; only production hardens cookies."""

    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


class IdentityBackend(str, Enum):
    """Identity provider implementations the gateway can delegate to.

    - FIREBASE: firebase-admin SDK, the production provider
    - MEMORY: self-contained signed tokens for local development and tests
    """

    FIREBASE = "firebase"
    MEMORY = "memory"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _normalize_path(value: str) -> str:
    value = value.strip()
    if not value.startswith("/"):
        value = "/" + value
    if len(value) > 1:
        value = value.rstrip("/")
    return value


class Settings(BaseModel):
    """Runtime settings for the session gateway."""

    environment: Environment = env_field(Environment.DEVELOPMENT, "APP_ENV")
    # Cookies
    session_cookie_name: str = env_field("session", "SESSION_COOKIE_NAME")
    csrf_cookie_name: str = env_field("csrf_token", "CSRF_COOKIE_NAME")
    session_max_age_seconds: int = env_field(
        5 * 24 * 60 * 60,
        "SESSION_MAX_AGE_SECONDS",
        description="Fixed maximum lifetime of a session credential",
    )
    csrf_max_age_seconds: int = env_field(2 * 24 * 60 * 60, "CSRF_MAX_AGE_SECONDS")
    # Routing
    login_path: str = env_field("/login", "LOGIN_PATH")
    public_paths: list[str] = env_field(
        ["/login"],
        "PUBLIC_PATHS",
        description="Comma-separated page paths reachable without a session",
    )
    api_prefix: str = env_field("/api", "API_PREFIX")
    gate_bypass_paths: list[str] = env_field(["/healthz"], "GATE_BYPASS_PATHS")
    asset_prefixes: list[str] = env_field(
        ["/static", "/assets", "/favicon.ico"], "ASSET_PREFIXES"
    )
    # CSRF
    requested_with_marker: str = env_field(
        "XMLHttpRequest",
        "REQUESTED_WITH_MARKER",
        description="Expected X-Requested-With value on state-changing auth calls",
    )
    # Identity provider
    identity_backend: IdentityBackend = env_field(IdentityBackend.FIREBASE, "IDENTITY_BACKEND")
    firebase_project_id: str | None = env_field(None, "FIREBASE_PROJECT_ID")
    firebase_client_email: str | None = env_field(None, "FIREBASE_CLIENT_EMAIL")
    firebase_private_key: str | None = env_field(None, "FIREBASE_PRIVATE_KEY")
    identity_timeout_seconds: float = env_field(
        5.0,
        "IDENTITY_TIMEOUT_SECONDS",
        description="Upper bound on any single identity provider call",
    )
    recent_sign_in_seconds: int = env_field(
        5 * 60,
        "RECENT_SIGN_IN_SECONDS",
        description="Identity tokens older than this since sign-in cannot mint a session",
    )
    memory_identity_secret: str | None = env_field(
        None, "MEMORY_IDENTITY_SECRET", validate_default=True
    )
    memory_identity_issuer: str = env_field("sessiongate-memory", "MEMORY_IDENTITY_ISSUER")
    # HTTP hardening
    enable_hsts: bool = env_field(False, "ENABLE_HSTS")
    build_sha: str = env_field("dev", "BUILD_SHA")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def secure_cookies(self) -> bool:
        return self.is_production

    @property
    def effective_session_cookie_name(self) -> str:
        """Session cookie name; production requires the browser-enforced Secure prefix."""
        if self.is_production and not self.session_cookie_name.startswith(SECURE_COOKIE_PREFIX):
            return SECURE_COOKIE_PREFIX + self.session_cookie_name
        return self.session_cookie_name

    @property
    def firebase_configured(self) -> bool:
        return bool(
            self.firebase_project_id
            and self.firebase_client_email
            and self.firebase_private_key
        )

    @field_validator("environment", mode="before")
    @classmethod
    def _validate_environment(cls, value: Any) -> Environment:
        if isinstance(value, str):
            value = value.strip().lower()
            if value in {"prod", "production"}:
                return Environment.PRODUCTION
        return Environment(value)

    @field_validator("identity_backend", mode="before")
    @classmethod
    def _validate_identity_backend(cls, value: Any) -> IdentityBackend:
        if isinstance(value, str):
            value = value.strip().lower()
        return IdentityBackend(value)

    @field_validator("public_paths", "gate_bypass_paths", "asset_prefixes", mode="before")
    @classmethod
    def _parse_path_list(cls, value: Any) -> Any:
        value = _split_csv(value)
        if isinstance(value, list):
            return [_normalize_path(item) for item in value if isinstance(item, str) and item.strip()]
        return value

    @field_validator("login_path", "api_prefix")
    @classmethod
    def _validate_route_path(cls, value: str) -> str:
        return _normalize_path(value)

    @field_validator("session_max_age_seconds")
    @classmethod
    def _validate_session_max_age(cls, value: int) -> int:
        if not MIN_SESSION_MAX_AGE_SECONDS <= value <= MAX_SESSION_MAX_AGE_SECONDS:
            raise ValueError(
                "session_max_age_seconds must be between "
                f"{MIN_SESSION_MAX_AGE_SECONDS} and {MAX_SESSION_MAX_AGE_SECONDS}"
            )
        return value

    @field_validator("csrf_max_age_seconds", "recent_sign_in_seconds")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("identity_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("identity_timeout_seconds must be positive")
        return value

    @field_validator("firebase_private_key")
    @classmethod
    def _normalize_private_key(cls, value: str | None) -> str | None:
        # Keys pasted into env files often arrive quoted with escaped newlines
        if not value:
            return value
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        return value.replace("\\n", "\n")

    @field_validator("memory_identity_secret")
    @classmethod
    def _ensure_memory_secret(cls, value: str | None) -> str:
        if value:
            return value
        # Tokens minted with a generated secret do not survive a restart
        return secrets.token_urlsafe(64)

    def model_post_init(self, __context: Any) -> None:
        if self.login_path not in self.public_paths:
            self.public_paths = [self.login_path, *self.public_paths]
        if self.is_production and self.identity_backend == IdentityBackend.MEMORY:
            logger.warning("memory_identity_backend_in_production")


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
