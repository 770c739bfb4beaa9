"""
Configuration and settings for the Fairfence backend.

Two layers live here:

* ``Settings``: process-level toggles read once from the environment
  (API prefix, log level, development switches).
* ``ConfigResolver``: the runtime configuration record (hosted backend
  credentials, session secret, payment and mail settings). It prefers a
  cached record, then the remote config endpoint, then local environment
  variables, and caches whichever succeeds for five minutes.
"""

from __future__ import annotations

import enum
import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

import requests
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 5 * 60
REMOTE_CONFIG_TIMEOUT = 10  # seconds

REMOTE_URL_ENV_VARS = ("WORDPRESS_API_URL", "REMOTE_CONFIG_URL")
REQUIRED_ENV_VARS = ("SUPABASE_URL", "SUPABASE_ANON_KEY")


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Hosted backend (used to pick a pricing store)
    supabase_url: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)
    database_url: Optional[str] = Field(default=None)

    # Remote config endpoint
    remote_config_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(*REMOTE_URL_ENV_VARS),
    )
    remote_config_timeout: float = Field(default=REMOTE_CONFIG_TIMEOUT)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "FAIRFENCE_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


class ConfigurationError(Exception):
    """Required local configuration is missing."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(
            f"{' and '.join(self.missing)} must be set in environment"
        )


class RemoteConfigError(Exception):
    """The remote config endpoint could not supply a usable record."""


class ConfigSource(str, enum.Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class AppConfiguration:
    supabase_url: str
    supabase_anon_key: str
    supabase_service_role_key: Optional[str] = None
    database_url: Optional[str] = None
    session_secret: Optional[str] = None
    stripe_public_key: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[str] = None
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    port: Optional[str] = None
    remote_config_url: Optional[str] = None

    def __post_init__(self):
        if not self.supabase_url or not self.supabase_anon_key:
            raise ValueError("supabase_url and supabase_anon_key are required")


@dataclass(frozen=True)
class ConfigCache:
    config: Optional[AppConfiguration] = None
    timestamp: Optional[float] = None
    source: Optional[ConfigSource] = None

    def __post_init__(self):
        if self.config is not None and self.timestamp is None:
            raise ValueError("cached config requires a timestamp")

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return self.config is not None and now - self.timestamp < ttl_seconds


@dataclass(frozen=True)
class ConfigStatus:
    initialized: bool
    source: Optional[str]
    has_elevated_credentials: bool

    def as_dict(self) -> dict:
        return {
            "initialized": self.initialized,
            "source": self.source,
            "hasElevatedCredentials": self.has_elevated_credentials,
        }


def _to_base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def generate_session_secret(now: Optional[float] = None) -> str:
    """
    Random token joined with the current time in base 36.

    Not a cryptographic contract: deployments that need a strong secret
    should set SESSION_SECRET explicitly.
    """
    if now is None:
        now = time.time()
    return secrets.token_hex(8) + _to_base36(int(now * 1000))


def derive_database_url(supabase_url: str) -> str:
    return supabase_url.replace("https://", "postgresql://postgres:@", 1) + "/postgres"


def fetch_remote_config(base_url: str, timeout: float = REMOTE_CONFIG_TIMEOUT) -> dict:
    """
    GET ``<base_url>/config`` and return the decoded JSON payload.

    Raises:
        RemoteConfigError: On network failure, non-2xx status or a body that
            is not a JSON object.
    """
    url = f"{base_url.rstrip('/')}/config"
    try:
        response = requests.get(
            url, headers={"Accept": "application/json"}, timeout=timeout
        )
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        raise RemoteConfigError(f"request to {url} failed: {exc}") from exc
    except ValueError as exc:
        raise RemoteConfigError(f"invalid JSON from {url}") from exc

    if not isinstance(payload, dict):
        raise RemoteConfigError(f"expected a JSON object from {url}")
    return payload


class ConfigResolver:
    """
    Resolve, cache and inspect the runtime configuration record.

    The environment accessor, remote fetch function and clock are injected
    so tests control I/O and time without touching process state.
    """

    def __init__(
        self,
        *,
        getenv: Callable[[str], Optional[str]] = os.environ.get,
        fetch: Callable[[str, float], dict] = fetch_remote_config,
        clock: Callable[[], float] = time.time,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        remote_timeout: float = REMOTE_CONFIG_TIMEOUT,
        secret_factory: Optional[Callable[[], str]] = None,
    ):
        self._getenv = getenv
        self._fetch = fetch
        self._clock = clock
        self._ttl_seconds = ttl_seconds
        self._remote_timeout = remote_timeout
        self._secret_factory = secret_factory or (
            lambda: generate_session_secret(self._clock())
        )
        self._lock = threading.Lock()
        self._cache = ConfigCache()

    def resolve(self) -> AppConfiguration:
        with self._lock:
            cache = self._cache
        if cache.is_fresh(self._clock(), self._ttl_seconds):
            logger.debug("Using cached config (%s)", cache.source.value)
            return cache.config

        remote_url = self._remote_url()
        if remote_url:
            try:
                config = self._load_remote(remote_url)
            except RemoteConfigError as exc:
                logger.warning(
                    "Remote config at %s failed, falling back to environment: %s",
                    remote_url,
                    exc,
                )
            else:
                self._store(config, ConfigSource.REMOTE)
                return config

        try:
            config = self._load_local()
        except ConfigurationError:
            logger.error("Local configuration is incomplete")
            raise
        self._store(config, ConfigSource.LOCAL)
        return config

    def invalidate(self) -> None:
        with self._lock:
            self._cache = ConfigCache()
        logger.info("Config cache cleared")

    def force_refresh(self) -> AppConfiguration:
        self.invalidate()
        return self.resolve()

    def current(self) -> Optional[AppConfiguration]:
        with self._lock:
            return self._cache.config

    def status(self) -> ConfigStatus:
        with self._lock:
            cache = self._cache
        config = cache.config
        return ConfigStatus(
            initialized=config is not None,
            source=cache.source.value if cache.source else None,
            has_elevated_credentials=bool(
                config and config.supabase_service_role_key
            ),
        )

    def _remote_url(self) -> Optional[str]:
        for name in REMOTE_URL_ENV_VARS:
            value = self._getenv(name)
            if value:
                return value
        return None

    def _store(self, config: AppConfiguration, source: ConfigSource) -> None:
        with self._lock:
            self._cache = ConfigCache(
                config=config, timestamp=self._clock(), source=source
            )
        logger.info("Config loaded and cached (%s)", source.value)

    def _load_remote(self, remote_url: str) -> AppConfiguration:
        try:
            payload = self._fetch(remote_url, self._remote_timeout)
        except RemoteConfigError:
            raise
        except Exception as exc:
            raise RemoteConfigError(str(exc)) from exc

        supabase_url = payload.get("supabase_url")
        anon_key = payload.get("supabase_anon_key")
        if not (isinstance(supabase_url, str) and supabase_url) or not (
            isinstance(anon_key, str) and anon_key
        ):
            raise RemoteConfigError(
                "remote config missing required supabase credentials"
            )

        try:
            return self._remote_record(payload, remote_url)
        except (TypeError, AttributeError, ValueError) as exc:
            raise RemoteConfigError(f"malformed remote config: {exc}") from exc

    def _remote_record(self, payload: dict, remote_url: str) -> AppConfiguration:
        supabase_url = payload["supabase_url"]
        return AppConfiguration(
            supabase_url=supabase_url,
            supabase_anon_key=payload["supabase_anon_key"],
            supabase_service_role_key=payload.get("supabase_service_key"),
            database_url=derive_database_url(supabase_url),
            session_secret=payload.get("session_secret") or self._secret_factory(),
            stripe_public_key=payload.get("stripe_public_key"),
            stripe_secret_key=payload.get("stripe_secret_key"),
            smtp_host=payload.get("smtp_host"),
            smtp_port=_as_optional_str(payload.get("smtp_port")),
            smtp_user=payload.get("smtp_user"),
            smtp_password=payload.get("smtp_password"),
            remote_config_url=remote_url,
        )

    def _load_local(self) -> AppConfiguration:
        env = self._getenv
        missing = [name for name in REQUIRED_ENV_VARS if not env(name)]
        if missing:
            raise ConfigurationError(missing)

        return AppConfiguration(
            supabase_url=env("SUPABASE_URL"),
            supabase_anon_key=env("SUPABASE_ANON_KEY"),
            supabase_service_role_key=env("SUPABASE_SERVICE_ROLE_KEY"),
            database_url=env("DATABASE_URL"),
            session_secret=env("SESSION_SECRET") or self._secret_factory(),
            stripe_public_key=env("STRIPE_PUBLIC_KEY"),
            stripe_secret_key=env("STRIPE_SECRET_KEY"),
            smtp_host=env("SMTP_HOST"),
            smtp_port=env("SMTP_PORT"),
            smtp_user=env("SMTP_USER"),
            smtp_password=env("SMTP_PASSWORD"),
            port=env("PORT"),
        )


def _as_optional_str(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
