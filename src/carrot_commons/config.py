"""Runtime settings, the per-user YAML config loader and client construction."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import platformdirs
import yaml
from pydantic import Field, TypeAdapter, ValidationError
from pydantic_settings import BaseSettings

from .clients.base import HttpClient
from .clients.rate_limiter import TokenBucketRateLimiter
from .exceptions import ConfigDeserializationError, ConfigFileOpenError, ConfigProjectDirError
from .utils.retry import ExponentialBackoff

C = TypeVar("C")

ORGANIZATION = "carrot-labs"
QUALIFIER = "xyz"
CONFIG_FILE_NAME = "config.yaml"


class Settings(BaseSettings):
    """Upstream endpoints, credentials and resilience knobs.

    Values are loaded from environment variables prefixed with CARROT_,
    from a .env file in the working directory, or passed in directly
    (e.g. from the per-user YAML config).
    """

    # Upstreams
    mirror_base_url: str = Field(description="Base URL of the HTTP mirror / CDN bucket")
    gateway_base_url: str = Field(description="Base URL of the content-addressed gateway API")
    uploader_base_url: str | None = Field(default=None, description="Base URL of the data uploader")
    third_party_base_url: str | None = Field(
        default=None, description="Base URL of the third-party pinning service"
    )

    # Credentials
    gateway_auth_token: str | None = Field(default=None, description="Gateway bearer token")
    uploader_auth_token: str | None = Field(default=None, description="Uploader bearer token")
    third_party_auth_token: str | None = Field(
        default=None, description="Third-party pinning service bearer token"
    )

    # HTTP Client
    http_timeout_seconds: float = Field(default=30.0, description="Per-attempt request timeout")

    # Rate Limits (0 disables the limiter)
    mirror_rate_per_second: float = Field(default=0, description="Mirror requests per second")
    mirror_burst: int = Field(default=1, description="Mirror burst size")
    gateway_rate_per_second: float = Field(default=0, description="Gateway requests per second")
    gateway_burst: int = Field(default=1, description="Gateway burst size")
    uploader_rate_per_second: float = Field(default=0, description="Uploader requests per second")
    uploader_burst: int = Field(default=1, description="Uploader burst size")
    third_party_rate_per_second: float = Field(
        default=0, description="Third-party pinning service requests per second"
    )
    third_party_burst: int = Field(default=1, description="Third-party burst size")

    # Backoff
    backoff_initial_interval: float = Field(default=0.5, description="First retry wait in seconds")
    backoff_multiplier: float = Field(default=1.5, description="Growth factor between retries")
    backoff_max_interval: float = Field(default=60.0, description="Largest retry wait in seconds")
    backoff_max_elapsed_time: float | None = Field(
        default=900.0, description="Total retry budget in seconds, unset for no limit"
    )
    backoff_randomization_factor: float = Field(default=0.5, description="Jitter factor")

    model_config = {
        "env_file": ".env",
        "env_prefix": "CARROT_",
        "extra": "ignore",
    }

    def backoff(self) -> ExponentialBackoff:
        return ExponentialBackoff(
            initial_interval=self.backoff_initial_interval,
            multiplier=self.backoff_multiplier,
            max_interval=self.backoff_max_interval,
            max_elapsed_time=self.backoff_max_elapsed_time,
            randomization_factor=self.backoff_randomization_factor,
        )


# ── Per-user YAML config ─────────────────────────────────────────

def config_dir(app_name: str) -> Path:
    """The OS-appropriate per-user config directory for ``app_name``."""
    if not app_name.strip():
        raise ConfigProjectDirError(app_name)

    # macOS keys application directories by bundle identifier
    if sys.platform == "darwin":
        name = f"{QUALIFIER}.{ORGANIZATION}.{app_name}"
    else:
        name = app_name

    try:
        return Path(platformdirs.user_config_dir(name, ORGANIZATION))
    except (KeyError, RuntimeError, OSError) as exc:
        raise ConfigProjectDirError(app_name, exc) from exc


def get_config(app_name: str, model: type[C], alt_path: Path | None = None) -> C:
    """Load the YAML config of ``app_name`` into ``model``.

    Reads ``alt_path`` when given, otherwise ``config.yaml`` in the per-user
    config directory.
    """
    path = alt_path if alt_path is not None else config_dir(app_name) / CONFIG_FILE_NAME

    try:
        with open(path, encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigFileOpenError(path, exc) from exc
    except yaml.YAMLError as exc:
        raise ConfigDeserializationError(path, exc) from exc

    try:
        return TypeAdapter(model).validate_python(raw)
    except ValidationError as exc:
        raise ConfigDeserializationError(path, exc) from exc


# ── Clients ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Clients:
    """The shared HTTP clients, one per upstream."""

    mirror: HttpClient
    gateway: HttpClient
    uploader: HttpClient | None = None
    third_party: HttpClient | None = None

    async def aclose(self) -> None:
        clients = [c for c in (self.mirror, self.gateway, self.uploader, self.third_party) if c]
        await asyncio.gather(*(c.aclose() for c in clients))

    async def __aenter__(self) -> Clients:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


def _limiter(rate: float, burst: int) -> TokenBucketRateLimiter | None:
    if rate <= 0:
        return None
    return TokenBucketRateLimiter(rate=rate, per=1.0, burst=burst)


def build_clients(settings: Settings, **client_kwargs: Any) -> Clients:
    """Build one HttpClient per configured upstream.

    Extra keyword arguments (e.g. ``transport``) are passed to every client.
    """
    timeout = settings.http_timeout_seconds

    def client(
        base_url: str, token: str | None, rate: float, burst: int
    ) -> HttpClient:
        return HttpClient(
            base_url,
            timeout,
            bearer_auth_token=token,
            rate_limiter=_limiter(rate, burst),
            **client_kwargs,
        )

    return Clients(
        mirror=client(
            settings.mirror_base_url, None, settings.mirror_rate_per_second, settings.mirror_burst
        ),
        gateway=client(
            settings.gateway_base_url,
            settings.gateway_auth_token,
            settings.gateway_rate_per_second,
            settings.gateway_burst,
        ),
        uploader=client(
            settings.uploader_base_url,
            settings.uploader_auth_token,
            settings.uploader_rate_per_second,
            settings.uploader_burst,
        )
        if settings.uploader_base_url
        else None,
        third_party=client(
            settings.third_party_base_url,
            settings.third_party_auth_token,
            settings.third_party_rate_per_second,
            settings.third_party_burst,
        )
        if settings.third_party_base_url
        else None,
    )
