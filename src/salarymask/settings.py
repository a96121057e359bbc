"""Service configuration helpers for deployment environments.

Runtime configuration for the HTTP service and the CLI is read from
``SALARYMASK_*`` environment variables in one place. The module has no import
side effects so it can be used from both CLI tools and FastAPI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional
import os

from .pipeline.config import RunConfig


def _parse_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    v = value.strip().lower()
    if v in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _parse_float(value: str | None, *, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _split_csv(value: str | None) -> List[str]:
    if not value:
        return []
    parts = [p.strip() for p in value.split(",") if p.strip()]
    return parts


@dataclass
class ServiceSettings:
    """Runtime settings tailored for container/Kubernetes deployments."""

    api_host: str = "127.0.0.1"
    api_port: int = 8000
    api_token: Optional[str] = None
    trust_role_header: bool = False
    cors_origins: List[str] = field(default_factory=list)
    max_upload_mb: float = 10.0
    preview_scale: float = 1.5
    raster_scale: float = 2.0
    policy_path: Optional[str] = None
    readiness_check_render: bool = True
    readiness_check_font: bool = True
    readiness_check_policy: bool = True
    allowance_warn_only_checks: bool = True

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)

    def run_config(self) -> RunConfig:
        """Library configuration derived from these settings."""
        return RunConfig(
            preview_scale=self.preview_scale,
            raster_scale=self.raster_scale,
            policy_path=self.policy_path,
        )

    @staticmethod
    def from_env() -> "ServiceSettings":
        cors_raw = os.environ.get("SALARYMASK_API_CORS_ORIGINS")
        settings = ServiceSettings(
            api_host=os.environ.get("SALARYMASK_API_HOST", "127.0.0.1"),
            api_port=int(os.environ.get("SALARYMASK_API_PORT", "8000")),
            api_token=os.environ.get("SALARYMASK_API_TOKEN"),
            trust_role_header=_parse_bool(
                os.environ.get("SALARYMASK_TRUST_ROLE_HEADER"), default=False
            ),
            cors_origins=_split_csv(cors_raw),
            max_upload_mb=_parse_float(
                os.environ.get("SALARYMASK_MAX_UPLOAD_MB"), default=10.0
            ),
            preview_scale=_parse_float(
                os.environ.get("SALARYMASK_PREVIEW_SCALE"), default=1.5
            ),
            raster_scale=_parse_float(
                os.environ.get("SALARYMASK_RASTER_SCALE"), default=2.0
            ),
            policy_path=os.environ.get("SALARYMASK_POLICY") or None,
            readiness_check_render=_parse_bool(
                os.environ.get("SALARYMASK_READY_CHECK_RENDER"), default=True
            ),
            readiness_check_font=_parse_bool(
                os.environ.get("SALARYMASK_READY_CHECK_FONT"), default=True
            ),
            readiness_check_policy=_parse_bool(
                os.environ.get("SALARYMASK_READY_CHECK_POLICY"), default=True
            ),
            allowance_warn_only_checks=_parse_bool(
                os.environ.get("SALARYMASK_READY_WARN_ONLY"), default=True
            ),
        )
        return settings


@lru_cache(maxsize=1)
def get_settings() -> ServiceSettings:
    """Return cached service settings."""
    return ServiceSettings.from_env()


def reset_settings_cache() -> None:
    """Reset cached settings (useful in tests)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
