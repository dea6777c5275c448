"""
Central configuration for cadavrix.
All values come from environment variables with sensible defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_str(key: str, default: str) -> str:
    val = os.getenv(key, "").strip()
    return val or default


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------
DEFAULT_ASSIGN_MAX_ATTEMPTS = 8

# ---------------------------------------------------------------------------
# Template rendering
# ---------------------------------------------------------------------------
DEFAULT_NEIGHBOR_TIMEOUT_S = 5.0
DEFAULT_TEMPLATE_FORMAT = "WEBP"
DEFAULT_TEMPLATE_QUALITY = 90
# guide images older than this are pruned on the next render
DEFAULT_TEMPLATE_TTL_S = 3600.0


@dataclass(frozen=True)
class CanvasConfig:
    assign_max_attempts: int = DEFAULT_ASSIGN_MAX_ATTEMPTS
    neighbor_timeout_s: float = DEFAULT_NEIGHBOR_TIMEOUT_S
    template_format: str = DEFAULT_TEMPLATE_FORMAT
    template_quality: int = DEFAULT_TEMPLATE_QUALITY
    template_ttl_s: float = DEFAULT_TEMPLATE_TTL_S
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "CanvasConfig":
        return cls(
            assign_max_attempts=max(1, _env_int("CADAVRIX_ASSIGN_MAX_ATTEMPTS", DEFAULT_ASSIGN_MAX_ATTEMPTS)),
            neighbor_timeout_s=_env_float("CADAVRIX_NEIGHBOR_TIMEOUT_S", DEFAULT_NEIGHBOR_TIMEOUT_S),
            template_format=_env_str("CADAVRIX_TEMPLATE_FORMAT", DEFAULT_TEMPLATE_FORMAT).upper(),
            template_quality=_env_int("CADAVRIX_TEMPLATE_QUALITY", DEFAULT_TEMPLATE_QUALITY),
            template_ttl_s=_env_float("CADAVRIX_TEMPLATE_TTL_S", DEFAULT_TEMPLATE_TTL_S),
            log_level=_env_str("CADAVRIX_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def template_extension(self) -> str:
        return {"JPEG": "jpg"}.get(self.template_format, self.template_format.lower())
