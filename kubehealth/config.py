"""
KubeHealth - Configuration
Loaded once from the environment at startup and passed explicitly to every stage.
"""

import math
import os
from dataclasses import dataclass
from typing import Optional, Tuple

# Defaults
DEFAULT_THRESHOLD_PERCENT = 85.0
DEFAULT_RESTART_GRACE_MINUTES = 5.0
DEFAULT_PENDING_GRACE_MINUTES = 5.0
DEFAULT_FAIL_IF_NO_METRICS = True
DEFAULT_NAMESPACE_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_WORKERS = 8
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

MAX_THRESHOLD_PERCENT = 1000.0

# Grace-period reference point
AGE_REFERENCE_CREATION = "creation"
AGE_REFERENCE_START = "start"
AGE_REFERENCES = (AGE_REFERENCE_CREATION, AGE_REFERENCE_START)

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")

# Project info
PROJECT_NAME = "KubeHealth"
VERSION = "1.0.0"


class KubeHealthError(Exception):
    """Base class for all KubeHealth errors."""


class ConfigError(KubeHealthError):
    """A required setting is missing or a setting is malformed."""

    def __init__(self, key, message):
        super().__init__(f"{key}: {message}")
        self.key = key


@dataclass(frozen=True)
class Config:
    namespaces: Tuple[str, ...]
    slack_webhook_url: str
    threshold_percent: float = DEFAULT_THRESHOLD_PERCENT
    restart_grace_minutes: float = DEFAULT_RESTART_GRACE_MINUTES
    pending_grace_minutes: float = DEFAULT_PENDING_GRACE_MINUTES
    fail_if_no_metrics: bool = DEFAULT_FAIL_IF_NO_METRICS
    cluster_name: Optional[str] = None
    datacenter_name: Optional[str] = None
    age_reference: str = AGE_REFERENCE_CREATION
    namespace_timeout_seconds: float = DEFAULT_NAMESPACE_TIMEOUT_SECONDS
    max_workers: int = DEFAULT_MAX_WORKERS
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self):
        if not self.namespaces:
            raise ConfigError("NAMESPACES", "at least one namespace is required")
        if not 0 < self.threshold_percent <= MAX_THRESHOLD_PERCENT:
            raise ConfigError(
                "THRESHOLD_PERCENT",
                f"must be in (0, {MAX_THRESHOLD_PERCENT:g}], got {self.threshold_percent:g}",
            )
        if self.restart_grace_minutes < 0:
            raise ConfigError("RESTART_GRACE_MINUTES", "must not be negative")
        if self.pending_grace_minutes < 0:
            raise ConfigError("PENDING_GRACE_MINUTES", "must not be negative")
        if self.age_reference not in AGE_REFERENCES:
            raise ConfigError(
                "AGE_REFERENCE", f"must be one of {', '.join(AGE_REFERENCES)}"
            )
        if self.namespace_timeout_seconds <= 0:
            raise ConfigError("NAMESPACE_TIMEOUT_SECONDS", "must be positive")
        if self.max_workers < 1:
            raise ConfigError("MAX_WORKERS", "must be at least 1")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError("LOG_LEVEL", f"must be one of {', '.join(LOG_LEVELS)}")

    def __repr__(self):
        # Keep the webhook secret out of logs and tracebacks.
        return (
            f"Config(namespaces={self.namespaces!r}, "
            f"threshold_percent={self.threshold_percent!r}, "
            f"restart_grace_minutes={self.restart_grace_minutes!r}, "
            f"pending_grace_minutes={self.pending_grace_minutes!r}, "
            f"fail_if_no_metrics={self.fail_if_no_metrics!r}, "
            f"cluster_name={self.cluster_name!r}, "
            f"datacenter_name={self.datacenter_name!r}, "
            f"age_reference={self.age_reference!r}, slack_webhook_url='***')"
        )

    @classmethod
    def from_env(cls, environ=None, require_webhook=True):
        """Build a Config from environment variables, raising ConfigError on bad input."""
        env = os.environ if environ is None else environ

        webhook = env.get("SLACK_WEBHOOK_URL", "").strip()
        if require_webhook and not webhook:
            raise ConfigError("SLACK_WEBHOOK_URL", "must be provided (Secret env)")

        return cls(
            namespaces=parse_namespaces(env.get("NAMESPACES", "")),
            slack_webhook_url=webhook,
            threshold_percent=_parse_number(
                env, "THRESHOLD_PERCENT", DEFAULT_THRESHOLD_PERCENT
            ),
            restart_grace_minutes=_parse_number(
                env, "RESTART_GRACE_MINUTES", DEFAULT_RESTART_GRACE_MINUTES
            ),
            pending_grace_minutes=_parse_number(
                env, "PENDING_GRACE_MINUTES", DEFAULT_PENDING_GRACE_MINUTES
            ),
            fail_if_no_metrics=_parse_bool(
                env, "FAIL_IF_NO_METRICS", DEFAULT_FAIL_IF_NO_METRICS
            ),
            cluster_name=_optional(env, "CLUSTER_NAME"),
            datacenter_name=_optional(env, "DATACENTER_NAME"),
            age_reference=env.get("AGE_REFERENCE", AGE_REFERENCE_CREATION).strip().lower(),
            namespace_timeout_seconds=_parse_number(
                env, "NAMESPACE_TIMEOUT_SECONDS", DEFAULT_NAMESPACE_TIMEOUT_SECONDS
            ),
            max_workers=_parse_int(env, "MAX_WORKERS", DEFAULT_MAX_WORKERS),
            log_level=env.get("LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL,
        )


def parse_namespaces(raw):
    """Split a comma-separated namespace list, dropping blanks and duplicates."""
    seen = []
    for part in raw.split(","):
        name = part.strip()
        if name and name not in seen:
            seen.append(name)
    if not seen:
        raise ConfigError("NAMESPACES", "must be set (comma-separated)")
    return tuple(seen)


# ---- Helper Functions ----

def _optional(env, key):
    value = env.get(key, "").strip()
    return value or None


def _parse_number(env, key, default):
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(key, f"not a number: {raw!r}") from None
    if not math.isfinite(value):
        raise ConfigError(key, f"not a finite number: {raw!r}")
    return value


def _parse_int(env, key, default):
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(key, f"not an integer: {raw!r}") from None


def _parse_bool(env, key, default):
    raw = env.get(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(key, f"expected true/false, got {raw!r}")
