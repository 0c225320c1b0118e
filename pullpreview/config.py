"""
Settings for preview deployments, read from the process environment.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from .errors import ConfigurationError
from .tags import parse_user_tags

DEFAULT_LOCATION = "eastus"
DEFAULT_PLATFORM = "container-apps"

DEPLOY_TIMEOUT = 15 * 60
TEARDOWN_TIMEOUT = 5 * 60
CLEANUP_TIMEOUT = 2 * 60


@dataclass(frozen=True)
class RetryBudgets:
    """Seconds of retrying allowed per kind of provider call."""
    resource_group: float = 2 * 60
    application: float = 2 * 60
    environment: float = 10 * 60    # managed environment creation can take 5+ minutes
    teardown: float = 5 * 60


@dataclass
class Settings:
    subscription_id: str
    location: str = DEFAULT_LOCATION
    platform: str = DEFAULT_PLATFORM
    events_file: Optional[str] = None
    deploy_timeout: float = DEPLOY_TIMEOUT
    teardown_timeout: float = TEARDOWN_TIMEOUT
    cleanup_timeout: float = CLEANUP_TIMEOUT
    tags: Dict[str, str] = field(default_factory=dict)
    budgets: RetryBudgets = field(default_factory=RetryBudgets)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Load settings from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            Settings: Loaded settings

        Raises:
            ConfigurationError: If a required variable is missing or malformed
        """
        env = os.environ if environ is None else environ

        subscription_id = env.get("AZURE_SUBSCRIPTION_ID", "").strip()
        if not subscription_id:
            raise ConfigurationError("AZURE_SUBSCRIPTION_ID not set")

        raw_tags = env.get("PULLPREVIEW_TAGS", "").strip()
        try:
            tags = parse_user_tags([t for t in raw_tags.split(",") if t.strip()]) if raw_tags else {}
        except ValueError as e:
            raise ConfigurationError(f"PULLPREVIEW_TAGS: {e}") from e

        return cls(
            subscription_id=subscription_id,
            location=env.get("AZURE_LOCATION", "").strip() or DEFAULT_LOCATION,
            platform=env.get("PULLPREVIEW_PLATFORM", "").strip() or DEFAULT_PLATFORM,
            events_file=env.get("PULLPREVIEW_EVENTS_FILE", "").strip() or None,
            deploy_timeout=_seconds(env, "PULLPREVIEW_DEPLOY_TIMEOUT", DEPLOY_TIMEOUT),
            teardown_timeout=_seconds(env, "PULLPREVIEW_TEARDOWN_TIMEOUT", TEARDOWN_TIMEOUT),
            cleanup_timeout=_seconds(env, "PULLPREVIEW_CLEANUP_TIMEOUT", CLEANUP_TIMEOUT),
            tags=tags,
        )


def _seconds(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value
