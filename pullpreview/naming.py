"""
Deterministic, provider-safe resource names for preview environments.

Re-running the same pull request event must produce the same names so that a
redeploy updates the existing environment instead of creating a new one.
"""

import re

from .errors import NamingError
from .models import EnvironmentIdentity

RESOURCE_GROUP_PREFIX = "pullpreview"
DNS_LABEL_PREFIX = "pp"

MAX_RESOURCE_GROUP_LENGTH = 90
MIN_DNS_LABEL_LENGTH = 3
MAX_DNS_LABEL_LENGTH = 63

_RESOURCE_GROUP_DISALLOWED = re.compile(r"[^A-Za-z0-9_.-]")
_DNS_DISALLOWED = re.compile(r"[^a-z0-9-]")


def resource_group_name(identity: EnvironmentIdentity) -> str:
    """
    Build the resource group name for a pull request.

    Args:
        identity: Repository and pull request

    Returns:
        str: e.g. "pullpreview-octo-cat-app-pr12"

    Raises:
        NamingError: If the name exceeds the 90 character provider limit
    """
    owner = _RESOURCE_GROUP_DISALLOWED.sub("-", identity.owner)
    repo = _RESOURCE_GROUP_DISALLOWED.sub("-", identity.repository)

    name = f"{RESOURCE_GROUP_PREFIX}-{owner}-{repo}-pr{identity.pr_number}"
    if len(name) > MAX_RESOURCE_GROUP_LENGTH:
        # Truncating could make two repositories share a group
        raise NamingError(
            f"resource group name too long: {len(name)} chars (max {MAX_RESOURCE_GROUP_LENGTH})",
            name,
            MAX_RESOURCE_GROUP_LENGTH,
        )
    return name


def _full_dns_label(identity: EnvironmentIdentity) -> str:
    owner = _DNS_DISALLOWED.sub("-", identity.owner.lower())
    repo = _DNS_DISALLOWED.sub("-", identity.repository.lower())
    return f"{DNS_LABEL_PREFIX}-{owner}-{repo}-pr{identity.pr_number}".strip("-")


def _fallback_dns_label(identity: EnvironmentIdentity) -> str:
    return f"{DNS_LABEL_PREFIX}-pr{identity.pr_number}"


def dns_label(identity: EnvironmentIdentity) -> str:
    """
    Build the public DNS label for a pull request.

    Labels longer than 63 characters fall back to "pp-pr<N>". The fallback is
    shared by every repository with the same PR number, so callers should
    check uses_fallback_dns_label and warn.

    Args:
        identity: Repository and pull request

    Returns:
        str: Lowercase DNS label

    Raises:
        NamingError: If the label is shorter than 3 characters
    """
    label = _full_dns_label(identity)
    if len(label) < MIN_DNS_LABEL_LENGTH:
        raise NamingError(
            f"DNS label too short: {len(label)} chars (min {MIN_DNS_LABEL_LENGTH})",
            label,
            MIN_DNS_LABEL_LENGTH,
        )
    if len(label) > MAX_DNS_LABEL_LENGTH:
        return _fallback_dns_label(identity)
    return label


def uses_fallback_dns_label(identity: EnvironmentIdentity) -> bool:
    """Whether dns_label dropped owner and repository to fit 63 characters."""
    return len(_full_dns_label(identity)) > MAX_DNS_LABEL_LENGTH


def application_name(identity: EnvironmentIdentity) -> str:
    """Name of the container app or container group inside the resource group."""
    return f"{DNS_LABEL_PREFIX}-pr{identity.pr_number}"


def environment_name(app_name: str) -> str:
    """Name of the shared managed environment hosting an application."""
    return f"{app_name}-env"
