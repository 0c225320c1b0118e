"""
Tagging utilities for preview resource groups.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from .models import EnvironmentIdentity

PROJECT_TAG = "pullpreview"

MAX_TAG_NAME_LENGTH = 512
MAX_TAG_VALUE_LENGTH = 256
_TAG_NAME_DISALLOWED = set("<>%&\\?/")


def base_tags(identity: EnvironmentIdentity, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Generate the tags applied to a preview resource group.

    Args:
        identity: Repository and pull request the group belongs to
        extra: Additional tags to include

    Returns:
        Dictionary of tags to apply to resources
    """
    tags = {
        "project": PROJECT_TAG,
        "repository": f"{identity.owner}/{identity.repository}",
        "pull_request": str(identity.pr_number),
        "created_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    }

    if extra:
        tags.update(extra)

    return tags


def parse_user_tags(tag_strings: Iterable[str]) -> Dict[str, str]:
    """
    Parse "key=value" tags from --tag options or PULLPREVIEW_TAGS.

    Names and values are checked against Azure's resource group tag limits.
    A repeated name keeps its last value.

    Raises:
        ValueError: If a tag is malformed or violates an Azure tag limit
    """
    tags = {}

    for raw in tag_strings:
        name, sep, value = raw.partition("=")
        name, value = name.strip(), value.strip()

        if not sep:
            raise ValueError(f"Invalid tag format: {raw!r}, expected 'key=value'")
        if not name or not value:
            raise ValueError(f"Invalid tag {raw!r}: Key and value must not be empty")
        if len(name) > MAX_TAG_NAME_LENGTH:
            raise ValueError(f"Invalid tag {raw!r}: name longer than {MAX_TAG_NAME_LENGTH} characters")
        if len(value) > MAX_TAG_VALUE_LENGTH:
            raise ValueError(f"Invalid tag {raw!r}: value longer than {MAX_TAG_VALUE_LENGTH} characters")
        bad = sorted(set(name) & _TAG_NAME_DISALLOWED)
        if bad:
            raise ValueError(f"Invalid tag {raw!r}: name must not contain {''.join(bad)}")

        tags[name] = value

    return tags
