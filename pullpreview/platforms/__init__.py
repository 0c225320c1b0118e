"""
Hosting platforms for preview environments, selected by name.
"""

from typing import Dict, List, Type

from ..errors import ConfigurationError
from .base import Platform
from .container_apps import ContainerAppsPlatform
from .container_instances import ContainerInstancesPlatform

PLATFORMS: Dict[str, Type[Platform]] = {
    ContainerAppsPlatform.kind: ContainerAppsPlatform,
    ContainerInstancesPlatform.kind: ContainerInstancesPlatform,
}


def get_platform_class(name: str) -> Type[Platform]:
    """
    Look up a platform by its configured name.

    Raises:
        ConfigurationError: If no platform has that name
    """
    try:
        return PLATFORMS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown platform {name!r}; expected one of {', '.join(list_platforms())}",
            {"platform": name},
        )


def create_platform(name: str, credential, subscription_id: str, **kwargs) -> Platform:
    """Build the named platform with a live Azure management client."""
    return get_platform_class(name).from_credential(credential, subscription_id, **kwargs)


def list_platforms() -> List[str]:
    return sorted(PLATFORMS)


__all__ = [
    "Platform",
    "ContainerAppsPlatform",
    "ContainerInstancesPlatform",
    "PLATFORMS",
    "get_platform_class",
    "create_platform",
    "list_platforms",
]
