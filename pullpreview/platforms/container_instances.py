"""
Direct container group platform: Azure Container Instances.
"""

from typing import Any, Dict, Optional

from ..errors import NoAddressError, NoFqdnError, NoNetworkPropertiesError
from ..models import EnvironmentSpec
from ..retry import Deadline
from ..translate import build_container_group
from .base import Platform


class ContainerInstancesPlatform(Platform):
    """Runs every service as a container in one public container group."""

    kind = "container-instances"

    @classmethod
    def from_credential(cls, credential, subscription_id: str, **kwargs) -> "ContainerInstancesPlatform":
        from azure.mgmt.containerinstance import ContainerInstanceManagementClient

        return cls(ContainerInstanceManagementClient(credential, subscription_id), **kwargs)

    def describe(self, spec: EnvironmentSpec, environment_id: Optional[str]) -> Dict[str, Any]:
        return build_container_group(spec)

    def submit(self, spec: EnvironmentSpec, description: Dict[str, Any]):
        return self.client.container_groups.begin_create_or_update(
            spec.resource_group_name, spec.application_name, description
        )

    def extract_endpoint(self, resource) -> str:
        ip_address = getattr(resource, "ip_address", None)
        if ip_address is None:
            raise NoNetworkPropertiesError("container group has no IP address configuration")
        if not getattr(ip_address, "ip", None):
            raise NoAddressError("container group has no assigned IP address")
        fqdn = getattr(ip_address, "fqdn", None)
        if not fqdn:
            raise NoFqdnError("container group has no FQDN")
        return fqdn

    def delete_application(self, resource_group: str, name: str,
                           deadline: Optional[Deadline] = None) -> bool:
        return self._delete(
            lambda: self.client.container_groups.begin_delete(resource_group, name),
            deadline,
            f"delete container group {name}",
        )
