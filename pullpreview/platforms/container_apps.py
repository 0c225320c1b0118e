"""
Managed application platform: Azure Container Apps.
"""

from typing import Any, Dict, Optional

from ..errors import NoAddressError, NoFqdnError, NoNetworkPropertiesError, ProvisioningError
from ..events import EventTypes
from ..models import EnvironmentSpec
from ..naming import environment_name
from ..retry import Deadline, poll_until_done
from ..translate import build_container_app, build_managed_environment
from .base import Platform


class ContainerAppsPlatform(Platform):
    """Runs every service in one container app inside a managed environment."""

    kind = "container-apps"
    needs_environment = True

    @classmethod
    def from_credential(cls, credential, subscription_id: str, **kwargs) -> "ContainerAppsPlatform":
        from azure.mgmt.appcontainers import ContainerAppsAPIClient

        return cls(ContainerAppsAPIClient(credential, subscription_id), **kwargs)

    def ensure_environment(self, spec: EnvironmentSpec, deadline: Optional[Deadline] = None) -> str:
        name = spec.environment_name or environment_name(spec.application_name)
        body = build_managed_environment(spec)
        description = f"create managed environment {name}"

        def create():
            poller = self.client.managed_environments.begin_create_or_update(
                spec.resource_group_name, name, body
            )
            result = poll_until_done(poller, deadline, description)
            environment_id = getattr(result, "id", None)
            if not environment_id:
                raise ProvisioningError(f"managed environment {name} has no ID", {"environment": name})
            return environment_id

        environment_id = self._retry(create, self.budgets.environment, deadline, description)
        self.observer.emit(EventTypes.ENVIRONMENT_READY, {
            "environment": name,
            "environment_id": environment_id,
        })
        return environment_id

    def describe(self, spec: EnvironmentSpec, environment_id: Optional[str]) -> Dict[str, Any]:
        return build_container_app(spec, environment_id)

    def submit(self, spec: EnvironmentSpec, description: Dict[str, Any]):
        return self.client.container_apps.begin_create_or_update(
            spec.resource_group_name, spec.application_name, description
        )

    def extract_endpoint(self, resource) -> str:
        configuration = getattr(resource, "configuration", None)
        if configuration is None:
            raise NoNetworkPropertiesError("container app has no configuration")
        ingress = getattr(configuration, "ingress", None)
        if ingress is None:
            raise NoAddressError("container app has no ingress")
        fqdn = getattr(ingress, "fqdn", None)
        if not fqdn:
            raise NoFqdnError("container app has no FQDN")
        return fqdn

    def delete_application(self, resource_group: str, name: str,
                           deadline: Optional[Deadline] = None) -> bool:
        return self._delete(
            lambda: self.client.container_apps.begin_delete(resource_group, name),
            deadline,
            f"delete container app {name}",
        )
