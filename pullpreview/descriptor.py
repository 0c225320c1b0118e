"""
Service descriptor sources.

A descriptor source lists the services of a multi-service application. Reading
a specific file format is left to implementations; the deployer only needs
names, images, ports and environment variables.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from .events import DeploymentObserver, EventTypes, guarded
from .models import ServiceInfo, ServiceSpec


class DescriptorSource(ABC):
    """Read-only view of the services an application declares."""

    @abstractmethod
    def service_names(self) -> List[str]:
        """Service names in declaration order."""

    @abstractmethod
    def service_image(self, name: str) -> str:
        """Image reference, or "" for a service that is built from source."""

    @abstractmethod
    def service_ports(self, name: str) -> List[int]:
        """Published container ports, each in 1-65535."""

    def service_environment(self, name: str) -> Dict[str, str]:
        return {}


class StaticDescriptorSource(DescriptorSource):
    """
    Descriptor built from already-parsed service declarations.

    Args:
        services: Iterable of (name, image) pairs in declaration order
        ports: Mapping of service name to its ports
        environment: Mapping of service name to its environment variables
    """

    def __init__(self, services: Iterable[Tuple[str, str]],
                 ports: Optional[Dict[str, List[int]]] = None,
                 environment: Optional[Dict[str, Dict[str, str]]] = None):
        self._images: Dict[str, str] = {}
        for name, image in services:
            self._images[name] = image
        self._ports = {name: list(p) for name, p in (ports or {}).items()}
        self._environment = {name: dict(e) for name, e in (environment or {}).items()}

    def service_names(self) -> List[str]:
        return list(self._images)

    def service_image(self, name: str) -> str:
        return self._images.get(name, "")

    def service_ports(self, name: str) -> List[int]:
        return list(self._ports.get(name, []))

    def service_environment(self, name: str) -> Dict[str, str]:
        return dict(self._environment.get(name, {}))


def collect_services(source: DescriptorSource,
                     observer: Optional[DeploymentObserver] = None) -> Tuple[List[ServiceSpec], List[ServiceInfo]]:
    """
    Turn a descriptor into deployable service specs.

    Services without an image are skipped with a SERVICE_SKIPPED event.

    Returns:
        Tuple of (service specs, service infos for reporting)
    """
    observer = guarded(observer)
    specs = []
    infos = []

    for name in source.service_names():
        image = source.service_image(name)
        if not image:
            observer.emit(EventTypes.SERVICE_SKIPPED, {
                "service": name,
                "reason": "service has a build config and no image",
            })
            continue

        ports = tuple(source.service_ports(name))
        specs.append(ServiceSpec(
            name=name,
            image=image,
            ports=ports,
            environment=source.service_environment(name),
        ))
        infos.append(ServiceInfo(name=name, ports=ports))

    return specs, infos
