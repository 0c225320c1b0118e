"""
Translate an EnvironmentSpec into Azure resource descriptions.

Descriptions are ARM request bodies in REST JSON shape, which the management
clients accept in place of their model classes. Everything here is a pure
function of its input; nothing talks to Azure.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import DEFAULT_CPU, DEFAULT_MEMORY_GB, EnvironmentSpec, ServiceSpec

DEFAULT_INGRESS_PORT = 80

# Previews scale to zero when idle and never run more than one replica
MIN_REPLICAS = 0
MAX_REPLICAS = 1


def deployable_services(services: Iterable[ServiceSpec]) -> List[ServiceSpec]:
    """Drop build-only services, keeping declaration order."""
    return [s for s in services if s.deployable]


def sorted_environment(environment: Optional[Dict[str, str]]) -> Optional[List[Dict[str, str]]]:
    """
    Render environment variables as name/value entries ordered by name.

    Returns:
        List of {"name", "value"} dicts, or None for an empty or absent mapping
    """
    if not environment:
        return None
    return [{"name": key, "value": environment[key]} for key in sorted(environment)]


def resource_requests(service: ServiceSpec) -> Tuple[float, float]:
    """Return (cpu, memory_gb), substituting defaults for unset values."""
    cpu = service.cpu if service.cpu and service.cpu > 0 else DEFAULT_CPU
    memory = service.memory_gb if service.memory_gb and service.memory_gb > 0 else DEFAULT_MEMORY_GB
    return cpu, memory


def ingress_port(services: Iterable[ServiceSpec]) -> int:
    """
    Pick the single public ingress port.

    The first service, in declaration order, that declares any port wins and
    its first port is used. Other services are reachable only inside the
    environment.
    """
    for service in services:
        if service.ports:
            return service.ports[0]
    return DEFAULT_INGRESS_PORT


def exposed_ports(services: Iterable[ServiceSpec]) -> List[int]:
    """Every declared port, de-duplicated, in declaration order."""
    seen = []
    for service in services:
        for port in service.ports:
            if port not in seen:
                seen.append(port)
    return seen


def _with_tags(body: Dict[str, Any], spec: EnvironmentSpec) -> Dict[str, Any]:
    if spec.tags:
        body["tags"] = dict(spec.tags)
    return body


def build_managed_environment(spec: EnvironmentSpec) -> Dict[str, Any]:
    """Describe the shared managed environment hosting container apps."""
    return _with_tags({
        "location": spec.location,
        "properties": {"zoneRedundant": False},
    }, spec)


def build_container_app(spec: EnvironmentSpec, environment_id: str) -> Dict[str, Any]:
    """
    Describe a container app hosting every deployable service.

    Args:
        spec: Environment to deploy
        environment_id: Resource ID of the managed environment

    Returns:
        Container app request body
    """
    services = deployable_services(spec.services)

    containers = []
    for service in services:
        cpu, memory = resource_requests(service)
        container = {
            "name": service.name,
            "image": service.image,
            "resources": {"cpu": cpu, "memory": f"{memory:.1f}Gi"},
        }
        env = sorted_environment(service.environment)
        if env:
            container["env"] = env
        containers.append(container)

    return _with_tags({
        "location": spec.location,
        "properties": {
            "managedEnvironmentId": environment_id,
            "configuration": {
                "ingress": {
                    "external": True,
                    "targetPort": ingress_port(services),
                    "transport": "auto",
                },
            },
            "template": {
                "containers": containers,
                "scale": {"minReplicas": MIN_REPLICAS, "maxReplicas": MAX_REPLICAS},
            },
        },
    }, spec)


def build_container_group(spec: EnvironmentSpec) -> Dict[str, Any]:
    """
    Describe a container group running every deployable service side by side.

    Args:
        spec: Environment to deploy

    Returns:
        Container group request body
    """
    services = deployable_services(spec.services)

    containers = []
    for service in services:
        cpu, memory = resource_requests(service)
        properties = {
            "image": service.image,
            "resources": {"requests": {"cpu": cpu, "memoryInGB": memory}},
        }
        if service.ports:
            properties["ports"] = [{"port": p} for p in service.ports]
        env = sorted_environment(service.environment)
        if env:
            properties["environmentVariables"] = env
        containers.append({"name": service.name, "properties": properties})

    ports = exposed_ports(services)
    if not ports and containers:
        # Public IP ports must be opened by a container in the group
        ports = [DEFAULT_INGRESS_PORT]
        containers[0]["properties"]["ports"] = [{"port": DEFAULT_INGRESS_PORT}]

    return _with_tags({
        "location": spec.location,
        "properties": {
            "containers": containers,
            "osType": "Linux",
            "restartPolicy": "Always",
            "ipAddress": {
                "type": "Public",
                "ports": [{"port": p, "protocol": "TCP"} for p in ports],
                "dnsNameLabel": spec.dns_label,
            },
        },
    }, spec)
