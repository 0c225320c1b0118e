"""
Data models for preview environments.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .errors import ConfigurationError

DEFAULT_CPU = 0.5
DEFAULT_MEMORY_GB = 0.5

MIN_PORT = 1
MAX_PORT = 65535


@dataclass(frozen=True)
class EnvironmentIdentity:
    """Repository and pull request that a preview environment belongs to."""
    owner: str
    repository: str
    pr_number: int

    def __post_init__(self):
        if not self.owner or not self.owner.strip():
            raise ConfigurationError("repository owner must not be empty")
        if not self.repository or not self.repository.strip():
            raise ConfigurationError("repository name must not be empty")
        if isinstance(self.pr_number, bool) or not isinstance(self.pr_number, int) or self.pr_number < 1:
            raise ConfigurationError(
                f"pull request number must be a positive integer, got {self.pr_number!r}"
            )

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repository}#{self.pr_number}"


@dataclass(frozen=True)
class ServiceSpec:
    """One container service declared by the descriptor."""
    name: str
    image: str                                # "" means build-only, not deployable
    ports: Tuple[int, ...] = ()
    environment: Dict[str, str] = field(default_factory=dict)
    cpu: float = DEFAULT_CPU
    memory_gb: float = DEFAULT_MEMORY_GB

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("service name must not be empty")
        ports = tuple(self.ports)
        for port in ports:
            if isinstance(port, bool) or not isinstance(port, int) or not MIN_PORT <= port <= MAX_PORT:
                raise ConfigurationError(
                    f"service {self.name!r} has invalid port {port!r} (expected {MIN_PORT}-{MAX_PORT})",
                    {"service": self.name, "port": port},
                )
        object.__setattr__(self, "ports", ports)
        object.__setattr__(self, "environment", dict(self.environment or {}))

    @property
    def deployable(self) -> bool:
        return bool(self.image)


@dataclass(frozen=True)
class EnvironmentSpec:
    """Everything needed for one deployment attempt."""
    resource_group_name: str
    application_name: str
    location: str
    services: Tuple[ServiceSpec, ...]
    dns_label: str
    environment_name: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "services", tuple(self.services))


@dataclass(frozen=True)
class DeploymentResult:
    """Outcome of a fully successful deployment."""
    endpoint: str
    resource_group_name: str

    @property
    def url(self) -> str:
        return f"http://{self.endpoint}"


@dataclass(frozen=True)
class ServiceInfo:
    """Service name and ports as shown to the status reporter."""
    name: str
    ports: Tuple[int, ...] = ()
