"""
Status reporting for deployment and teardown outcomes.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from .models import EnvironmentIdentity, ServiceInfo

logger = logging.getLogger(__name__)


@dataclass
class DeploymentOutcome:
    """What a reporter is told about a successful deployment."""
    endpoint: str
    services: List[ServiceInfo] = field(default_factory=list)
    elapsed_seconds: float = 0.0


class StatusReporter(ABC):
    """
    Publishes outcomes for a pull request.

    Implementations keep a single status message per pull request and update
    it in place on each call.
    """

    @abstractmethod
    def report_deployment(self, identity: EnvironmentIdentity, outcome: DeploymentOutcome) -> None:
        pass

    @abstractmethod
    def report_teardown(self, identity: EnvironmentIdentity) -> None:
        pass


class LoggingStatusReporter(StatusReporter):
    """Writes outcomes to the log."""

    def __init__(self, log: logging.Logger = None):
        self.log = log or logger

    def report_deployment(self, identity: EnvironmentIdentity, outcome: DeploymentOutcome) -> None:
        services = ", ".join(
            f"{s.name} ({', '.join(str(p) for p in s.ports) or 'no ports'})" for s in outcome.services
        )
        self.log.info(
            f"Preview for {identity.slug} is live at http://{outcome.endpoint} "
            f"after {outcome.elapsed_seconds:.0f}s; services: {services or 'none'}"
        )

    def report_teardown(self, identity: EnvironmentIdentity) -> None:
        self.log.info(f"Preview for {identity.slug} has been torn down")
