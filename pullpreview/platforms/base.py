"""
Base platform interface shared by every Azure hosting shape.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from azure.core.exceptions import ResourceNotFoundError

from ..config import RetryBudgets
from ..events import DeploymentObserver, guarded
from ..models import EnvironmentSpec
from ..retry import Deadline, poll_until_done, with_retry


class Platform(ABC):
    """
    One way of hosting a preview environment's containers.

    The deployer drives every platform through the same steps: ensure the
    shared environment (if any), describe, submit, poll, extract the endpoint.

    Args:
        client: Azure management client for this platform
        budgets: Retry budgets per operation kind
        observer: Receives platform events
        sleep: Backoff sleep function, injectable for tests
    """

    kind: str = ""
    needs_environment: bool = False

    def __init__(self, client, budgets: Optional[RetryBudgets] = None,
                 observer: Optional[DeploymentObserver] = None, sleep=None):
        self.client = client
        self.budgets = budgets or RetryBudgets()
        self.observer = guarded(observer)
        self.sleep = sleep or time.sleep

    @classmethod
    def from_credential(cls, credential, subscription_id: str, **kwargs) -> "Platform":
        """Build the platform with a live management client."""
        raise NotImplementedError

    def ensure_environment(self, spec: EnvironmentSpec, deadline: Optional[Deadline] = None) -> Optional[str]:
        """
        Ensure the shared hosting environment exists.

        Returns:
            Environment resource ID, or None for platforms without one
        """
        return None

    @abstractmethod
    def describe(self, spec: EnvironmentSpec, environment_id: Optional[str]) -> Dict[str, Any]:
        """Translate the spec into this platform's request body."""

    @abstractmethod
    def submit(self, spec: EnvironmentSpec, description: Dict[str, Any]):
        """Start creating or updating the application; returns a poller."""

    def poll(self, poller, deadline: Optional[Deadline] = None):
        return poll_until_done(poller, deadline, f"{self.kind} provisioning")

    @abstractmethod
    def extract_endpoint(self, resource) -> str:
        """
        Read the public FQDN from a provisioned resource.

        Raises:
            NoNetworkPropertiesError, NoAddressError or NoFqdnError
        """

    @abstractmethod
    def delete_application(self, resource_group: str, name: str,
                           deadline: Optional[Deadline] = None) -> bool:
        """Delete only the application, leaving its resource group in place."""

    def _retry(self, operation, budget: float, deadline: Optional[Deadline], description: str,
               propagate=()):
        return with_retry(
            operation,
            budget=budget,
            deadline=deadline,
            observer=self.observer,
            description=description,
            sleep=self.sleep,
            propagate=propagate,
        )

    def _delete(self, begin_delete, deadline: Optional[Deadline], description: str) -> bool:
        try:
            poller = self._retry(begin_delete, self.budgets.teardown, deadline, description,
                                 propagate=(ResourceNotFoundError,))
            poll_until_done(poller, deadline, description)
        except ResourceNotFoundError:
            return False
        return True
