"""
Deployer: provisions a preview environment and rolls it back on failure.
"""

import time
from dataclasses import replace
from enum import Enum
from typing import Optional

from .config import CLEANUP_TIMEOUT, RetryBudgets
from .errors import DeploymentTimeoutError, NoDeployableServicesError
from .events import DeploymentObserver, EventTypes, guarded
from .models import DeploymentResult, EnvironmentSpec
from .platforms import Platform
from .resource_group import ResourceGroupLifecycle
from .retry import Deadline, with_retry
from .translate import deployable_services


class DeployState(Enum):
    """Steps of a single deployment."""
    IDLE = "idle"
    GROUP_ENSURING = "group_ensuring"
    ENVIRONMENT_ENSURING = "environment_ensuring"
    APPLICATION_SUBMITTING = "application_submitting"
    APPLICATION_POLLING = "application_polling"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class Deployer:
    """
    Sequences resource group creation, translation, submission and polling.

    Any failure after the resource group exists deletes the whole group, so a
    failed attempt never leaves billable resources behind. The one exception
    is the caller's deadline running out: the group is then left in place for
    an explicit teardown.

    Args:
        platform: Hosting platform for the application
        resource_groups: Resource group lifecycle manager
        budgets: Retry budgets per operation kind
        observer: Receives every deployment event
        cleanup_timeout: Seconds allowed for a rollback, independent of the deploy deadline
        sleep: Backoff sleep function, injectable for tests
    """

    def __init__(self, platform: Platform, resource_groups: ResourceGroupLifecycle,
                 budgets: Optional[RetryBudgets] = None,
                 observer: Optional[DeploymentObserver] = None,
                 cleanup_timeout: float = CLEANUP_TIMEOUT, sleep=None):
        self.platform = platform
        self.resource_groups = resource_groups
        self.budgets = budgets or RetryBudgets()
        self.observer = guarded(observer)
        self.cleanup_timeout = cleanup_timeout
        self.sleep = sleep or time.sleep
        self.state = DeployState.IDLE

    def _transition(self, state: DeployState) -> None:
        previous = self.state
        self.state = state
        self.observer.emit(EventTypes.STATE_CHANGED, {"from": previous.value, "to": state.value})

    def deploy(self, spec: EnvironmentSpec, deadline: Optional[Deadline] = None) -> DeploymentResult:
        """
        Deploy every deployable service in the spec.

        Args:
            spec: Environment to deploy
            deadline: Overall deadline for the deployment

        Returns:
            DeploymentResult with the public endpoint

        Raises:
            NoDeployableServicesError: If every service is build-only (no cloud call is made)
            DeploymentTimeoutError: If the deadline passes (no rollback)
            The original provider or endpoint error after a rollback
        """
        services = deployable_services(spec.services)
        if not services:
            raise NoDeployableServicesError([s.name for s in spec.services])
        spec = replace(spec, services=tuple(services))

        self.state = DeployState.IDLE
        self.observer.emit(EventTypes.DEPLOY_START, {
            "resource_group": spec.resource_group_name,
            "application": spec.application_name,
            "platform": self.platform.kind,
            "location": spec.location,
            "services": [s.name for s in services],
        })

        self._transition(DeployState.GROUP_ENSURING)
        try:
            self.resource_groups.ensure(spec.resource_group_name, spec.location, spec.tags, deadline)
        except Exception as e:
            # Nothing was created, so there is nothing to roll back
            self._report_error(e)
            self._transition(DeployState.FAILED)
            raise

        succeeded = False
        timed_out = False
        try:
            environment_id = None
            if self.platform.needs_environment:
                self._transition(DeployState.ENVIRONMENT_ENSURING)
                environment_id = self.platform.ensure_environment(spec, deadline)

            description = self.platform.describe(spec, environment_id)

            self._transition(DeployState.APPLICATION_SUBMITTING)
            poller = with_retry(
                lambda: self.platform.submit(spec, description),
                budget=self.budgets.application,
                deadline=deadline,
                observer=self.observer,
                description=f"submit {self.platform.kind} {spec.application_name}",
                sleep=self.sleep,
            )
            self.observer.emit(EventTypes.APP_SUBMITTED, {"application": spec.application_name})

            self._transition(DeployState.APPLICATION_POLLING)
            resource = self.platform.poll(poller, deadline)
            endpoint = self.platform.extract_endpoint(resource)

            succeeded = True
        except DeploymentTimeoutError:
            timed_out = True
            raise
        except Exception as e:
            self._report_error(e)
            raise
        finally:
            if not succeeded:
                if timed_out:
                    self.observer.emit(EventTypes.TIMEOUT, {
                        "state": self.state.value,
                        "resource_group": spec.resource_group_name,
                        "hint": "resource group left in place; run teardown to remove it",
                    })
                    self._transition(DeployState.FAILED)
                else:
                    self._rollback(spec.resource_group_name)

        self._transition(DeployState.SUCCEEDED)
        result = DeploymentResult(endpoint=endpoint, resource_group_name=spec.resource_group_name)
        self.observer.emit(EventTypes.DONE, {
            "endpoint": endpoint,
            "resource_group": spec.resource_group_name,
        })
        return result

    def _report_error(self, error: BaseException) -> None:
        self.observer.emit(EventTypes.ERROR, {
            "state": self.state.value,
            "reason": str(error),
            "error_type": type(error).__name__,
        })

    def _rollback(self, resource_group: str) -> None:
        """Delete the partially created group; failures are reported, never raised."""
        try:
            self.observer.emit(EventTypes.ROLLBACK_START, {"resource_group": resource_group})
            self.resource_groups.delete(resource_group, Deadline(self.cleanup_timeout))
        except Exception as e:
            # Must not mask the deployment error that triggered the rollback
            self.observer.emit(EventTypes.ROLLBACK_FAILED, {
                "resource_group": resource_group,
                "reason": str(e),
                "error_type": type(e).__name__,
            })
        else:
            self.observer.emit(EventTypes.ROLLBACK_DONE, {"resource_group": resource_group})
        self._transition(DeployState.ROLLED_BACK)

    def delete(self, resource_group: str, deadline: Optional[Deadline] = None) -> bool:
        """
        Tear down a preview environment by deleting its resource group.

        Deleting the group reclaims the application, the managed environment
        and anything else inside it.

        Returns:
            True if the group was deleted, False if it did not exist
        """
        self.observer.emit(EventTypes.DESTROY_START, {"resource_group": resource_group})
        deleted = self.resource_groups.delete(resource_group, deadline)
        self.observer.emit(EventTypes.DESTROY_DONE, {"resource_group": resource_group, "existed": deleted})
        return deleted

    def delete_application(self, resource_group: str, name: str,
                           deadline: Optional[Deadline] = None) -> bool:
        """
        Delete only the application, keeping the resource group.

        Returns:
            True if the application was deleted, False if it did not exist
        """
        self.observer.emit(EventTypes.DESTROY_START, {"resource_group": resource_group, "application": name})
        deleted = self.platform.delete_application(resource_group, name, deadline)
        self.observer.emit(EventTypes.DESTROY_DONE, {
            "resource_group": resource_group,
            "application": name,
            "existed": deleted,
        })
        return deleted
