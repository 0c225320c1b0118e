"""
Resource group lifecycle: create before use, delete wholesale on teardown.
"""

import time
from typing import Dict, Optional

from azure.core.exceptions import ResourceNotFoundError

from .config import RetryBudgets
from .events import DeploymentObserver, EventTypes, guarded
from .retry import Deadline, poll_until_done, with_retry


class ResourceGroupLifecycle:
    """
    Ensures and deletes the resource group holding a preview environment.

    Args:
        client: azure-mgmt-resource ResourceManagementClient (or compatible)
        budgets: Retry budgets per operation kind
        observer: Receives lifecycle events
        sleep: Backoff sleep function, injectable for tests
    """

    def __init__(self, client, budgets: Optional[RetryBudgets] = None,
                 observer: Optional[DeploymentObserver] = None, sleep=None):
        self.client = client
        self.budgets = budgets or RetryBudgets()
        self.observer = guarded(observer)
        self.sleep = sleep or time.sleep

    def ensure(self, name: str, location: str, tags: Optional[Dict[str, str]] = None,
               deadline: Optional[Deadline] = None) -> None:
        """
        Create the resource group, or update it if it already exists.

        Create-or-update is idempotent, so retries never duplicate state.
        """
        body = {"location": location}
        if tags:
            body["tags"] = dict(tags)

        with_retry(
            lambda: self.client.resource_groups.create_or_update(name, body),
            budget=self.budgets.resource_group,
            deadline=deadline,
            observer=self.observer,
            description=f"create resource group {name}",
            sleep=self.sleep,
        )
        self.observer.emit(EventTypes.GROUP_ENSURED, {"resource_group": name, "location": location})

    def delete(self, name: str, deadline: Optional[Deadline] = None,
               budget: Optional[float] = None) -> bool:
        """
        Delete the resource group and everything inside it.

        Only starting the delete is retried; once the provider has accepted it
        the operation is left to finish through the poller.

        Args:
            name: Resource group name
            deadline: Overall caller deadline
            budget: Retry budget; defaults to the teardown budget

        Returns:
            True if the group was deleted, False if it did not exist
        """
        description = f"delete resource group {name}"
        try:
            poller = with_retry(
                lambda: self.client.resource_groups.begin_delete(name),
                budget=self.budgets.teardown if budget is None else budget,
                deadline=deadline,
                observer=self.observer,
                description=description,
                propagate=(ResourceNotFoundError,),
                sleep=self.sleep,
            )
            poll_until_done(poller, deadline, description)
        except ResourceNotFoundError:
            return False
        return True
