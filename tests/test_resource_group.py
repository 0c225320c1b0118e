"""
Tests for the resource group lifecycle.
"""

from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from conftest import RecordingObserver, done_poller, no_sleep
from pullpreview.config import RetryBudgets
from pullpreview.errors import RetryBudgetExceededError
from pullpreview.events import EventTypes
from pullpreview.resource_group import ResourceGroupLifecycle


@pytest.fixture
def client():
    return MagicMock()


class TestEnsure:
    """Test resource group creation."""

    def test_creates_with_tags(self, client):
        observer = RecordingObserver()
        lifecycle = ResourceGroupLifecycle(client, observer=observer, sleep=no_sleep)

        lifecycle.ensure("pullpreview-octo-shop-pr7", "eastus", {"project": "pullpreview"})

        client.resource_groups.create_or_update.assert_called_once_with(
            "pullpreview-octo-shop-pr7",
            {"location": "eastus", "tags": {"project": "pullpreview"}},
        )
        assert observer.of_type(EventTypes.GROUP_ENSURED) == [
            {"resource_group": "pullpreview-octo-shop-pr7", "location": "eastus"},
        ]

    def test_retries_transient_failure(self, client):
        client.resource_groups.create_or_update.side_effect = [
            HttpResponseError(message="(TooManyRequests) throttled"),
            MagicMock(),
        ]
        observer = RecordingObserver()
        lifecycle = ResourceGroupLifecycle(client, observer=observer, sleep=no_sleep)

        lifecycle.ensure("rg", "eastus")

        assert client.resource_groups.create_or_update.call_count == 2
        assert len(observer.of_type(EventTypes.RETRY)) == 1

    def test_permanent_failure_raises(self, client):
        client.resource_groups.create_or_update.side_effect = HttpResponseError(
            message="(InvalidSubscriptionId) bad subscription"
        )
        lifecycle = ResourceGroupLifecycle(client, sleep=no_sleep)

        with pytest.raises(HttpResponseError):
            lifecycle.ensure("rg", "eastus")

        assert client.resource_groups.create_or_update.call_count == 1


class TestDelete:
    """Test resource group deletion."""

    def test_deletes_and_waits(self, client):
        poller = done_poller(None)
        client.resource_groups.begin_delete.return_value = poller
        lifecycle = ResourceGroupLifecycle(client, sleep=no_sleep)

        assert lifecycle.delete("rg") is True
        client.resource_groups.begin_delete.assert_called_once_with("rg")
        poller.wait.assert_called_once()

    def test_missing_group_returns_false(self, client):
        client.resource_groups.begin_delete.side_effect = ResourceNotFoundError(message="not found")
        lifecycle = ResourceGroupLifecycle(client, sleep=no_sleep)

        assert lifecycle.delete("rg") is False
        assert client.resource_groups.begin_delete.call_count == 1

    def test_budget_override(self, client):
        client.resource_groups.begin_delete.side_effect = ConnectionError("reset")
        lifecycle = ResourceGroupLifecycle(client, budgets=RetryBudgets(teardown=600), sleep=no_sleep)

        with pytest.raises(RetryBudgetExceededError) as exc_info:
            lifecycle.delete("rg", budget=0)

        assert exc_info.value.operation == "delete resource group rg"
