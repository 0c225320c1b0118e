"""
Shared fixtures for pullpreview tests.
"""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from pullpreview.config import Settings
from pullpreview.events import DeploymentObserver
from pullpreview.models import EnvironmentIdentity, EnvironmentSpec, ServiceSpec


class RecordingObserver(DeploymentObserver):
    """Keeps every emitted event for assertions."""

    def __init__(self):
        self.events = []

    def emit(self, event_type, data):
        self.events.append((event_type, dict(data)))

    def types(self):
        return [event_type for event_type, _ in self.events]

    def of_type(self, event_type):
        return [data for t, data in self.events if t == event_type]


def no_sleep(seconds):
    pass


def done_poller(result):
    """LRO poller that has already finished with the given result."""
    poller = Mock()
    poller.done.return_value = True
    poller.result.return_value = result
    return poller


def container_app_resource(fqdn="pp-pr7.nicehill-1234.eastus.azurecontainerapps.io"):
    return SimpleNamespace(configuration=SimpleNamespace(ingress=SimpleNamespace(fqdn=fqdn)))


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def identity():
    return EnvironmentIdentity(owner="octo", repository="shop", pr_number=7)


@pytest.fixture
def settings():
    return Settings(subscription_id="00000000-0000-0000-0000-000000000000")


@pytest.fixture
def spec():
    return EnvironmentSpec(
        resource_group_name="pullpreview-octo-shop-pr7",
        application_name="pp-pr7",
        location="eastus",
        services=(
            ServiceSpec(name="frontend", image="nginx:1.25", ports=(80,)),
            ServiceSpec(name="api", image=""),
        ),
        dns_label="pp-octo-shop-pr7",
        environment_name="pp-pr7-env",
        tags={"project": "pullpreview"},
    )
