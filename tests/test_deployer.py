"""
Tests for the deployer state machine and rollback.
"""

from dataclasses import replace
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from conftest import RecordingObserver, container_app_resource, done_poller, no_sleep
from pullpreview.deployer import Deployer, DeployState
from pullpreview.errors import DeploymentTimeoutError, NoDeployableServicesError, NoNetworkPropertiesError
from pullpreview.events import EventTypes
from pullpreview.models import ServiceSpec
from pullpreview.platforms import ContainerAppsPlatform, ContainerInstancesPlatform
from pullpreview.resource_group import ResourceGroupLifecycle

ENV_ID = "/subscriptions/s/resourceGroups/pullpreview-octo-shop-pr7/providers/Microsoft.App/managedEnvironments/pp-pr7-env"


@pytest.fixture
def rg_client():
    client = MagicMock()
    client.resource_groups.begin_delete.return_value = done_poller(None)
    return client


@pytest.fixture
def apps_client():
    client = MagicMock()
    client.managed_environments.begin_create_or_update.return_value = done_poller(SimpleNamespace(id=ENV_ID))
    client.container_apps.begin_create_or_update.return_value = done_poller(container_app_resource())
    return client


@pytest.fixture
def deployer(rg_client, apps_client, observer):
    platform = ContainerAppsPlatform(apps_client, observer=observer, sleep=no_sleep)
    groups = ResourceGroupLifecycle(rg_client, observer=observer, sleep=no_sleep)
    return Deployer(platform, groups, observer=observer, sleep=no_sleep)


class TestDeploySuccess:
    """Test successful deployments."""

    def test_deploys_only_image_services(self, deployer, spec, apps_client, observer):
        result = deployer.deploy(spec)

        assert result.endpoint == "pp-pr7.nicehill-1234.eastus.azurecontainerapps.io"
        assert result.url == "http://pp-pr7.nicehill-1234.eastus.azurecontainerapps.io"
        assert result.resource_group_name == "pullpreview-octo-shop-pr7"
        assert deployer.state == DeployState.SUCCEEDED

        rg, app, body = apps_client.container_apps.begin_create_or_update.call_args[0]
        assert (rg, app) == ("pullpreview-octo-shop-pr7", "pp-pr7")
        assert [c["name"] for c in body["properties"]["template"]["containers"]] == ["frontend"]
        assert body["properties"]["managedEnvironmentId"] == ENV_ID
        assert observer.of_type(EventTypes.DEPLOY_START)[0]["services"] == ["frontend"]

    def test_state_transitions(self, deployer, spec, observer):
        deployer.deploy(spec)

        states = [data["to"] for data in observer.of_type(EventTypes.STATE_CHANGED)]
        assert states == [
            "group_ensuring",
            "environment_ensuring",
            "application_submitting",
            "application_polling",
            "succeeded",
        ]
        assert observer.types()[0] == EventTypes.DEPLOY_START
        assert observer.types()[-1] == EventTypes.DONE

    def test_group_created_with_tags(self, deployer, spec, rg_client):
        deployer.deploy(spec)

        rg_client.resource_groups.create_or_update.assert_called_once_with(
            "pullpreview-octo-shop-pr7", {"location": "eastus", "tags": {"project": "pullpreview"}}
        )
        rg_client.resource_groups.begin_delete.assert_not_called()

    def test_submit_retried_on_transient_error(self, deployer, spec, apps_client, observer):
        apps_client.container_apps.begin_create_or_update.side_effect = [
            HttpResponseError(message="(ServiceUnavailable) try later"),
            done_poller(container_app_resource("app.example.io")),
        ]

        result = deployer.deploy(spec)

        assert result.endpoint == "app.example.io"
        assert apps_client.container_apps.begin_create_or_update.call_count == 2
        assert len(observer.of_type(EventTypes.RETRY)) == 1

    def test_container_instances_skips_environment(self, rg_client, spec, observer):
        aci_client = MagicMock()
        aci_client.container_groups.begin_create_or_update.return_value = done_poller(
            SimpleNamespace(ip_address=SimpleNamespace(ip="20.1.2.3", fqdn="pp-octo-shop-pr7.eastus.azurecontainer.io"))
        )
        deployer = Deployer(
            ContainerInstancesPlatform(aci_client, sleep=no_sleep),
            ResourceGroupLifecycle(rg_client, sleep=no_sleep),
            observer=observer,
            sleep=no_sleep,
        )

        result = deployer.deploy(spec)

        assert result.endpoint == "pp-octo-shop-pr7.eastus.azurecontainer.io"
        states = [data["to"] for data in observer.of_type(EventTypes.STATE_CHANGED)]
        assert "environment_ensuring" not in states


class TestNoDeployableServices:
    """Test specs without any deployable service."""

    def test_no_cloud_calls(self, deployer, spec, rg_client, apps_client, observer):
        build_only = replace(spec, services=(ServiceSpec(name="api", image=""),
                                             ServiceSpec(name="worker", image="")))

        with pytest.raises(NoDeployableServicesError) as exc_info:
            deployer.deploy(build_only)

        assert exc_info.value.details["skipped"] == ["api", "worker"]
        assert rg_client.method_calls == []
        assert apps_client.method_calls == []
        assert observer.events == []


class TestRollback:
    """Test rollback after failures."""

    def test_permanent_submit_error_rolls_back_once(self, deployer, spec, rg_client, apps_client, observer):
        error = HttpResponseError(message="(AuthorizationFailed) client may not write container apps")
        apps_client.container_apps.begin_create_or_update.side_effect = error

        with pytest.raises(HttpResponseError) as exc_info:
            deployer.deploy(spec)

        assert exc_info.value is error
        assert apps_client.container_apps.begin_create_or_update.call_count == 1
        rg_client.resource_groups.begin_delete.assert_called_once_with("pullpreview-octo-shop-pr7")
        assert deployer.state == DeployState.ROLLED_BACK

        types = observer.types()
        assert types.index(EventTypes.ERROR) < types.index(EventTypes.ROLLBACK_START)
        assert types.index(EventTypes.ROLLBACK_START) < types.index(EventTypes.ROLLBACK_DONE)
        assert EventTypes.DONE not in types
        assert observer.of_type(EventTypes.ERROR)[0]["state"] == "application_submitting"

    def test_rollback_failure_does_not_mask_error(self, deployer, spec, rg_client, apps_client, observer):
        error = HttpResponseError(message="(InvalidParameter) bad image")
        apps_client.container_apps.begin_create_or_update.side_effect = error
        rg_client.resource_groups.begin_delete.side_effect = HttpResponseError(
            message="(AuthorizationFailed) client may not delete resource groups"
        )

        with pytest.raises(HttpResponseError) as exc_info:
            deployer.deploy(spec)

        assert exc_info.value is error
        failed = observer.of_type(EventTypes.ROLLBACK_FAILED)
        assert len(failed) == 1
        assert "may not delete" in failed[0]["reason"]
        assert EventTypes.ROLLBACK_DONE not in observer.types()
        assert deployer.state == DeployState.ROLLED_BACK

    def test_rollback_of_already_missing_group(self, deployer, spec, rg_client, apps_client, observer):
        apps_client.container_apps.begin_create_or_update.side_effect = HttpResponseError(
            message="(InvalidParameter) bad image"
        )
        rg_client.resource_groups.begin_delete.side_effect = ResourceNotFoundError(message="gone")

        with pytest.raises(HttpResponseError):
            deployer.deploy(spec)

        assert EventTypes.ROLLBACK_DONE in observer.types()

    def test_endpoint_error_rolls_back(self, deployer, spec, rg_client, apps_client):
        apps_client.container_apps.begin_create_or_update.return_value = done_poller(
            SimpleNamespace(configuration=None)
        )

        with pytest.raises(NoNetworkPropertiesError):
            deployer.deploy(spec)

        rg_client.resource_groups.begin_delete.assert_called_once()

    def test_group_failure_has_nothing_to_roll_back(self, deployer, spec, rg_client, apps_client, observer):
        rg_client.resource_groups.create_or_update.side_effect = HttpResponseError(
            message="(InvalidResourceGroup) bad name"
        )

        with pytest.raises(HttpResponseError):
            deployer.deploy(spec)

        rg_client.resource_groups.begin_delete.assert_not_called()
        apps_client.container_apps.begin_create_or_update.assert_not_called()
        assert deployer.state == DeployState.FAILED
        assert EventTypes.ROLLBACK_START not in observer.types()


class TestTimeout:
    """Test the overall deadline."""

    def test_timeout_leaves_group_in_place(self, deployer, spec, rg_client, apps_client, observer):
        poller = Mock()
        poller.done.return_value = False
        apps_client.container_apps.begin_create_or_update.return_value = poller

        with pytest.raises(DeploymentTimeoutError):
            deployer.deploy(spec)

        rg_client.resource_groups.begin_delete.assert_not_called()
        assert deployer.state == DeployState.FAILED
        timeouts = observer.of_type(EventTypes.TIMEOUT)
        assert len(timeouts) == 1
        assert timeouts[0]["state"] == "application_polling"
        assert EventTypes.ROLLBACK_START not in observer.types()


class TestDelete:
    """Test teardown through the deployer."""

    def test_delete_group(self, deployer, rg_client, observer):
        assert deployer.delete("pullpreview-octo-shop-pr7") is True

        rg_client.resource_groups.begin_delete.assert_called_once_with("pullpreview-octo-shop-pr7")
        assert observer.types() == [EventTypes.DESTROY_START, EventTypes.DESTROY_DONE]
        assert observer.of_type(EventTypes.DESTROY_DONE)[0]["existed"] is True

    def test_delete_missing_group(self, deployer, rg_client, observer):
        rg_client.resource_groups.begin_delete.side_effect = ResourceNotFoundError(message="gone")

        assert deployer.delete("pullpreview-octo-shop-pr7") is False
        assert observer.of_type(EventTypes.DESTROY_DONE)[0]["existed"] is False

    def test_delete_application_keeps_group(self, deployer, rg_client, apps_client):
        apps_client.container_apps.begin_delete.return_value = done_poller(None)

        assert deployer.delete_application("pullpreview-octo-shop-pr7", "pp-pr7") is True

        apps_client.container_apps.begin_delete.assert_called_once_with("pullpreview-octo-shop-pr7", "pp-pr7")
        rg_client.resource_groups.begin_delete.assert_not_called()


class FullDiskObserver(RecordingObserver):
    """Records events until GROUP_ENSURED, then fails every write."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def emit(self, event_type, data):
        if self.failing:
            raise OSError(28, "No space left on device")
        super().emit(event_type, data)
        if event_type == EventTypes.GROUP_ENSURED:
            self.failing = True


class TestObserverFailures:
    """Test that a broken event sink never skips the rollback."""

    def test_rollback_runs_when_events_cannot_be_written(self, spec, rg_client, apps_client):
        observer = FullDiskObserver()
        deployer = Deployer(
            ContainerAppsPlatform(apps_client, observer=observer, sleep=no_sleep),
            ResourceGroupLifecycle(rg_client, observer=observer, sleep=no_sleep),
            observer=observer,
            sleep=no_sleep,
        )
        error = HttpResponseError(message="(InvalidParameter) bad image reference")
        apps_client.container_apps.begin_create_or_update.side_effect = error

        with pytest.raises(HttpResponseError) as exc_info:
            deployer.deploy(spec)

        assert exc_info.value is error
        rg_client.resource_groups.begin_delete.assert_called_once_with("pullpreview-octo-shop-pr7")
        assert deployer.state == DeployState.ROLLED_BACK
