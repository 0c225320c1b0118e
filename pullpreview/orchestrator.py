"""
Preview lifecycle for one pull request: deploy on open/update, destroy on close.
"""

import logging
import time
from typing import Callable, Optional, Union

from .config import Settings
from .deployer import Deployer
from .descriptor import DescriptorSource, collect_services
from .errors import ConfigurationError, NoDeployableServicesError
from .events import DeploymentObserver, EventTypes, guarded
from .models import DeploymentResult, EnvironmentIdentity, EnvironmentSpec
from .naming import (
    application_name, dns_label, environment_name, resource_group_name, uses_fallback_dns_label
)
from .platforms import create_platform
from .reporting import DeploymentOutcome, StatusReporter
from .resource_group import ResourceGroupLifecycle
from .retry import Deadline
from .tags import base_tags

logger = logging.getLogger(__name__)

DEPLOY_ACTIONS = ("opened", "synchronize", "reopened")
TEARDOWN_ACTIONS = ("closed",)


def build_environment_spec(identity: EnvironmentIdentity, services, settings: Settings,
                           observer: Optional[DeploymentObserver] = None) -> EnvironmentSpec:
    """
    Derive every name for a pull request and assemble its EnvironmentSpec.

    Raises:
        NamingError: If a derived name violates a provider limit
    """
    observer = guarded(observer)

    group = resource_group_name(identity)
    label = dns_label(identity)
    if uses_fallback_dns_label(identity):
        observer.emit(EventTypes.NAMING_FALLBACK, {
            "dns_label": label,
            "reason": "owner/repository label exceeds 63 characters; "
                      "other repositories with the same PR number share this label",
        })
    app = application_name(identity)

    return EnvironmentSpec(
        resource_group_name=group,
        application_name=app,
        location=settings.location,
        services=tuple(services),
        dns_label=label,
        environment_name=environment_name(app),
        tags=base_tags(identity, settings.tags),
    )


def _missing_sdk(error: ImportError) -> ConfigurationError:
    return ConfigurationError(
        f"Azure management SDK not installed ({error.name or error}); "
        "install it with: pip install 'pullpreview[azure]'",
        {"module": error.name},
    )


def create_deployer(settings: Settings, observer: Optional[DeploymentObserver] = None,
                    credential=None) -> Deployer:
    """
    Build a Deployer wired to live Azure management clients.

    Args:
        settings: Loaded settings
        observer: Receives deployment events
        credential: Azure credential; DefaultAzureCredential when omitted

    Raises:
        ConfigurationError: If the Azure management SDK extra is not installed
    """
    try:
        from azure.mgmt.resource import ResourceManagementClient
    except ImportError as e:
        raise _missing_sdk(e) from e

    if credential is None:
        from azure.identity import DefaultAzureCredential
        credential = DefaultAzureCredential()

    observer = guarded(observer)
    try:
        platform = create_platform(
            settings.platform, credential, settings.subscription_id,
            budgets=settings.budgets, observer=observer,
        )
    except ImportError as e:
        raise _missing_sdk(e) from e
    resource_groups = ResourceGroupLifecycle(
        ResourceManagementClient(credential, settings.subscription_id),
        budgets=settings.budgets,
        observer=observer,
    )
    return Deployer(
        platform, resource_groups,
        budgets=settings.budgets,
        observer=observer,
        cleanup_timeout=settings.cleanup_timeout,
    )


def _report(observer: DeploymentObserver, what: str, call: Callable[[], None]) -> None:
    # A failed report never changes the outcome of the deployment itself
    try:
        call()
    except Exception as e:
        logger.warning(f"Failed to report {what}: {e}")
        observer.emit(EventTypes.REPORT_FAILED, {"report": what, "reason": str(e)})


def deploy(identity: EnvironmentIdentity, source: DescriptorSource, deployer: Deployer,
           settings: Settings, reporter: Optional[StatusReporter] = None,
           observer: Optional[DeploymentObserver] = None,
           clock: Callable[[], float] = time.monotonic) -> DeploymentResult:
    """
    Deploy the preview environment for a pull request.

    Args:
        identity: Repository and pull request
        source: Descriptor listing the application's services
        deployer: Deployer to provision with
        settings: Loaded settings (location, timeouts, tags)
        reporter: Optional status reporter; its failures are only logged
        observer: Receives deployment events

    Returns:
        DeploymentResult with the public endpoint
    """
    observer = guarded(observer)
    start = clock()

    services, infos = collect_services(source, observer)
    if not services:
        raise NoDeployableServicesError(source.service_names())

    spec = build_environment_spec(identity, services, settings, observer)
    logger.info(f"Deploying {identity.slug} to resource group {spec.resource_group_name} in {spec.location}")

    result = deployer.deploy(spec, Deadline(settings.deploy_timeout, clock=clock))
    elapsed = clock() - start
    logger.info(f"Deployment complete: {result.url} ({elapsed:.0f}s)")

    if reporter is not None:
        outcome = DeploymentOutcome(endpoint=result.endpoint, services=infos, elapsed_seconds=elapsed)
        _report(observer, "deployment", lambda: reporter.report_deployment(identity, outcome))

    return result


def destroy(identity: EnvironmentIdentity, deployer: Deployer, settings: Settings,
            reporter: Optional[StatusReporter] = None,
            observer: Optional[DeploymentObserver] = None,
            keep_group: bool = False) -> bool:
    """
    Tear down the preview environment for a pull request.

    Args:
        identity: Repository and pull request
        deployer: Deployer to tear down with
        settings: Loaded settings (teardown timeout)
        reporter: Optional status reporter; its failures are only logged
        observer: Receives teardown events
        keep_group: Delete only the application and keep the resource group

    Returns:
        True if something was deleted, False if nothing existed
    """
    observer = guarded(observer)
    deadline = Deadline(settings.teardown_timeout)
    group = resource_group_name(identity)

    if keep_group:
        logger.info(f"Deleting application {application_name(identity)} in {group}")
        deleted = deployer.delete_application(group, application_name(identity), deadline)
    else:
        logger.info(f"Tearing down resource group {group}")
        deleted = deployer.delete(group, deadline)

    if not deleted:
        logger.info(f"Nothing to tear down for {identity.slug}")

    if reporter is not None:
        _report(observer, "teardown", lambda: reporter.report_teardown(identity))

    return deleted


def handle_action(action: str, identity: EnvironmentIdentity, source: Optional[DescriptorSource],
                  deployer: Deployer, settings: Settings,
                  reporter: Optional[StatusReporter] = None,
                  observer: Optional[DeploymentObserver] = None) -> Union[DeploymentResult, bool, None]:
    """
    Dispatch a pull request action to deploy or destroy.

    Returns:
        DeploymentResult for deploy actions, the destroy result for "closed",
        None for actions that are ignored
    """
    if action in DEPLOY_ACTIONS:
        if source is None:
            raise NoDeployableServicesError()
        return deploy(identity, source, deployer, settings, reporter, observer)
    if action in TEARDOWN_ACTIONS:
        return destroy(identity, deployer, settings, reporter, observer)

    logger.info(f"Ignoring action {action!r} for {identity.slug}")
    return None
