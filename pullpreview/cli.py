"""Command line entrypoint for pullpreview."""

import json
import logging
import sys
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import click
from azure.core.exceptions import AzureError

from .config import Settings
from .descriptor import StaticDescriptorSource
from .errors import ConfigurationError, NoDeployableServicesError, PreviewError
from .events import CompositeObserver, LoggingObserver, NdjsonObserver, read_events, status_from_events
from .models import EnvironmentIdentity
from .naming import (
    application_name, dns_label, environment_name, resource_group_name, uses_fallback_dns_label
)
from .orchestrator import DEPLOY_ACTIONS, TEARDOWN_ACTIONS, create_deployer, destroy, handle_action
from .platforms import list_platforms
from .reporting import LoggingStatusReporter
from .tags import parse_user_tags

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _json_output(data: Dict[str, Any]) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=None))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not click.get_current_context().obj.get("json", False):
        click.echo(message)


def _fail(message: str) -> None:
    logger.error(message)
    if click.get_current_context().obj.get("json", False):
        _json_output({"error": message})
    sys.exit(1)


def _split_pair(value: str, option: str) -> Tuple[str, str]:
    if "=" not in value:
        raise click.BadParameter(f"expected NAME=VALUE, got {value!r}", param_hint=option)
    name, rest = value.split("=", 1)
    if not name.strip():
        raise click.BadParameter(f"service name must not be empty in {value!r}", param_hint=option)
    return name.strip(), rest.strip()


def parse_service_options(services: Tuple[str, ...], ports: Tuple[str, ...],
                          envs: Tuple[str, ...]) -> StaticDescriptorSource:
    """
    Build a descriptor from repeated --service, --port and --env options.

    Args:
        services: "NAME=IMAGE" values; an empty image marks a build-only service
        ports: "NAME=PORT" values
        envs: "NAME=KEY=VALUE" values
    """
    declared: List[Tuple[str, str]] = [_split_pair(s, "--service") for s in services]
    names = {name for name, _ in declared}

    port_map: Dict[str, List[int]] = {}
    for value in ports:
        name, raw = _split_pair(value, "--port")
        if name not in names:
            raise click.BadParameter(f"unknown service {name!r}", param_hint="--port")
        try:
            port_map.setdefault(name, []).append(int(raw))
        except ValueError:
            raise click.BadParameter(f"port must be an integer, got {raw!r}", param_hint="--port")

    env_map: Dict[str, Dict[str, str]] = {}
    for value in envs:
        name, assignment = _split_pair(value, "--env")
        if name not in names:
            raise click.BadParameter(f"unknown service {name!r}", param_hint="--env")
        key, val = _split_pair(assignment, "--env")
        env_map.setdefault(name, {})[key] = val

    return StaticDescriptorSource(declared, ports=port_map, environment=env_map)


def _load_settings(platform: Optional[str], location: Optional[str],
                   events_file: Optional[str], tags: Tuple[str, ...]) -> Settings:
    settings = Settings.from_env()
    overrides: Dict[str, Any] = {}
    if platform:
        overrides["platform"] = platform
    if location:
        overrides["location"] = location
    if events_file:
        overrides["events_file"] = events_file
    if tags:
        try:
            overrides["tags"] = {**settings.tags, **parse_user_tags(list(tags))}
        except ValueError as e:
            raise ConfigurationError(str(e))
    return replace(settings, **overrides)


def _observer(settings: Settings):
    observers = [LoggingObserver()]
    if settings.events_file:
        observers.append(NdjsonObserver(settings.events_file))
    return CompositeObserver(observers)


def identity_options(f):
    f = click.option("--pr", "pr_number", type=int, required=True, help="Pull request number")(f)
    f = click.option("--repo", required=True, help="Repository name")(f)
    f = click.option("--owner", required=True, help="Repository owner")(f)
    return f


def provider_options(f):
    f = click.option("--tag", "tags", multiple=True, help="Extra resource group tag key=value")(f)
    f = click.option("--events-file", help="Append NDJSON events to this file")(f)
    f = click.option("--location", help="Azure region (default: $AZURE_LOCATION or eastus)")(f)
    f = click.option("--platform", type=click.Choice(list_platforms()),
                     help="Hosting platform (default: $PULLPREVIEW_PLATFORM or container-apps)")(f)
    return f


def service_options(f):
    f = click.option("--env", "envs", multiple=True, help="Environment variable NAME=KEY=VALUE")(f)
    f = click.option("--port", "ports", multiple=True, help="Published port NAME=PORT")(f)
    f = click.option("--service", "services", multiple=True,
                     help="Service NAME=IMAGE; leave IMAGE empty for build-only services")(f)
    return f


@click.group()
@click.option("--json", "output_json", is_flag=True, help="Output machine-readable JSON")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, output_json, verbose):
    """pullpreview - per-pull-request preview environments on Azure."""
    ctx.ensure_object(dict)
    ctx.obj["json"] = output_json
    _configure_logging(verbose)


def _run(action: str, owner: str, repo: str, pr_number: int, services, ports, envs,
         platform, location, events_file, tags, keep_group: bool = False) -> None:
    if action not in DEPLOY_ACTIONS + TEARDOWN_ACTIONS:
        logger.info(f"Ignoring action {action!r}")
        _human_output(f"Ignored action {action}")
        return

    try:
        identity = EnvironmentIdentity(owner=owner, repository=repo, pr_number=pr_number)
        settings = _load_settings(platform, location, events_file, tags)
        source = parse_service_options(services, ports, envs) if services else None
        if action in DEPLOY_ACTIONS and source is None:
            raise NoDeployableServicesError()

        observer = _observer(settings)
        deployer = create_deployer(settings, observer)
        reporter = LoggingStatusReporter()

        if keep_group:
            result = destroy(identity, deployer, settings, reporter, observer, keep_group=True)
        else:
            result = handle_action(action, identity, source, deployer, settings, reporter, observer)
    except (PreviewError, AzureError) as e:
        _fail(f"{action} failed: {e}")
        return

    if isinstance(result, bool):
        if click.get_current_context().obj.get("json", False):
            _json_output({"resource_group": resource_group_name(identity), "deleted": result})
        else:
            _human_output(f"Torn down: {resource_group_name(identity)}" if result
                          else f"Nothing to tear down for {identity.slug}")
    else:
        if click.get_current_context().obj.get("json", False):
            _json_output({"url": result.url, "resource_group": result.resource_group_name})
        else:
            _human_output(f"Preview URL: {result.url}")
            _human_output(f"Resource group: {result.resource_group_name}")


@main.command()
@identity_options
@service_options
@provider_options
def deploy(owner, repo, pr_number, services, ports, envs, platform, location, events_file, tags):
    """Deploy or update the preview environment for a pull request."""
    _run("opened", owner, repo, pr_number, services, ports, envs, platform, location, events_file, tags)


@main.command()
@identity_options
@provider_options
@click.option("--keep-group", is_flag=True, help="Delete only the application, keep the resource group")
def teardown(owner, repo, pr_number, platform, location, events_file, tags, keep_group):
    """Delete the preview environment for a pull request."""
    _run("closed", owner, repo, pr_number, (), (), (), platform, location, events_file, tags,
         keep_group=keep_group)


@main.command()
@click.option("--action", required=True, help="Pull request action: opened, synchronize, reopened or closed")
@identity_options
@service_options
@provider_options
def run(action, owner, repo, pr_number, services, ports, envs, platform, location, events_file, tags):
    """Deploy or tear down depending on the pull request action."""
    _run(action, owner, repo, pr_number, services, ports, envs, platform, location, events_file, tags)


@main.command()
@identity_options
def names(owner, repo, pr_number):
    """Print the resource names derived for a pull request."""
    try:
        identity = EnvironmentIdentity(owner=owner, repository=repo, pr_number=pr_number)
        data = {
            "resource_group": resource_group_name(identity),
            "dns_label": dns_label(identity),
            "application": application_name(identity),
            "environment": environment_name(application_name(identity)),
            "dns_label_fallback": uses_fallback_dns_label(identity),
        }
    except PreviewError as e:
        _fail(str(e))
        return

    if click.get_current_context().obj.get("json", False):
        _json_output(data)
        return
    for key, value in data.items():
        _human_output(f"{key}: {value}")
    if data["dns_label_fallback"]:
        logger.warning("DNS label fell back to the PR number only and may collide across repositories")


@main.command()
@click.argument("events_file", type=click.Path(dir_okay=False))
def status(events_file):
    """Derive the environment status from an NDJSON event log."""
    events = read_events(events_file)
    current = status_from_events(events)
    last = events[-1] if events else None

    if click.get_current_context().obj.get("json", False):
        _json_output({"status": current, "events": len(events), "last_event": last})
        return
    _human_output(f"Status: {current}")
    _human_output(f"Events: {len(events)}")
    if last:
        _human_output(f"Last event: {last.get('type')} at {last.get('ts')}")


if __name__ == "__main__":
    main()
