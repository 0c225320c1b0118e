"""
Deployment event observers and NDJSON event logs.

The deployer never logs directly: every step reports through an observer
passed in by the caller, so tests can inspect the exact sequence of events.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class EventTypes:
    DEPLOY_START = "DEPLOY_START"
    STATE_CHANGED = "STATE_CHANGED"
    RETRY = "RETRY"
    GROUP_ENSURED = "GROUP_ENSURED"
    ENVIRONMENT_READY = "ENVIRONMENT_READY"
    APP_SUBMITTED = "APP_SUBMITTED"
    DONE = "DONE"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"
    # Rollback of a failed deployment
    ROLLBACK_START = "ROLLBACK_START"
    ROLLBACK_DONE = "ROLLBACK_DONE"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    # Teardown
    DESTROY_START = "DESTROY_START"
    DESTROY_DONE = "DESTROY_DONE"
    # Inputs and reporting
    SERVICE_SKIPPED = "SERVICE_SKIPPED"
    NAMING_FALLBACK = "NAMING_FALLBACK"
    REPORT_FAILED = "REPORT_FAILED"


_WARNING_EVENTS = {
    EventTypes.RETRY,
    EventTypes.ROLLBACK_START,
    EventTypes.NAMING_FALLBACK,
    EventTypes.REPORT_FAILED,
    EventTypes.TIMEOUT,
}
_ERROR_EVENTS = {EventTypes.ERROR, EventTypes.ROLLBACK_FAILED}


class DeploymentObserver:
    """Receives events emitted while deploying or tearing down."""

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class NullObserver(DeploymentObserver):
    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        pass


class LoggingObserver(DeploymentObserver):
    """Forwards events to a standard library logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if event_type in _ERROR_EVENTS:
            level = logging.ERROR
        elif event_type in _WARNING_EVENTS:
            level = logging.WARNING
        elif event_type == EventTypes.STATE_CHANGED:
            level = logging.DEBUG
        else:
            level = logging.INFO
        fields = " ".join(f"{key}={value}" for key, value in data.items())
        self.log.log(level, f"{event_type} {fields}".rstrip())


class NdjsonObserver(DeploymentObserver):
    """
    Appends every event to an NDJSON file.

    Args:
        path: File to append to; parent directories are created on demand
    """

    def __init__(self, path):
        self.path = Path(path)

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "data": data,
        }
        with open(self.path, "a") as f:
            f.write(json.dumps(event, default=str) + "\n")
            f.flush()


class GuardedObserver(DeploymentObserver):
    """
    Wraps an observer so that a failing emit is logged instead of raised.

    Recording an event must never interrupt a deployment or its rollback,
    e.g. when the NDJSON log sits on a full disk.
    """

    def __init__(self, observer: DeploymentObserver):
        self.observer = observer

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        try:
            self.observer.emit(event_type, data)
        except Exception as e:
            logger.warning(f"Failed to record {event_type} event: {e}")


def guarded(observer: Optional[DeploymentObserver]) -> DeploymentObserver:
    """Return observer wrapped in a GuardedObserver; None gives a NullObserver."""
    if observer is None:
        return NullObserver()
    if isinstance(observer, (GuardedObserver, NullObserver)):
        return observer
    return GuardedObserver(observer)


class CompositeObserver(DeploymentObserver):
    """Fans each event out to several observers."""

    def __init__(self, observers: Iterable[DeploymentObserver]):
        self.observers = list(observers)

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        for observer in self.observers:
            observer.emit(event_type, data)


def read_events(path) -> List[Dict[str, Any]]:
    """
    Read all events from an NDJSON event log.

    Args:
        path: Event log written by NdjsonObserver

    Returns:
        List of events, oldest first; malformed lines are skipped
    """
    path = Path(path)
    if not path.exists():
        return []

    events = []
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return events


def status_from_events(events: List[Dict[str, Any]]) -> str:
    """
    Determine the environment status from its event log.

    Args:
        events: Events as returned by read_events

    Returns:
        Status string
    """
    status_map = {
        EventTypes.DEPLOY_START: "deploying",
        EventTypes.GROUP_ENSURED: "deploying",
        EventTypes.ENVIRONMENT_READY: "deploying",
        EventTypes.APP_SUBMITTED: "provisioning",
        EventTypes.DONE: "healthy",
        EventTypes.ERROR: "failed",
        EventTypes.TIMEOUT: "timed_out",
        EventTypes.ROLLBACK_START: "rolling_back",
        EventTypes.ROLLBACK_DONE: "rolled_back",
        EventTypes.ROLLBACK_FAILED: "failed",
        EventTypes.DESTROY_START: "destroying",
        EventTypes.DESTROY_DONE: "destroyed",
    }

    # Informational events (retries, skipped services) don't change status
    for event in reversed(events):
        status = status_map.get(event.get("type", ""))
        if status:
            return status
    return "unknown"
