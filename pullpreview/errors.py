"""
Exception hierarchy for preview environment operations.
"""

from typing import Any, Dict, Optional


class PreviewError(Exception):
    """Base exception for pullpreview."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(PreviewError):
    """Invalid input or settings; raised before any remote call."""


class NamingError(ConfigurationError):
    """A generated resource name violates a provider constraint."""

    def __init__(self, message: str, name: str, limit: int):
        super().__init__(message, {"name": name, "length": len(name), "limit": limit})
        self.name = name
        self.limit = limit


class NoDeployableServicesError(ConfigurationError):
    """Every declared service is build-only."""

    def __init__(self, skipped: Optional[list] = None):
        super().__init__(
            "no deployable services found (all have build configs)",
            {"skipped": list(skipped or [])},
        )


class RetryBudgetExceededError(PreviewError):
    """Transient failures kept happening until the retry budget ran out."""

    def __init__(self, operation: str, budget: float, last_error: BaseException):
        super().__init__(
            f"{operation} failed after retrying for {budget:.0f}s: {last_error}",
            {"operation": operation, "budget": budget},
        )
        self.operation = operation
        self.budget = budget
        self.last_error = last_error


class DeploymentTimeoutError(PreviewError):
    """The caller's overall deadline passed."""


class ProvisioningError(PreviewError):
    """The provider finished an operation but returned an unusable resource."""


class EndpointError(PreviewError):
    """The public endpoint could not be read from a deployed resource."""


class NoNetworkPropertiesError(EndpointError):
    """The deployed resource carries no network configuration at all."""


class NoAddressError(EndpointError):
    """The resource has network configuration but no assigned address."""


class NoFqdnError(EndpointError):
    """An address was assigned but no fully qualified domain name."""
