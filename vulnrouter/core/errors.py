"""Vulnerability Router error hierarchy."""

from typing import Any


class VulnRouterError(Exception):
    """Base exception for Vulnerability Router errors."""

    code = "VULN_ROUTER_INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(VulnRouterError):
    """Invalid request parameters."""

    code = "VULN_ROUTER_INVALID_REQUEST"
    status_code = 400


class InvalidRoutingRuleError(ValidationError):
    """A routing rule write names an unknown category or severity threshold."""

    code = "VULN_ROUTER_INVALID_ROUTING_RULE"
    status_code = 400

    def __init__(
        self,
        message: str,
        category: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details={**(details or {}), "category": category})
        self.category = category


class DependencyError(VulnRouterError):
    """External dependency failure, such as an unreachable Pub/Sub subscription."""

    code = "VULN_ROUTER_DEPENDENCY_FAILURE"
    status_code = 502


ERROR_STATUS_MAP: dict[type[VulnRouterError], int] = {
    ValidationError: 400,
    InvalidRoutingRuleError: 400,
    DependencyError: 502,
}


def get_status_code(error: VulnRouterError) -> int:
    """Get HTTP status code for error."""
    return ERROR_STATUS_MAP.get(type(error), 500)
