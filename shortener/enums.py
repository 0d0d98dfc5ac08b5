"""Shared enums for the short-link lifecycle service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "LinkStatus", "AccessDenial", "ErrorKind", "AccessOutcome"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class LinkStatus(StrEnum):
    """Lifecycle state of a short link. Everything but ACTIVE is terminal."""

    ACTIVE = "active"
    EXPIRED = "expired"
    LIMIT_EXCEEDED = "limit_exceeded"
    INACTIVE = "inactive"


class AccessDenial(StrEnum):
    """Why an access attempt was refused."""

    EXPIRED = "expired"
    LIMIT_EXCEEDED = "limit_exceeded"
    INACTIVE = "inactive"

    @property
    def message(self) -> str:
        return _DENIAL_MESSAGES[self]


_DENIAL_MESSAGES = {
    AccessDenial.EXPIRED: "URL has expired",
    AccessDenial.LIMIT_EXCEEDED: "Click limit exceeded",
    AccessDenial.INACTIVE: "URL is inactive",
}


class ErrorKind(StrEnum):
    """Caller-visible failure kinds returned by lifecycle operations."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    NOT_ACCESSIBLE = "not_accessible"
    FORBIDDEN = "forbidden"
    INVALID_STATE = "invalid_state"
    STORAGE_FAILURE = "storage_failure"


class AccessOutcome(StrEnum):
    """Access outcome label values for metrics."""

    GRANTED = "granted"
    LIMIT_REACHED = "limit_reached"
    DENIED = "denied"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    ERROR = "error"
