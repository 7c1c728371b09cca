# ============================================================================
# HEALTH CHECK ERRORS
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Error taxonomy
# PURPOSE: Errors surfaced to registering collaborators and callers
# CREATED: 19 OCT 2026
# ============================================================================
"""
Health Check Errors

Only misuse surfaces as an exception. Probe faults and timeouts are
converted to results and reported through status values.

    HealthCheckError
    ├── RegistrationError (ValueError)
    │   ├── DuplicateProbeError
    │   └── InvalidScheduleError
    ├── TagFilterError (ValueError)
    └── UnknownProbeError (KeyError)
"""


class HealthCheckError(Exception):
    """Base class for executor errors."""


class RegistrationError(HealthCheckError, ValueError):
    """A probe registration was rejected."""


class DuplicateProbeError(RegistrationError):
    """A probe with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Probe already registered: {name}")
        self.name = name


class InvalidScheduleError(RegistrationError):
    """A schedule expression could not be parsed."""

    def __init__(self, expression: str, reason: str):
        super().__init__(f"Invalid schedule expression {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


class TagFilterError(HealthCheckError, ValueError):
    """A tag filter is malformed."""


class UnknownProbeError(HealthCheckError, KeyError):
    """No probe is registered under the given name."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Probe not registered: {self.name}"


__all__ = [
    "HealthCheckError",
    "RegistrationError",
    "DuplicateProbeError",
    "InvalidScheduleError",
    "TagFilterError",
    "UnknownProbeError",
]
