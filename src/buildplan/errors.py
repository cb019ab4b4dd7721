"""Exception types for Buildplan.

Validation and not-found errors propagate to the caller and abort the
operation. RecalculationFailure is only ever logged or returned as part of a
mutation result; it never fails the write that triggered it.
"""

from __future__ import annotations

from uuid import UUID


class BuildplanError(Exception):
    """Base class for all Buildplan errors."""


class ValidationError(BuildplanError):
    """Raised when input is malformed or violates a scheduling invariant.

    Attributes:
        errors: Individual human-readable error messages.
    """

    def __init__(self, errors: str | list[str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ParseError(ValidationError, ValueError):
    """Raised when a date value cannot be parsed.

    Attributes:
        value: The offending input value.
    """

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid date format: {value!r}")


class NotFoundError(BuildplanError):
    """Raised when a referenced entity does not exist or is not visible to the tenant.

    Attributes:
        resource: Kind of entity ("Project", "Phase", ...).
        resource_id: Identifier that was looked up, if known.
    """

    def __init__(self, resource: str = "Resource", resource_id: UUID | str | None = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class RecalculationFailure(BuildplanError):
    """Wraps any error raised while recalculating a phase duration.

    Attributes:
        phase_id: The phase that was being recalculated.
        cause: The underlying exception.
    """

    def __init__(self, phase_id: UUID, cause: BaseException):
        self.phase_id = phase_id
        self.cause = cause
        super().__init__(f"Failed to recalculate phase {phase_id}: {cause}")
