"""
Custom exceptions for the lattice CLI.

This module defines the exception hierarchy for client-side errors:
- Network and authorization failures talking to the receptor
- Missing or duplicate workloads and tasks
- Invalid user input (flags, image references, reserved names)
- Errors returned by the remote control plane
- Local persistence failures

Every exception carries a message and an optional details dict so the
command layer can print ``Error <context>: <cause>`` and log the rest.
"""

from typing import Any


class LatticeError(Exception):
    """
    Base exception for all lattice CLI errors.

    Parameters
    ----------
    message : str
        Human-readable error message
    details : dict[str, Any], optional
        Structured error details for logging/debugging

    Examples
    --------
    >>> error = LatticeError("Something broke", details={"app": "myapp"})
    >>> error.message
    'Something broke'
    >>> error.details["app"]
    'myapp'
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NetworkUnreachableError(LatticeError):
    """
    Raised when a remote endpoint cannot be reached at all.

    Examples include:
    - DNS resolution failure for receptor.<target>
    - Connection refused or reset
    - Request timeout
    """

    pass


class UnauthorizedError(LatticeError):
    """Raised when the receptor rejects the configured credentials."""

    pass


class NotFoundError(LatticeError):
    """
    Base exception for missing remote resources.

    Workload and task lookups raise the specific subclasses; the
    command layer folds them into a single user-facing message.
    """

    pass


class AppNotFoundError(NotFoundError):
    """Raised when no desired workload exists with the given name."""

    pass


class TaskNotFoundError(NotFoundError):
    """Raised when no task exists with the given guid."""

    pass


class AlreadyExistsError(LatticeError):
    """
    Raised when creating a resource whose guid is already taken.

    Examples include:
    - ``ltc create`` for an app that is already desired
    - ``ltc submit-task`` with a task guid that was submitted before
    """

    pass


class InvalidUserInputError(LatticeError):
    """
    Raised for malformed user input.

    Examples include:
    - Malformed flags or arguments
    - Environment variable pairs that cannot be parsed
    - Invalid CPU weight
    """

    pass


class ReservedNameError(InvalidUserInputError):
    """Raised when the user tries to use the reserved debug log guid."""

    pass


class MalformedImageReferenceError(InvalidUserInputError):
    """Raised when a docker image reference cannot be parsed."""

    pass


class MalformedRouteError(InvalidUserInputError):
    """Raised when a route override is not ``hostname:port``."""

    pass


class InvariantViolationError(LatticeError):
    """
    Raised when a request would break a workload invariant.

    Examples include:
    - Monitored port not among the exposed ports
    """

    pass


class RemoteRejectedError(LatticeError):
    """
    Raised when the receptor answers with an error not otherwise classified.

    The receptor error name (e.g. ``InvalidLRP``, ``RouterError``) is kept
    in :attr:`error_type` so callers can branch on it.
    """

    def __init__(
        self,
        message: str,
        error_type: str = "UnknownError",
        details: dict[str, Any] | None = None,
    ):
        self.error_type = error_type
        super().__init__(message, details=details)


class DockerMetadataError(LatticeError):
    """
    Raised when image metadata cannot be fetched from a docker registry.

    Examples include:
    - Unknown tag
    - Registry unreachable
    - Image config JSON that cannot be parsed
    """

    pass


class PersistenceError(LatticeError):
    """Raised when the config file cannot be read or written."""

    pass
