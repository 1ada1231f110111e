"""Exception hierarchy for Relay.

All Relay exceptions inherit from ``RelayError`` so callers can catch
broadly or narrowly. Only ``ConfigurationError`` is allowed to escape the
orchestration core; launch and poll failures are recovered where they
happen (dispatcher and poller respectively).
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all Relay errors."""


class ConfigurationError(RelayError):
    """Missing credential, unreadable catalog, or invalid settings.

    Fatal at startup and never retried. Raised inside a scheduler loop it
    halts every loop.
    """


class BackendError(RelayError):
    """A call to the agent backend failed.

    Carries an HTTP-like ``status_code``: the response status for HTTP
    errors, 408 for timeouts, 503 when the backend could not be reached.
    """

    def __init__(self, status_code: int, message: str, *, operation: str = "") -> None:
        self.status_code = status_code
        self.message = message
        self.operation = operation
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}{status_code} {message}")

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class LaunchError(RelayError):
    """Creating a remote job for a task failed; triggers the retry policy."""

    def __init__(self, description: str, cause: BaseException) -> None:
        self.description = description
        self.cause = cause
        super().__init__(f"launch failed for {description!r}: {cause}")


class RegistrationError(RelayError):
    """The backend accepted a job but it could not be recorded locally.

    The remote job may exist, so the task is dropped rather than
    relaunched.
    """

    def __init__(self, description: str, job_id: str | None, cause: BaseException) -> None:
        self.description = description
        self.job_id = job_id
        self.cause = cause
        super().__init__(f"could not register job {job_id} for {description!r}: {cause}")


class PollError(RelayError):
    """Refreshing one job's status failed; retried on the next poll cycle."""

    def __init__(self, job_id: str, cause: BaseException) -> None:
        self.job_id = job_id
        self.cause = cause
        super().__init__(f"status refresh failed for job {job_id}: {cause}")


class ExhaustedRetryError(RelayError):
    """A task ran out of launch attempts and was dropped.

    Recorded as a permanent failure; never raised to callers.
    """

    def __init__(self, description: str, attempts: int, last_error: str) -> None:
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"dropped {description!r} after {attempts} attempts: {last_error}"
        )


__all__ = [
    "BackendError",
    "ConfigurationError",
    "ExhaustedRetryError",
    "LaunchError",
    "PollError",
    "RegistrationError",
    "RelayError",
]
