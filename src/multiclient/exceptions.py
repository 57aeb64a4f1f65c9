"""Exception hierarchy for multiclient.

All exceptions inherit from :class:`MultiClientError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`multiclient.exit_codes`. The CLI entry point in
:func:`multiclient.app.main` catches ``MultiClientError`` and exits with
the appropriate code.

The hierarchy mirrors how the retry driver treats each failure class::

    MultiClientError (exit 1)
    +-- ConfigurationError        (exit 2)   never retried
    |   +-- UnsupportedMethodError
    |   +-- PayloadError
    |   +-- ConfigError
    +-- HealthCheckError          (exit 3)   raised by check_* policies
    |   +-- InsufficientHealthyError
    |   +-- ClientSuspendedError
    +-- SelectionError            (exit 4)   aborts the retry loop
    |   +-- NoHealthyAddressError
    |   +-- NoAddressesError
    +-- TransientRequestError     (exit 5)   retried up to the limit
    |   +-- HookError
    |   +-- TransportError        (exit 6)
    |   +-- DecodeError
    +-- RetryLimitExceededError   (exit 5)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from multiclient.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NO_ADDRESS,
    EXIT_REQUEST_FAILED,
    EXIT_UNHEALTHY,
)

if TYPE_CHECKING:
    import httpx


class MultiClientError(Exception):
    """Base exception for all multiclient errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`multiclient.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


# --- Configuration ---


class ConfigurationError(MultiClientError):
    """Raised for structural mistakes that no retry can fix."""

    exit_code = EXIT_INVALID_USAGE


class UnsupportedMethodError(ConfigurationError):
    """Raised when the HTTP method is not one of GET/POST/PUT/DELETE/HEAD/PATCH."""


class PayloadError(ConfigurationError):
    """Raised when a payload's shape cannot be encoded as the requested body type."""


class ConfigError(ConfigurationError):
    """Raised for configuration file problems (missing pools, invalid JSON/YAML)."""


# --- Health ---


class HealthCheckError(MultiClientError):
    """Base class for failed health check policies."""

    exit_code = EXIT_UNHEALTHY


class InsufficientHealthyError(HealthCheckError):
    """Raised when fewer endpoints passed than the policy requires.

    Attributes:
        wanted: Number of healthy endpoints the policy asked for.
        found: Number of endpoints that passed the probe.
    """

    def __init__(self, wanted: int, found: int):
        super().__init__(
            "Not enough healthy addresses configured to meet requested minimum: "
            f"want {wanted}, have {found}"
        )
        self.wanted = wanted
        self.found = found


class ClientSuspendedError(HealthCheckError):
    """Raised when a health check runs while the client is suspended."""


# --- Selection ---


class SelectionError(MultiClientError):
    """Base class for failures to pick an address from the pool."""

    exit_code = EXIT_NO_ADDRESS


class NoHealthyAddressError(SelectionError):
    """Raised when health checks are enabled and no healthy address is known."""


class NoAddressesError(SelectionError):
    """Raised when health checks are disabled and the pool is empty."""


# --- Per-attempt failures ---


class TransientRequestError(MultiClientError):
    """Base class for failures of a single attempt; the retry driver retries these."""

    exit_code = EXIT_REQUEST_FAILED


class HookError(TransientRequestError):
    """Raised when a pre-request hook aborts the request."""


class TransportError(TransientRequestError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class DecodeError(TransientRequestError):
    """Raised when the response body cannot be decoded into the sink.

    The server was reached, so the transport-level response is attached
    for callers that want to inspect status and headers anyway.

    Attributes:
        response: The :class:`httpx.Response` whose body failed to decode.
    """

    def __init__(self, message: str, response: Optional[httpx.Response] = None):
        super().__init__(message)
        self.response = response


class RetryLimitExceededError(MultiClientError):
    """Raised when the retry loop ends without any attempt recording an error."""

    exit_code = EXIT_REQUEST_FAILED
