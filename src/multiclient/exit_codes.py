"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~multiclient.exceptions.MultiClientError` subclass.
Shell wrappers can inspect the exit code of ``multiclient check`` to tell
"not enough healthy endpoints" apart from a configuration mistake without
parsing stderr.

Example::

    $ multiclient --pool api check quorum
    $ echo $?
    3   # EXIT_UNHEALTHY -- quorum was not reached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration."""

EXIT_UNHEALTHY = 3
"""A health check did not find enough healthy endpoints."""

EXIT_NO_ADDRESS = 4
"""No address could be selected from the pool."""

EXIT_REQUEST_FAILED = 5
"""Every request attempt failed."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
