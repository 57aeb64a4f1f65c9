"""multiclient -- client-side load balancing over a pool of HTTP endpoints.

A :class:`~multiclient.client.MultiClient` holds an ordered pool of
interchangeable backend addresses, tracks which of them are reachable
through a pluggable health probe, picks one per request and retries
against a freshly selected address when an attempt fails.

Typical usage::

    from multiclient import MultiClient, ResultSink

    client = MultiClient("http://10.0.0.1:8080", "http://10.0.0.2:8080")
    client.health_checks = True
    client.check_quorum()

    users = ResultSink()
    client.request("GET", "/users", success=users)
    print(users.value)

Modules:
    app: Typer application and CLI entry point.
    client: The multi-endpoint client, request pipeline and decoders.
    models: Pydantic models for pool configuration.
    config: XDG-aware configuration and saved pool management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"

from multiclient.client import (  # noqa: E402
    MultiClient,
    MultiClientRequest,
    RequestDescriptor,
    ResponseDecoder,
    ResultSink,
)
from multiclient.models import BodyType, HealthCheckConfig, PoolConfig  # noqa: E402

__all__ = [
    "BodyType",
    "HealthCheckConfig",
    "MultiClient",
    "MultiClientRequest",
    "PoolConfig",
    "RequestDescriptor",
    "ResponseDecoder",
    "ResultSink",
    "__version__",
]
