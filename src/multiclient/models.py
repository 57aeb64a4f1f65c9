"""Canonical Pydantic models shared across multiclient modules.

**Configuration models** -- serialised as JSON in the user's config
directory, or loaded from a JSON/YAML pool file:
    :class:`HealthCheckConfig`, :class:`PoolConfig`, :class:`OutputConfig`
    and :class:`GlobalConfig`.

**Request enums** -- :class:`HTTPMethod` and :class:`BodyType`, used by the
request pipeline in :mod:`multiclient.client`.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_HEALTHCHECK_TIMEOUT = 10.0
"""Seconds a single health probe may take before the endpoint counts as down."""


class HTTPMethod(str, enum.Enum):
    """HTTP methods the request pipeline is able to send."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"
    PATCH = "PATCH"


class BodyType(str, enum.Enum):
    """How a request payload is framed on the wire.

    ``RAW`` sends the payload bytes as-is, ``XML`` wraps them in one XML
    element, ``JSON`` serialises a structured value and ``FORM`` URL-encodes
    a mapping of fields.
    """

    RAW = "raw"
    XML = "xml"
    JSON = "json"
    FORM = "form"


# --- Pool config ---


class HealthCheckConfig(BaseModel):
    """How a single endpoint is probed.

    When ``path`` is unset the probe is a bare TCP connect to the
    endpoint's ``host:port``. Otherwise an HTTP request is sent and the
    endpoint is healthy when the response body matches ``match``.
    """

    path: Optional[str] = Field(
        default=None, description="HTTP path to probe; unset means a TCP connect"
    )
    method: str = Field(default="GET", description="HTTP method for the probe")
    body: Optional[str] = Field(default=None, description="Raw request body for the probe")
    match: str = Field(
        default="", description="Regular expression the probe response body must match"
    )
    timeout: float = Field(
        default=DEFAULT_HEALTHCHECK_TIMEOUT, gt=0, description="Probe timeout in seconds"
    )

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()


class PoolConfig(BaseModel):
    """A named pool of interchangeable endpoints and how to talk to them.

    Stored as ``<config_dir>/pools/<name>.json`` and managed with
    ``multiclient pool``. Extra keys are preserved in ``model_extra``.

    Example::

        PoolConfig(
            name="users-api",
            addresses=["http://10.0.0.1:8080", "http://10.0.0.2:8080"],
            health_checks=True,
            health_check=HealthCheckConfig(path="/health", match="ok"),
        )
    """

    model_config = ConfigDict(extra="allow")

    name: str = "default"
    addresses: list[str] = Field(default_factory=list, description="Ordered base URLs")
    health_checks: bool = Field(
        default=False, description="Select only from endpoints that passed the last probe"
    )
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)
    retry_limit: int = Field(default=1, ge=0, description="Attempts per request")
    default_body_type: BodyType = BodyType.JSON
    default_headers: dict[str, str] = Field(default_factory=dict)
    default_query: dict[str, Any] = Field(default_factory=dict)
    timeout: float = Field(default=30.0, gt=0, description="Transport timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    probe_concurrency: int = Field(
        default=1, ge=1, description="Parallel probes per scan; 1 scans sequentially"
    )


# --- Global config ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/multiclient/config.json``.

    See :func:`~multiclient.config.resolve_pool` for how ``default_pool``
    interacts with environment variables and CLI flags.
    """

    default_pool: Optional[str] = None
    auto_select_single_pool: bool = True
    output: OutputConfig = Field(default_factory=OutputConfig)
