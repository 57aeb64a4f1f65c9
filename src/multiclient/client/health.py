"""Single-endpoint health probes.

:class:`HealthProbe` answers "is this address healthy?" for one endpoint:

* Without a health-check path it opens a TCP connection to the address's
  ``host:port`` (scheme and path stripped) within the probe timeout.
* With a path it sends ``<method> <path>`` with the configured raw body to
  that address and reports healthy when the response body matches the
  configured regular expression.

A probe never raises. One bad endpoint must not abort a scan of the whole
pool, so every failure is logged at debug level and reported as unhealthy.
"""

from __future__ import annotations

import logging
import re
import socket
from typing import Optional

import httpx

from multiclient.client.request import MultiClientRequest, RequestDescriptor
from multiclient.exceptions import MultiClientError
from multiclient.models import BodyType, HealthCheckConfig

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}


def socket_address(address: str) -> tuple[str, int]:
    """Split an endpoint address into the ``(host, port)`` to dial.

    Any ``scheme://`` prefix and path are dropped. A missing port falls back
    to the scheme's default.

    Raises:
        ValueError: If no port is given and the scheme has no default.

    Example::

        >>> socket_address("http://10.0.0.1:8080/api")
        ('10.0.0.1', 8080)
        >>> socket_address("https://[::1]")
        ('::1', 443)
    """
    scheme = ""
    rest = address
    if "://" in address:
        scheme, rest = address.split("://", 1)
    rest = rest.split("/", 1)[0]

    host, sep, port = rest.rpartition(":")
    if not sep or "]" in port:
        host, port = rest, ""
    host = host.strip("[]")

    if not port:
        default = DEFAULT_PORTS.get(scheme.lower())
        if default is None:
            raise ValueError(f"No port in address {address!r}")
        return host, default
    return host, int(port)


class HealthProbe:
    """Default health probe used by :class:`~multiclient.client.MultiClient`.

    Args:
        client: Transport for HTTP probes. ``None`` uses the shared default.
    """

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client

    def __call__(self, address: str, config: HealthCheckConfig) -> bool:
        if not config.path:
            return self.check_tcp(address, config.timeout)
        return self.check_http(address, config)

    def check_tcp(self, address: str, timeout: float) -> bool:
        """Return whether a TCP connection to *address* completes within *timeout*."""
        try:
            host, port = socket_address(address)
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except (OSError, ValueError) as exc:
            logger.debug("TCP probe of %s failed: %s", address, exc)
            return False

    def check_http(self, address: str, config: HealthCheckConfig) -> bool:
        """Return whether the health-check response body of *address* matches."""
        try:
            pattern = re.compile(config.match)
        except re.error as exc:
            logger.debug("Invalid health check pattern %r: %s", config.match, exc)
            return False

        try:
            descriptor = RequestDescriptor.build(
                config.method, config.path or "", config.body, BodyType.RAW
            )
            descriptor.set_base_url(address)
            response = MultiClientRequest(
                client=self._client, timeout=config.timeout
            ).perform(descriptor)
            body = response.text
        except (MultiClientError, ValueError) as exc:
            logger.debug("HTTP probe of %s failed: %s", address, exc)
            return False

        if pattern.search(body) is None:
            logger.debug("HTTP probe of %s: body did not match %r", address, config.match)
            return False
        return True
