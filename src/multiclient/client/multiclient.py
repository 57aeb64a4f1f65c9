"""Health tracking, address selection, and the retry driver.

:class:`MultiClient` owns an ordered pool of endpoint addresses and a
*health snapshot*: the pool indices that passed the most recent probe
round. One exclusive lock guards the snapshot. A sequential scan holds it
for the whole scan, so readers never observe a half-built snapshot. Readers
only ever get copies of resolved addresses, never the index list.

With ``probe_concurrency > 1`` probes run in a thread pool without holding
the snapshot lock; a separate scan lock serialises scans and the snapshot
lock covers only the final swap.

:meth:`MultiClient.request` picks an address per attempt and delegates
the actual call to :class:`~multiclient.client.request.MultiClientRequest`.
"""

from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import httpx

from multiclient.client.decoders import ResponseDecoder, ResultSink
from multiclient.client.health import HealthProbe
from multiclient.client.hooks import DescriptorHook, ImmediateHook
from multiclient.client.request import MultiClientRequest, RequestDescriptor
from multiclient.exceptions import (
    ClientSuspendedError,
    InsufficientHealthyError,
    NoAddressesError,
    NoHealthyAddressError,
    RetryLimitExceededError,
    TransientRequestError,
)
from multiclient.models import BodyType, HealthCheckConfig, PoolConfig

logger = logging.getLogger(__name__)

Probe = Callable[[str, HealthCheckConfig], bool]


class MultiClient:
    """Load-balancing HTTP client over a pool of interchangeable endpoints.

    Args:
        *addresses: Ordered endpoint base URLs (``scheme://host:port``).
        client: Transport for requests and HTTP probes. ``None`` uses the
            shared default :class:`httpx.Client`.
        response_decoder: Content-type dispatcher used for every request.

    Attributes:
        health_checks: When ``True`` only addresses in the health snapshot
            are selected.
        health_check: Probe settings (path, method, body, match, timeout).
        retry_limit: Attempts per :meth:`request`.
        default_body_type: Body framing for request payloads.
        default_headers: Headers merged into every request.
        default_query: Query parameters merged into every request.
        early_hooks: Descriptor hooks run before per-call hooks.
        late_hooks: Descriptor hooks run after per-call hooks.
        immediate_hooks: Hooks run on every materialised request.
        probe: Callable ``(address, health_check) -> bool``; replace it to
            plug in a different health probe.
        probe_concurrency: Parallel probes per scan; ``1`` scans sequentially.

    Example::

        with MultiClient("http://a:8080", "http://b:8080") as client:
            client.health_checks = True
            client.check_one()
            client.request("GET", "/status", success=ResultSink())
    """

    def __init__(
        self,
        *addresses: str,
        client: Optional[httpx.Client] = None,
        response_decoder: Optional[ResponseDecoder] = None,
    ) -> None:
        self._addresses: tuple[str, ...] = tuple(addresses)
        self._client = client
        self._owns_client = False
        self.response_decoder = response_decoder or ResponseDecoder()

        self.health_checks = False
        self.health_check = HealthCheckConfig()
        self.retry_limit = 1
        self.default_body_type = BodyType.JSON
        self.default_headers: dict[str, str] = {}
        self.default_query: dict[str, Any] = {}
        self.early_hooks: list[DescriptorHook] = []
        self.late_hooks: list[DescriptorHook] = []
        self.immediate_hooks: list[ImmediateHook] = []
        self.probe: Probe = HealthProbe(client)
        self.probe_concurrency = 1

        self._healthy: list[int] = []
        self._active = True
        self._lock = threading.Lock()
        self._scan_lock = threading.Lock()
        self._random = random.Random()

    @classmethod
    def from_config(
        cls,
        config: PoolConfig,
        client: Optional[httpx.Client] = None,
    ) -> MultiClient:
        """Build a client from a :class:`~multiclient.models.PoolConfig`.

        When *client* is ``None`` a transport honouring the pool's
        ``timeout`` and ``verify_ssl`` is created and closed by
        :meth:`close`.
        """
        owns = client is None
        if client is None:
            client = httpx.Client(timeout=config.timeout, verify=config.verify_ssl)
        multi = cls(*config.addresses, client=client)
        multi._owns_client = owns
        multi.health_checks = config.health_checks
        multi.health_check = config.health_check.model_copy()
        multi.retry_limit = config.retry_limit
        multi.default_body_type = config.default_body_type
        multi.default_headers = dict(config.default_headers)
        multi.default_query = dict(config.default_query)
        multi.probe_concurrency = config.probe_concurrency
        return multi

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> MultiClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport if this instance created it."""
        if self._owns_client and self._client is not None:
            self._client.close()

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @property
    def addresses(self) -> tuple[str, ...]:
        """The endpoint pool. Assigning replaces it wholesale."""
        return self._addresses

    @addresses.setter
    def addresses(self, addresses: Any) -> None:
        self._addresses = tuple(addresses)

    def set_addresses(self, *addresses: str) -> None:
        self._addresses = tuple(addresses)

    def set_health_check_path(self, path: Optional[str]) -> None:
        self.health_check.path = path

    def set_health_check_timeout(self, timeout: float) -> None:
        self.health_check.timeout = timeout

    def set_retry_limit(self, n: int) -> None:
        self.retry_limit = n

    def set_default_body_type(self, body_type: BodyType) -> None:
        self.default_body_type = BodyType(body_type)

    # ------------------------------------------------------------------ #
    # Activation
    # ------------------------------------------------------------------ #

    @property
    def is_active(self) -> bool:
        return self._active

    def resume(self) -> None:
        """Mark the client active again. Does not probe."""
        self._active = True

    def suspend(self) -> None:
        """Mark the client suspended and flush the health snapshot."""
        self._active = False
        try:
            self.check_all()
        except ClientSuspendedError:
            logger.debug("Client suspended; health snapshot cleared")

    # ------------------------------------------------------------------ #
    # Health checks
    # ------------------------------------------------------------------ #

    def is_healthy(self, address: str) -> bool:
        """Probe one address with the current health-check settings."""
        return self.probe(address, self.health_check)

    def check_connect(self, min_successful: int) -> None:
        """Probe the pool in order until *min_successful* endpoints pass.

        The passing indices replace the health snapshot, even when there are
        too few of them.

        Raises:
            ClientSuspendedError: If the client is suspended. The snapshot
                is cleared.
            InsufficientHealthyError: If fewer than *min_successful*
                endpoints passed after probing the whole pool.
        """
        if self.probe_concurrency > 1:
            healthy = self._scan_parallel(min_successful)
        else:
            healthy = self._scan_sequential(min_successful)

        logger.debug(
            "Health scan: %d of %d addresses healthy (wanted %d)",
            len(healthy), len(self._addresses), min_successful,
        )
        if len(healthy) < min_successful:
            raise InsufficientHealthyError(min_successful, len(healthy))

    def _scan_sequential(self, min_successful: int) -> list[int]:
        with self._lock:
            if not self._active:
                self._healthy = []
                raise ClientSuspendedError("Client is not active")

            healthy: list[int] = []
            for index, address in enumerate(self._addresses):
                if self.is_healthy(address):
                    healthy.append(index)
                if len(healthy) >= min_successful:
                    break
            self._healthy = healthy
            return list(healthy)

    def _scan_parallel(self, min_successful: int) -> list[int]:
        with self._scan_lock:
            with self._lock:
                if not self._active:
                    self._healthy = []
                    raise ClientSuspendedError("Client is not active")
                addresses = self._addresses

            results: list[bool] = []
            if addresses:
                workers = min(self.probe_concurrency, len(addresses))
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    results = list(pool.map(self.is_healthy, addresses))

            healthy = [index for index, ok in enumerate(results) if ok]
            if min_successful > 0:
                healthy = healthy[:min_successful]

            with self._lock:
                if not self._active:
                    self._healthy = []
                    raise ClientSuspendedError("Client is not active")
                self._healthy = healthy
            return list(healthy)

    def check_one(self) -> None:
        """Require at least one healthy endpoint."""
        self.check_connect(1)

    def check_n(self, n: int) -> None:
        """Require at least *n* healthy endpoints."""
        self.check_connect(n)

    def check_quorum(self) -> None:
        """Require a strict majority (``len(pool) // 2 + 1``) of healthy endpoints."""
        self.check_connect(len(self._addresses) // 2 + 1)

    def check_all(self) -> None:
        """Require every endpoint in the pool to be healthy."""
        self.check_connect(len(self._addresses))

    def healthy_addresses(self) -> list[str]:
        """Return the addresses in the current health snapshot, in snapshot order."""
        with self._lock:
            addresses = self._addresses
            return [addresses[i] for i in self._healthy if i < len(addresses)]

    # ------------------------------------------------------------------ #
    # Selection
    # ------------------------------------------------------------------ #

    def select_address(self) -> str:
        """Pick an address uniformly at random.

        With health checks enabled the choice is made among the health
        snapshot, otherwise among the whole pool.

        Raises:
            NoHealthyAddressError: If the snapshot is empty or the chosen
                index no longer fits the pool.
            NoAddressesError: If health checks are off and the pool is empty.
        """
        if self.health_checks:
            with self._lock:
                if not self._healthy:
                    raise NoHealthyAddressError("No healthy addresses found")
                index = self._random.choice(self._healthy)
                addresses = self._addresses
            if index >= len(addresses):
                raise NoHealthyAddressError("No healthy addresses found")
            return addresses[index]

        addresses = self._addresses
        if not addresses:
            raise NoAddressesError("No addresses found")
        return self._random.choice(addresses)

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        success: Optional[ResultSink] = None,
        failure: Optional[ResultSink] = None,
        *hooks: DescriptorHook,
        immediate_hooks: tuple[ImmediateHook, ...] = (),
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send a request to a selected endpoint, retrying on failure.

        Each of up to :attr:`retry_limit` attempts selects an address
        afresh (it may be the one that just failed) and performs the call.

        Args:
            method: HTTP method.
            path: Path relative to the selected endpoint.
            payload: Request body value, framed by :attr:`default_body_type`.
            success: Sink for responses with status < 400.
            failure: Sink for responses with status >= 400.
            *hooks: Per-call descriptor hooks, run between the early and
                late hooks.
            immediate_hooks: Per-call hooks for the materialised request.
            headers: Per-call headers, overriding :attr:`default_headers`.
            params: Per-call query parameters, overriding
                :attr:`default_query`.

        Returns:
            The response of the first attempt that succeeded.

        Raises:
            ConfigurationError: For unsupported methods or payload shapes.
            SelectionError: If no address can be selected; not retried.
            TransientRequestError: The last attempt's error when every
                attempt failed.
            RetryLimitExceededError: If ``retry_limit`` allowed no attempt.
        """
        template = RequestDescriptor.build(method, path, payload, self.default_body_type)
        template.headers = httpx.Headers(self.default_headers)
        template.headers.update(headers or {})
        template.query = {**self.default_query, **(params or {})}
        template.early_hooks = list(self.early_hooks)
        template.hooks = list(hooks)
        template.late_hooks = list(self.late_hooks)
        template.immediate_hooks = [*self.immediate_hooks, *immediate_hooks]

        executor = MultiClientRequest(
            client=self._client, response_decoder=self.response_decoder
        )
        last_error: Optional[TransientRequestError] = None

        for attempt in range(self.retry_limit):
            address = self.select_address()
            descriptor = template.for_attempt(address)
            logger.debug(
                "Attempt %d/%d: %s %s", attempt + 1, self.retry_limit,
                descriptor.method, descriptor.url,
            )
            try:
                return executor.perform(descriptor, success, failure)
            except TransientRequestError as exc:
                logger.warning(
                    "Attempt %d/%d against %s failed: %s",
                    attempt + 1, self.retry_limit, address, exc,
                )
                last_error = exc

        if last_error is not None:
            raise last_error
        raise RetryLimitExceededError("Exceeded retry limit for request")

    def get(self, path: str, success: Optional[ResultSink] = None,
            failure: Optional[ResultSink] = None, *hooks: DescriptorHook,
            **kwargs: Any) -> httpx.Response:
        """Send a GET request. See :meth:`request`."""
        return self.request("GET", path, None, success, failure, *hooks, **kwargs)

    def head(self, path: str, *hooks: DescriptorHook, **kwargs: Any) -> httpx.Response:
        """Send a HEAD request. See :meth:`request`."""
        return self.request("HEAD", path, None, None, None, *hooks, **kwargs)

    def delete(self, path: str, success: Optional[ResultSink] = None,
               failure: Optional[ResultSink] = None, *hooks: DescriptorHook,
               **kwargs: Any) -> httpx.Response:
        """Send a DELETE request. See :meth:`request`."""
        return self.request("DELETE", path, None, success, failure, *hooks, **kwargs)

    def post(self, path: str, payload: Any = None, success: Optional[ResultSink] = None,
             failure: Optional[ResultSink] = None, *hooks: DescriptorHook,
             **kwargs: Any) -> httpx.Response:
        """Send a POST request. See :meth:`request`."""
        return self.request("POST", path, payload, success, failure, *hooks, **kwargs)

    def put(self, path: str, payload: Any = None, success: Optional[ResultSink] = None,
            failure: Optional[ResultSink] = None, *hooks: DescriptorHook,
            **kwargs: Any) -> httpx.Response:
        """Send a PUT request. See :meth:`request`."""
        return self.request("PUT", path, payload, success, failure, *hooks, **kwargs)

    def patch(self, path: str, payload: Any = None, success: Optional[ResultSink] = None,
              failure: Optional[ResultSink] = None, *hooks: DescriptorHook,
              **kwargs: Any) -> httpx.Response:
        """Send a PATCH request. See :meth:`request`."""
        return self.request("PATCH", path, payload, success, failure, *hooks, **kwargs)
