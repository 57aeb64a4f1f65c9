"""Construction, execution, and decoding of a single outbound request.

:class:`RequestDescriptor` is the in-memory description of one call before
it reaches the wire. :class:`MultiClientRequest` turns a descriptor into an
:class:`httpx.Request`, sends it and decodes the response:

1. Validate the method (no network I/O for unsupported methods).
2. Encode the payload according to the descriptor's body type.
3. Run descriptor hooks: early, per-call, then late.
4. Materialise the :class:`httpx.Request` with query and headers applied,
   then run immediate hooks on it.
5. Send with the configured :class:`httpx.Client` (or the shared default).
6. Decode into the success sink for status < 400, else the failure sink.

Retrying is not done here; see :meth:`~multiclient.client.MultiClient.request`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from multiclient.client.decoders import ResponseDecoder, ResultSink
from multiclient.client.hooks import DescriptorHook, HookRunner, ImmediateHook
from multiclient.client.payload import DEFAULT_XML_ROOT, Payload, encode_body
from multiclient.exceptions import TransportError, UnsupportedMethodError
from multiclient.models import BodyType, HTTPMethod

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset(m.value for m in HTTPMethod)


def validate_method(method: str) -> str:
    """Return *method* upper-cased, or raise if it cannot be sent.

    Raises:
        UnsupportedMethodError: If *method* is not GET/POST/PUT/DELETE/HEAD/PATCH.
    """
    normalized = str(method).upper()
    if normalized not in SUPPORTED_METHODS:
        raise UnsupportedMethodError(f"Unsupported HTTP method '{method}'")
    return normalized


@dataclass
class RequestDescriptor:
    """Mutable description of one outbound call.

    A descriptor is built fresh for every attempt because the base URL
    differs per attempt. Header and query keys are unique; later writes win.

    Attributes:
        method: HTTP method.
        path: Path relative to ``base_url``.
        payload: Classified payload, or ``None`` for no body.
        body_type: How the payload is framed.
        base_url: Selected endpoint, always ending in one ``/``.
        headers: Request headers. Names compare case-insensitively, so
            setting ``x-token`` replaces an earlier ``X-Token``.
        query: Query parameters.
        content: Encoded body, filled in by :meth:`MultiClientRequest.perform`
            before descriptor hooks run so hooks can replace it.
        early_hooks: Multi-client hooks run before per-call hooks.
        hooks: Per-call hooks.
        late_hooks: Multi-client hooks run after per-call hooks.
        immediate_hooks: Hooks run on the materialised :class:`httpx.Request`.
    """

    method: str
    path: str
    payload: Optional[Payload] = None
    body_type: BodyType = BodyType.JSON
    base_url: str = ""
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    query: dict[str, Any] = field(default_factory=dict)
    content: Optional[bytes] = None
    early_hooks: list[DescriptorHook] = field(default_factory=list)
    hooks: list[DescriptorHook] = field(default_factory=list)
    late_hooks: list[DescriptorHook] = field(default_factory=list)
    immediate_hooks: list[ImmediateHook] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.headers = httpx.Headers(self.headers)

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        payload: Any = None,
        body_type: BodyType = BodyType.JSON,
    ) -> RequestDescriptor:
        """Validate *method* and classify *payload* into a new descriptor.

        Raises:
            UnsupportedMethodError: For methods the pipeline cannot send.
            PayloadError: If a payload stream cannot be read.
        """
        return cls(
            method=validate_method(method),
            path=path,
            payload=Payload.from_value(payload),
            body_type=BodyType(body_type),
        )

    def set_base_url(self, base: str) -> None:
        """Set the endpoint, normalised to end with exactly one ``/``."""
        self.base_url = base.rstrip("/") + "/"

    @property
    def url(self) -> str:
        """Absolute request URL: base URL joined with the path."""
        if not self.base_url:
            return self.path
        return self.base_url + self.path.lstrip("/")

    def for_attempt(self, base_url: str) -> RequestDescriptor:
        """Return a copy aimed at *base_url* with independent headers, query and hooks."""
        descriptor = RequestDescriptor(
            method=self.method,
            path=self.path,
            payload=self.payload,
            body_type=self.body_type,
            headers=self.headers.copy(),
            query=dict(self.query),
            content=self.content,
            early_hooks=list(self.early_hooks),
            hooks=list(self.hooks),
            late_hooks=list(self.late_hooks),
            immediate_hooks=list(self.immediate_hooks),
        )
        descriptor.set_base_url(base_url)
        return descriptor


# ------------------------------------------------------------------ #
# Shared default transport
# ------------------------------------------------------------------ #

_default_client: Optional[httpx.Client] = None
_default_client_lock = threading.Lock()


def get_default_client() -> httpx.Client:
    """Return the process-wide :class:`httpx.Client`, creating it lazily."""
    global _default_client
    with _default_client_lock:
        if _default_client is None or _default_client.is_closed:
            _default_client = httpx.Client()
        return _default_client


def reset_default_client() -> None:
    """Close and forget the shared default client."""
    global _default_client
    with _default_client_lock:
        if _default_client is not None:
            _default_client.close()
        _default_client = None


class MultiClientRequest:
    """Executes one :class:`RequestDescriptor` against the wire.

    Args:
        client: Transport to send with. ``None`` uses
            :func:`get_default_client`.
        response_decoder: Content-type dispatcher for response bodies.
        timeout: Per-request timeout in seconds overriding the client's.
        xml_root: Element name wrapping XML bodies.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        response_decoder: Optional[ResponseDecoder] = None,
        timeout: Optional[float] = None,
        xml_root: str = DEFAULT_XML_ROOT,
    ) -> None:
        self._client = client
        self.response_decoder = response_decoder or ResponseDecoder()
        self.timeout = timeout
        self.xml_root = xml_root

    @property
    def client(self) -> httpx.Client:
        return self._client if self._client is not None else get_default_client()

    def perform(
        self,
        descriptor: RequestDescriptor,
        success: Optional[ResultSink] = None,
        failure: Optional[ResultSink] = None,
    ) -> httpx.Response:
        """Send *descriptor* and decode the response into *success* or *failure*.

        Args:
            descriptor: The call to make. It is mutated by encoding and hooks.
            success: Sink for responses with status < 400.
            failure: Sink for responses with status >= 400.

        Returns:
            The :class:`httpx.Response`. A status >= 400 is not an error.

        Raises:
            UnsupportedMethodError: Before any I/O for unsupported methods,
                including a method set by a descriptor hook.
            PayloadError: If the payload cannot be framed as the body type.
            HookError: If a hook aborts the request.
            TransportError: On network errors.
            DecodeError: If the body cannot be decoded; its ``response``
                attribute carries the response.
        """
        validate_method(descriptor.method)

        encoded = encode_body(descriptor.payload, descriptor.body_type, self.xml_root)
        descriptor.content = encoded.content
        if encoded.content_type and "content-type" not in descriptor.headers:
            descriptor.headers["Content-Type"] = encoded.content_type

        HookRunner(
            [*descriptor.early_hooks, *descriptor.hooks, *descriptor.late_hooks]
        ).run(descriptor)
        method = validate_method(descriptor.method)

        client = self.client
        build_kwargs: dict[str, Any] = {
            "params": descriptor.query or None,
            "headers": descriptor.headers,
            "content": descriptor.content,
        }
        if self.timeout is not None:
            build_kwargs["timeout"] = self.timeout
        try:
            request = client.build_request(method, descriptor.url, **build_kwargs)
        except httpx.InvalidURL as exc:
            raise TransportError(f"Invalid request URL {descriptor.url!r}: {exc}") from exc

        HookRunner(descriptor.immediate_hooks).run(request)

        logger.debug("%s %s", method, request.url)
        try:
            response = client.send(request)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {request.url} failed: {exc}") from exc
        logger.debug("%s %s -> %d", method, request.url, response.status_code)

        sink = success if response.status_code < 400 else failure
        self.response_decoder.decode(response, sink)
        return response
