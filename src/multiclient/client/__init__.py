"""Client layer for multiclient.

Classes:
    :class:`MultiClient` -- health tracking, address selection and retry.
    :class:`MultiClientRequest` -- builds, sends and decodes one request.
    :class:`RequestDescriptor` -- mutable description of one call.
    :class:`ResponseDecoder` -- content-type dispatch for response bodies.
    :class:`ResultSink` -- caller-supplied decode target.
    :class:`HealthProbe` -- default TCP/HTTP single-endpoint probe.

Example::

    from multiclient.client import MultiClient, ResultSink

    client = MultiClient("http://10.0.0.1:8080", "http://10.0.0.2:8080")
    client.retry_limit = 3
    sink = ResultSink()
    client.request("GET", "/users", success=sink)
"""

from multiclient.client.decoders import (
    ResponseDecoder,
    ResultSink,
    decode_json,
    decode_text,
    decode_xml,
)
from multiclient.client.health import HealthProbe
from multiclient.client.hooks import DescriptorHook, HookRunner, ImmediateHook
from multiclient.client.multiclient import MultiClient
from multiclient.client.payload import Payload, PayloadKind
from multiclient.client.request import MultiClientRequest, RequestDescriptor

__all__ = [
    "DescriptorHook",
    "HealthProbe",
    "HookRunner",
    "ImmediateHook",
    "MultiClient",
    "MultiClientRequest",
    "Payload",
    "PayloadKind",
    "RequestDescriptor",
    "ResponseDecoder",
    "ResultSink",
    "decode_json",
    "decode_text",
    "decode_xml",
]
