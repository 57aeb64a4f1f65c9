"""Request payloads and body encoding.

A caller hands :meth:`~multiclient.client.MultiClient.request` any value as
the payload. :meth:`Payload.from_value` classifies it once into a tagged
variant so the rest of the pipeline never has to inspect runtime types
again:

* ``STREAM`` -- a readable object (anything with ``.read()``). It is drained
  into memory immediately so every retry resends the same bytes.
* ``TEXT`` -- a ``str``.
* ``BYTES`` -- ``bytes``, ``bytearray`` or ``memoryview``.
* ``STRUCTURED`` -- anything else (mappings, lists, pydantic models, ...).

:func:`encode_body` then frames a payload according to a
:class:`~multiclient.models.BodyType`. A payload whose shape cannot be
framed as the requested body type raises
:class:`~multiclient.exceptions.PayloadError` instead of silently sending an
empty body.
"""

from __future__ import annotations

import enum
import json
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

from pydantic import BaseModel

from multiclient.exceptions import PayloadError
from multiclient.models import BodyType

DEFAULT_XML_ROOT = "body"
"""Element name used to wrap raw bytes for :attr:`BodyType.XML` bodies."""


class PayloadKind(str, enum.Enum):
    """Shape of a request payload."""

    STREAM = "stream"
    TEXT = "text"
    BYTES = "bytes"
    STRUCTURED = "structured"


@dataclass(frozen=True)
class Payload:
    """A classified request payload.

    Attributes:
        kind: Which shape the caller supplied.
        value: ``bytes`` for ``STREAM`` and ``BYTES``, ``str`` for ``TEXT``,
            the original object for ``STRUCTURED``.
    """

    kind: PayloadKind
    value: Any

    @classmethod
    def from_value(cls, value: Any) -> Optional[Payload]:
        """Classify *value*, returning ``None`` when there is no payload."""
        if value is None:
            return None
        if isinstance(value, Payload):
            return value
        if isinstance(value, str):
            return cls(PayloadKind.TEXT, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(PayloadKind.BYTES, bytes(value))
        if callable(getattr(value, "read", None)):
            try:
                data = value.read()
            except (OSError, ValueError) as exc:
                raise PayloadError(f"Failed to read payload stream: {exc}") from exc
            if isinstance(data, str):
                data = data.encode("utf-8")
            return cls(PayloadKind.STREAM, bytes(data or b""))
        return cls(PayloadKind.STRUCTURED, value)

    def as_bytes(self) -> bytes:
        """Return the payload as bytes; only valid for stream, text and bytes payloads."""
        if self.kind == PayloadKind.TEXT:
            return self.value.encode("utf-8")
        if self.kind in (PayloadKind.STREAM, PayloadKind.BYTES):
            return self.value
        raise PayloadError(
            f"Cannot send a {type(self.value).__name__} payload as a raw body; "
            "pass str, bytes or a readable stream"
        )


@dataclass(frozen=True)
class EncodedBody:
    """Wire-ready request body plus the content type it implies."""

    content: Optional[bytes] = None
    content_type: Optional[str] = None


def encode_body(
    payload: Optional[Payload],
    body_type: BodyType,
    xml_root: str = DEFAULT_XML_ROOT,
) -> EncodedBody:
    """Frame *payload* as a request body of *body_type*.

    Args:
        payload: The classified payload, or ``None`` for no body.
        body_type: How to frame the payload.
        xml_root: Element name wrapping the bytes of an XML body.

    Returns:
        The encoded body. ``RAW`` bodies carry no content type.

    Raises:
        PayloadError: If the payload shape does not fit *body_type*.
    """
    if payload is None:
        return EncodedBody()

    if body_type == BodyType.JSON:
        return EncodedBody(_encode_json(payload), "application/json")
    if body_type == BodyType.FORM:
        return EncodedBody(_encode_form(payload), "application/x-www-form-urlencoded")
    if body_type == BodyType.XML:
        return EncodedBody(_encode_xml(payload.as_bytes(), xml_root), "application/xml")
    return EncodedBody(payload.as_bytes())


def _encode_json(payload: Payload) -> bytes:
    if payload.kind in (PayloadKind.STREAM, PayloadKind.BYTES):
        raise PayloadError("Cannot JSON-encode a bytes or stream payload; use BodyType.RAW")
    value = payload.value
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    try:
        return json.dumps(value).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"Payload is not JSON serialisable: {exc}") from exc


def _encode_form(payload: Payload) -> bytes:
    value = payload.value
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    if payload.kind != PayloadKind.STRUCTURED or isinstance(value, (str, bytes)):
        raise PayloadError("Form bodies need a mapping or a sequence of (key, value) pairs")
    if not isinstance(value, Mapping):
        try:
            value = list(value)
        except TypeError as exc:
            raise PayloadError(
                f"Cannot form-encode a {type(value).__name__} payload"
            ) from exc
    try:
        return urlencode(value, doseq=True).encode("ascii")
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"Cannot form-encode payload: {exc}") from exc


def _encode_xml(data: bytes, root: str) -> bytes:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PayloadError(f"XML payload is not valid UTF-8: {exc}") from exc
    element = ET.Element(root)
    element.text = text
    return ET.tostring(element, encoding="utf-8", xml_declaration=False)
