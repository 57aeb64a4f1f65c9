"""Content-type driven response decoding.

The decoding strategy is picked from the response's ``Content-Type`` media
type, never from the request body type. :class:`ResponseDecoder` keeps an
explicit mapping from normalised media type to strategy:

==========================  ===============
``application/json``        :func:`decode_json`
``text/json``               :func:`decode_json`
``text/xml``                :func:`decode_xml`
``application/xml``         :func:`decode_xml`
anything else               ``default`` (:func:`decode_xml` unless overridden)
==========================  ===============

Unknown content types fall through to the XML decoder, so a plain-text body
such as ``ok`` fails to decode. Pass ``default=decode_text`` to read unknown
bodies as text instead.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any, Callable, Optional, get_origin

import httpx
from pydantic import BaseModel, PydanticSchemaGenerationError, TypeAdapter

from multiclient.exceptions import ConfigurationError, DecodeError


class ResultSink:
    """Caller-supplied target a response body is decoded into.

    Without a *model* the sink receives the raw decoded value: a ``dict`` or
    ``list`` for JSON, an :class:`xml.etree.ElementTree.Element` for XML and a
    ``str`` for text. With a *model* the decoded data is validated through
    pydantic first (XML elements are converted with :func:`element_to_dict`).

    Args:
        model: A pydantic model class or any type :class:`pydantic.TypeAdapter`
            accepts (e.g. ``list[int]``).

    Raises:
        ConfigurationError: If pydantic cannot build a validator for *model*.

    Example::

        sink = ResultSink(User)
        client.request("GET", "/users/1", success=sink)
        sink.value.name
    """

    def __init__(self, model: Any = None) -> None:
        self.model = model
        self._adapter: Optional[TypeAdapter[Any]] = None
        if model is not None and not _is_model_class(model):
            try:
                self._adapter = TypeAdapter(model)
            except PydanticSchemaGenerationError as exc:
                raise ConfigurationError(f"Unsupported result model {model!r}: {exc}") from exc
        self.value: Any = None
        self.filled = False

    def fill(self, data: Any) -> None:
        """Store *data*, validating it against :attr:`model` when one is set.

        Raises:
            pydantic.ValidationError: If *data* does not fit the model.
        """
        if self._adapter is not None:
            self.value = self._adapter.validate_python(data)
        elif self.model is not None:
            self.value = self.model.model_validate(data)
        else:
            self.value = data
        self.filled = True

    def __repr__(self) -> str:
        return f"ResultSink(model={self.model!r}, filled={self.filled})"


def _is_model_class(model: Any) -> bool:
    return (
        get_origin(model) is None
        and isinstance(model, type)
        and issubclass(model, BaseModel)
    )


DecodeStrategy = Callable[[httpx.Response, ResultSink], None]


def media_type(response: httpx.Response) -> str:
    """Return the response's media type, lowercased, without ``;`` parameters."""
    return response.headers.get("content-type", "").split(";")[0].strip().lower()


def decode_json(response: httpx.Response, sink: ResultSink) -> None:
    """Decode a JSON body into *sink*."""
    try:
        sink.fill(response.json())
    except ValueError as exc:
        raise DecodeError(f"Failed to decode JSON response: {exc}", response) from exc


def decode_xml(response: httpx.Response, sink: ResultSink) -> None:
    """Decode an XML body into *sink*."""
    try:
        root = ET.fromstring(response.content)
    except ET.ParseError as exc:
        raise DecodeError(f"Failed to decode XML response: {exc}", response) from exc
    try:
        sink.fill(element_to_dict(root) if sink.model is not None else root)
    except ValueError as exc:
        raise DecodeError(f"XML response does not match model: {exc}", response) from exc


def decode_text(response: httpx.Response, sink: ResultSink) -> None:
    """Store the body as text in *sink*."""
    try:
        sink.fill(response.text)
    except ValueError as exc:
        raise DecodeError(f"Failed to decode text response: {exc}", response) from exc


def element_to_dict(element: ET.Element) -> Any:
    """Convert an XML element into plain data for model validation.

    Leaf elements without attributes become their stripped text. Otherwise
    attributes are keyed ``@name``, children by tag (repeated tags collect
    into a list) and mixed text under ``#text``.
    """
    children = list(element)
    text = (element.text or "").strip()
    if not children and not element.attrib:
        return text

    result: dict[str, Any] = {f"@{key}": value for key, value in element.attrib.items()}
    for child in children:
        value = element_to_dict(child)
        if child.tag not in result:
            result[child.tag] = value
        elif isinstance(result[child.tag], list):
            result[child.tag].append(value)
        else:
            result[child.tag] = [result[child.tag], value]
    if text:
        result["#text"] = text
    return result


DEFAULT_STRATEGIES: dict[str, DecodeStrategy] = {
    "application/json": decode_json,
    "text/json": decode_json,
    "text/xml": decode_xml,
    "application/xml": decode_xml,
}


class ResponseDecoder:
    """Dispatches a response body to a decoding strategy by content type.

    Args:
        strategies: Extra or overriding media type to strategy entries.
        default: Strategy for media types with no entry.
    """

    def __init__(
        self,
        strategies: Optional[dict[str, DecodeStrategy]] = None,
        default: DecodeStrategy = decode_xml,
    ) -> None:
        self._strategies = dict(DEFAULT_STRATEGIES)
        for content_type, strategy in (strategies or {}).items():
            self.register(content_type, strategy)
        self.default = default

    def register(self, content_type: str, strategy: DecodeStrategy) -> None:
        """Use *strategy* for responses of *content_type*."""
        self._strategies[content_type.strip().lower()] = strategy

    def strategy_for(self, content_type: str) -> DecodeStrategy:
        """Return the strategy for a normalised media type."""
        return self._strategies.get(content_type, self.default)

    def decode(self, response: httpx.Response, sink: Optional[ResultSink]) -> None:
        """Decode *response* into *sink*.

        Nothing is decoded when *sink* is ``None`` or the body is empty
        (e.g. ``HEAD`` and ``204`` responses).

        Raises:
            DecodeError: If the body cannot be decoded into the sink.
        """
        if sink is None or not response.content:
            return
        self.strategy_for(media_type(response))(response, sink)
