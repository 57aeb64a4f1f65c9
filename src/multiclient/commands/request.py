"""Request command -- send one load-balanced request to the active pool.

The decoded body is written to stdout and the status line to stderr. Text
bodies of unknown content types are printed as-is rather than forced
through the XML decoder.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from typing import Any, Optional

import typer

from multiclient.exit_codes import EXIT_REQUEST_FAILED
from multiclient.models import BodyType
from multiclient.output import error, format_response, info


def _parse_pairs(values: list[str], sep: str, what: str) -> dict[str, str]:
    """Split ``KEY<sep>VALUE`` strings into a dict (last one wins)."""
    result: dict[str, str] = {}
    for item in values:
        key, found, value = item.partition(sep)
        if not found or not key.strip():
            error(f"Invalid {what} '{item}', expected KEY{sep}VALUE")
            raise typer.Exit(code=2)
        result[key.strip()] = value.strip()
    return result


def _parse_body(body: Optional[str], body_type: BodyType) -> Any:
    """Parse *body* as JSON for structured body types, returning the raw string otherwise."""
    if body is None or body_type in (BodyType.RAW, BodyType.XML):
        return body
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body


def _printable(value: Any) -> Any:
    if isinstance(value, ET.Element):
        return ET.tostring(value, encoding="unicode")
    return value


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE, HEAD)."),
    path: str = typer.Argument(help="Path relative to the selected endpoint."),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="Request body."),
    body_type: Optional[BodyType] = typer.Option(
        None, "--body-type", help="Body framing; defaults to the pool's setting."
    ),
    headers: list[str] = typer.Option(
        [], "--header", "-H", help="Request header KEY:VALUE (repeatable)."
    ),
    query: list[str] = typer.Option(
        [], "--query", help="Query parameter KEY=VALUE (repeatable)."
    ),
    retries: Optional[int] = typer.Option(
        None, "--retries", min=0, help="Override the pool's retry limit."
    ),
) -> None:
    """Send a request to one endpoint of the pool.

    When the pool has health checks enabled, a ``check_one`` probe runs
    first so there is a snapshot to select from.

    Example::

        multiclient --pool users request GET /users --query page=2
        multiclient --pool users request POST /users -d '{"name": "ada"}'
    """
    from multiclient.client import ResponseDecoder, ResultSink, decode_text
    from multiclient.commands import open_client
    from multiclient.exceptions import DecodeError, MultiClientError

    header_map = _parse_pairs(headers, ":", "header")
    query_map = _parse_pairs(query, "=", "query parameter")

    with open_client(ctx) as client:
        client.response_decoder = ResponseDecoder(default=decode_text)
        if body_type is not None:
            client.default_body_type = body_type
        if retries is not None:
            client.retry_limit = retries

        ok, failed = ResultSink(), ResultSink()
        try:
            if client.health_checks:
                client.check_one()
            response = client.request(
                method,
                path,
                _parse_body(body, client.default_body_type),
                ok,
                failed,
                headers=header_map,
                params=query_map,
            )
        except DecodeError as exc:
            error(str(exc))
            if exc.response is not None:
                info(f"HTTP {exc.response.status_code} {exc.response.reason_phrase}")
            raise typer.Exit(code=exc.exit_code) from None
        except MultiClientError as exc:
            error(str(exc))
            raise typer.Exit(code=exc.exit_code) from None

    info(f"HTTP {response.status_code} {response.reason_phrase}")
    content_type = response.headers.get("content-type", "application/json")
    sink = ok if response.status_code < 400 else failed
    if sink.filled:
        format_response(_printable(sink.value), content_type)
    if response.status_code >= 400:
        raise typer.Exit(code=EXIT_REQUEST_FAILED)
