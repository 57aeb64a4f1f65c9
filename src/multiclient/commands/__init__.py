"""Built-in CLI sub-commands for multiclient.

* :mod:`~multiclient.commands.pool` -- manage saved endpoint pools.
* :mod:`~multiclient.commands.check` -- run health-check policies.
* :mod:`~multiclient.commands.request` -- send one load-balanced request.

Each module exports a :class:`typer.Typer` sub-application or a plain
callback registered on the root app. :func:`open_client` resolves the
active pool from the shared Typer context.
"""

from __future__ import annotations

import typer

from multiclient.client import MultiClient
from multiclient.output import debug, error, suggest


def open_client(ctx: typer.Context) -> MultiClient:
    """Build a :class:`~multiclient.client.MultiClient` for the active pool.

    The pool is resolved via :func:`~multiclient.config.resolve_pool` from
    the ``--pool``, ``--pool-file`` and ``--address`` root options.

    Raises:
        typer.Exit: With code 2 when no pool can be resolved.
    """
    from multiclient.config import resolve_pool
    from multiclient.exceptions import ConfigError

    obj = ctx.obj or {}
    try:
        pool = resolve_pool(
            cli_pool=obj.get("pool"),
            cli_pool_file=obj.get("pool_file"),
            cli_addresses=obj.get("addresses"),
        )
    except ConfigError as exc:
        error(f"Config error: {exc}")
        raise typer.Exit(code=exc.exit_code) from None

    if pool is None:
        error("No endpoint pool configured.")
        suggest("multiclient pool add NAME --address http://host:port")
        raise typer.Exit(code=2)

    debug(f"Using pool '{pool.name}' with {len(pool.addresses)} addresses")
    return MultiClient.from_config(pool)
