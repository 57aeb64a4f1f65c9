"""Pool commands -- manage saved endpoint pools.

Provides the ``multiclient pool`` sub-command group. Each pool is stored as
``<config_dir>/pools/<name>.json`` (see :mod:`multiclient.config`).
"""

from __future__ import annotations

from typing import Optional

import typer

from multiclient.models import BodyType
from multiclient.output import error, format_response, get_output, info, success


pool_app = typer.Typer(no_args_is_help=True)


@pool_app.command("list")
def pool_list() -> None:
    """List saved pools.

    Example::

        multiclient pool list
        multiclient --json pool list
    """
    from multiclient.config import list_pools, load_global_config, load_pool

    names = list_pools()
    if not names:
        info("No pools saved.")
        return

    default = load_global_config().default_pool
    rows = []
    for name in names:
        pool = load_pool(name)
        rows.append([
            name + (" *" if name == default else ""),
            ", ".join(pool.addresses),
            "yes" if pool.health_checks else "no",
            str(pool.retry_limit),
        ])
    get_output().print_table(
        ["Name", "Addresses", "Health checks", "Retries"], rows, title="Pools"
    )


@pool_app.command("show")
def pool_show(name: str = typer.Argument(help="Pool name.")) -> None:
    """Show a saved pool definition."""
    from multiclient.config import load_pool
    from multiclient.exceptions import ConfigError

    try:
        pool = load_pool(name)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    format_response(pool.model_dump(mode="json"))


@pool_app.command("add")
def pool_add(
    name: str = typer.Argument(help="Pool name."),
    addresses: list[str] = typer.Option(
        ..., "--address", "-a", help="Endpoint base URL (repeatable)."
    ),
    health_checks: bool = typer.Option(
        False, "--health-checks/--no-health-checks",
        help="Only select endpoints that passed the last health check.",
    ),
    health_path: Optional[str] = typer.Option(
        None, "--health-path", help="HTTP path to probe; omit for a TCP connect."
    ),
    health_match: str = typer.Option(
        "", "--health-match", help="Regex the probe response body must match."
    ),
    health_timeout: float = typer.Option(
        10.0, "--health-timeout", help="Probe timeout in seconds."
    ),
    retry_limit: int = typer.Option(1, "--retry-limit", min=0, help="Attempts per request."),
    body_type: BodyType = typer.Option(
        BodyType.JSON, "--body-type", help="Default request body framing."
    ),
    make_default: bool = typer.Option(
        False, "--default", help="Make this the default pool."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing pool."),
) -> None:
    """Save a new pool.

    Example::

        multiclient pool add users -a http://10.0.0.1:8080 -a http://10.0.0.2:8080 \\
            --health-checks --health-path /health --health-match ok
    """
    from multiclient.config import (
        load_global_config,
        pool_exists,
        save_global_config,
        save_pool,
    )
    from multiclient.models import HealthCheckConfig, PoolConfig

    if pool_exists(name) and not force:
        error(f"Pool '{name}' already exists. Use --force to overwrite.")
        raise typer.Exit(code=2)

    pool = PoolConfig(
        name=name,
        addresses=addresses,
        health_checks=health_checks,
        health_check=HealthCheckConfig(
            path=health_path, match=health_match, timeout=health_timeout
        ),
        retry_limit=retry_limit,
        default_body_type=body_type,
    )
    save_pool(pool)

    if make_default:
        config = load_global_config()
        config.default_pool = name
        save_global_config(config)

    success(f"Saved pool '{name}' with {len(addresses)} addresses.")


@pool_app.command("remove")
def pool_remove(name: str = typer.Argument(help="Pool name.")) -> None:
    """Delete a saved pool."""
    from multiclient.config import delete_pool, load_global_config, save_global_config
    from multiclient.exceptions import ConfigError

    try:
        delete_pool(name)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    config = load_global_config()
    if config.default_pool == name:
        config.default_pool = None
        save_global_config(config)
    success(f"Removed pool '{name}'.")


@pool_app.command("default")
def pool_default(name: str = typer.Argument(help="Pool name.")) -> None:
    """Make a saved pool the default."""
    from multiclient.config import load_global_config, pool_exists, save_global_config

    if not pool_exists(name):
        error(f"Pool '{name}' not found.")
        raise typer.Exit(code=2)

    config = load_global_config()
    config.default_pool = name
    save_global_config(config)
    success(f"Default pool set to '{name}'.")
