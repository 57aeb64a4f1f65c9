"""Check command -- probe the active pool with a health-check policy.

``multiclient check [one|n|quorum|all]`` runs the policy, prints the
addresses in the resulting health snapshot to stdout and exits with
:data:`~multiclient.exit_codes.EXIT_UNHEALTHY` when the policy failed.
"""

from __future__ import annotations

import enum
from typing import Optional

import typer

from multiclient.output import error, get_output, info, success


class CheckPolicy(str, enum.Enum):
    """Named health-check policies."""

    ONE = "one"
    N = "n"
    QUORUM = "quorum"
    ALL = "all"


def check_command(
    ctx: typer.Context,
    policy: CheckPolicy = typer.Argument(CheckPolicy.QUORUM, help="Health-check policy."),
    count: Optional[int] = typer.Option(
        None, "--count", "-c", min=0, help="Required healthy endpoints for the 'n' policy."
    ),
) -> None:
    """Probe the pool and list the healthy endpoints.

    Example::

        multiclient --pool users check quorum
        multiclient --pool users check n --count 2
    """
    from multiclient.commands import open_client
    from multiclient.exceptions import HealthCheckError

    if policy == CheckPolicy.N and count is None:
        error("The 'n' policy needs --count.")
        raise typer.Exit(code=2)

    with open_client(ctx) as client:
        info(f"Probing {len(client.addresses)} addresses ({policy.value})")
        failure: Optional[HealthCheckError] = None
        try:
            if policy == CheckPolicy.ONE:
                client.check_one()
            elif policy == CheckPolicy.N:
                client.check_n(count or 0)
            elif policy == CheckPolicy.QUORUM:
                client.check_quorum()
            else:
                client.check_all()
        except HealthCheckError as exc:
            failure = exc

        healthy = client.healthy_addresses()
        get_output().print_table(
            ["Address"], [[address] for address in healthy], title="Healthy addresses"
        )

    if failure is not None:
        error(str(failure))
        raise typer.Exit(code=failure.exit_code)
    success(f"{len(healthy)} healthy")
