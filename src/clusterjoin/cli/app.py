# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from clusterjoin.config import defaults
from clusterjoin.config.loader import load_deploy_config
from clusterjoin.join.errors import JoinError, NodeJoinError, PersistenceError
from clusterjoin.join.orchestrator import JoinOrchestrator
from clusterjoin.logging.log import init_logging
from clusterjoin.observers.dispatcher import EventBus
from clusterjoin.observers.jsonfile import JsonFileObserver
from clusterjoin.observers.logger import LoggerObserver
from clusterjoin.utils.ssh_runner import SSHTransport


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Add agent nodes to a running cluster")

JOIN_HELP = """
Add agent nodes to the cluster.

At least one server node must be installed before adding an agent node.
The deploy config is used to check whether a node can be added and is
updated after every node that joins.

\b
Examples:
  clusterjoin join --agent 192.168.10.123
  clusterjoin join --agent us-west-1:192.168.10.123,192.168.10.124
  clusterjoin join --agent us-west-1:1.2.3.4 --agent us-west-2:2.3.4.5
  clusterjoin join --agent us-west-1:1.1.1.1-1.1.1.10
"""


@app.callback()
def main() -> None:
    """Cluster node management."""


def _print_results(results) -> None:
    for r in results:
        status = "joined" if r.success else ("failed" if r.error else "not attempted")
        typer.echo(f"  {r.region:<16} {r.address:<40} {status} (stage: {r.stage.value})")


@app.command(help=JOIN_HELP)
def join(
    agent: List[str] = typer.Option(
        ...,
        "--agent",
        help="Agent nodes: [region:]address[,address|address-address]*. Repeatable.",
    ),
    deploy_config: Path = typer.Option(
        defaults.DEFAULT_DEPLOY_CONFIG_PATH,
        "--deploy-config",
        envvar="KC_DEPLOY_CONFIG",
        help="Deploy config path",
    ),
    debug: bool = typer.Option(False, "--debug", help="Verbose console output"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Where run logs are written"),
):
    logger, run_id, log_path = init_logging(base_dir=log_dir, verbose=debug)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")

    bus = EventBus(
        observers=[
            LoggerObserver(logger),
            JsonFileObserver(log_path.parent / f"{run_id}.jsonl"),
        ]
    )

    transport = None
    try:
        cfg = load_deploy_config(deploy_config)
        transport = SSHTransport(cfg.ssh)
        orchestrator = JoinOrchestrator(cfg, deploy_config, transport, bus=bus, run_id=run_id)
        results = orchestrator.run(agent)
    except NodeJoinError as exc:
        typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
        _print_results(exc.results)
        if isinstance(exc.__cause__, PersistenceError):
            typer.secho(
                "the deploy config may not match the cluster; inspect the nodes before retrying",
                fg=typer.colors.RED,
                bold=True,
                err=True,
            )
        raise typer.Exit(code=1)
    except JoinError as exc:
        typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    finally:
        if transport is not None:
            transport.close()

    _print_results(results)
    typer.secho(
        f"agent node join completed. show command: '{defaults.FOLLOW_UP_COMMAND}'",
        fg=typer.colors.GREEN,
    )


if __name__ == "__main__":
    app()
