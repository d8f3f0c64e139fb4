"""Tunnel commands: pf-vertica and minio-console.

Each command confirms a running port-forward or starts one in the
background, then prints its local endpoint.
"""

from __future__ import annotations

import sys

import click

from ..formatters import print_tunnel
from ..provision import (
    Kubectl,
    TunnelError,
    TunnelSpec,
    TunnelStore,
    TunnelTracker,
    console_tunnel,
    vertica_tunnel,
)
from .cluster import cluster_options, resolve_config


def _ensure(ctx: click.Context, overrides: dict, build_spec) -> None:
    config = resolve_config(ctx, overrides)
    spec: TunnelSpec = build_spec(config)
    tracker = TunnelTracker(Kubectl(config.namespace, config.kube_context), TunnelStore(config.tunnel_dir))
    try:
        result = tracker.ensure(config.cluster, spec)
    except TunnelError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    print_tunnel(result)


@click.command("pf-vertica")
@cluster_options
@click.pass_context
def pf_vertica(ctx: click.Context, **overrides) -> None:
    """Start (or confirm) a background port-forward to Vertica SQL."""
    _ensure(ctx, overrides, lambda config: vertica_tunnel(config.vertica_port))


@click.command("minio-console")
@cluster_options
@click.pass_context
def minio_console(ctx: click.Context, **overrides) -> None:
    """Start (or confirm) a background port-forward to the MinIO console."""
    _ensure(ctx, overrides, lambda config: console_tunnel(config.console_port))
