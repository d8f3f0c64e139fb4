"""CLI output formatting helpers."""

from pathlib import Path

import click

from .errors import ProvisionError
from .provision import LinkEntry, SizingDecision, TunnelResult, TunnelStatus
from .provision.tunnels import CONSOLE_TUNNEL


def tunnel_endpoint(tunnel: TunnelResult) -> str:
    """Local address of a tunnel."""
    if tunnel.name == CONSOLE_TUNNEL:
        return f"http://localhost:{tunnel.local_port}"
    return f"localhost:{tunnel.local_port}"


def print_sizing(sizing: SizingDecision) -> None:
    click.echo(f"Sizing: {sizing.node_count} node(s) ({sizing.memory_observed_mib} MiB available)")


def print_tunnel(tunnel: TunnelResult) -> None:
    """Print one tunnel line."""
    endpoint = tunnel_endpoint(tunnel)
    if tunnel.status == TunnelStatus.ALREADY_RUNNING:
        click.echo(f"{tunnel.name} already running: {endpoint} (PID {tunnel.pid})")
    else:
        click.echo(f"{tunnel.name}: {endpoint} (PID {tunnel.pid})")


def print_links(entries: list[LinkEntry], pv_dir: Path) -> None:
    """Print the PVC to host path mapping.

    Args:
        entries: Links created by the path mapper
        pv_dir: Directory holding PV data
    """
    click.echo("")
    click.echo("---- Host storage root ----")
    click.echo(f"All MinIO + Vertica PVC data lives under: {pv_dir}")
    click.echo("")
    click.echo("PVC → host path mapping:")
    if not entries:
        click.echo("  (no PVCs with host directories)")
    for entry in entries:
        click.echo(f"  {entry.link.name} -> {entry.target}")
    click.echo(f"Tip: ls -lah {pv_dir}")


def print_provision_error(error: ProvisionError) -> None:
    """Print a failed stage to stderr."""
    click.echo(f"\n✗ up failed at stage '{error.stage}': {error.message}", err=True)
    if error.details:
        for line in error.details.splitlines():
            click.echo(f"  {line}", err=True)
