"""Cluster lifecycle commands: up, down, check-docker.

This module provides the `vdb-kind up` command which provisions a local
Vertica Eon cluster, and `vdb-kind down` which removes it again.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from ..config import ClusterConfig, load_config
from ..errors import ProvisionError
from ..formatters import print_links, print_provision_error, print_sizing, print_tunnel
from ..provision import DockerDetector, TeardownCoordinator, UpWorkflow


def cluster_options(func):
    """Options shared by every command that targets a cluster."""
    options = [
        click.option("--cluster", default=None, help="kind cluster name (context: kind-<cluster>)"),
        click.option("--namespace", default=None, help="Kubernetes namespace"),
        click.option("--db-name", default=None, help="Vertica database name"),
        click.option("--image", default=None, help="Vertica server image"),
        click.option("--bucket", default=None, help="MinIO bucket for communal storage"),
        click.option("--minio-user", default=None, help="MinIO root user (seeded on first install)"),
        click.option("--minio-password", default=None, help="MinIO root password (seeded on first install)"),
        click.option("--dbadmin-password", default=None, help="dbadmin password; creates secret 'su-passwd'"),
        click.option(
            "--license-file",
            type=click.Path(dir_okay=False, path_type=Path),
            default=None,
            help="Vertica license file; creates secret 'vertica-license'",
        ),
        click.option(
            "--host-root",
            type=click.Path(file_okay=False, path_type=Path),
            default=None,
            help="Host root for PV data and symlinks",
        ),
        click.option("--vertica-port", type=int, default=None, help="Local port for Vertica SQL"),
        click.option("--console-port", type=int, default=None, help="Local port for the MinIO console"),
    ]

    for option in reversed(options):
        func = option(func)
    return func


def resolve_config(ctx: click.Context, overrides: dict) -> ClusterConfig:
    """Build the ClusterConfig from flags, environment and config file."""
    config_path = ctx.obj.get("config_path") if ctx.obj else None
    try:
        return load_config(overrides, Path(config_path) if config_path else None)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


@click.command()
@cluster_options
@click.pass_context
def up(ctx: click.Context, **overrides) -> None:
    """Provision a local Vertica Eon cluster.

    Creates (or reuses) the kind cluster, installs MinIO and the VerticaDB
    operator, applies the VerticaDB manifest, waits for DBInitialized=True,
    prints node health, starts background port-forwards and maps PVCs to
    host paths. Safe to re-run: existing resources are left in place.

    Examples:

        # Provision with defaults
        vdb-kind up

        # Custom cluster name, bucket and host root
        vdb-kind up --cluster dev --bucket mybucket --host-root /opt/vertica-kind

        # Enable dbadmin password and a license
        vdb-kind up --dbadmin-password s3cret --license-file ./license.dat
    """
    config = resolve_config(ctx, overrides)
    click.echo(f"\n🚀 vdb-kind up: cluster '{config.cluster}'\n")

    workflow = UpWorkflow(config)
    try:
        result = workflow.run()
    except ProvisionError as e:
        print_provision_error(e)
        sys.exit(1)

    click.echo("\n" + "=" * 50)
    click.echo("✓ Vertica cluster is up!")
    print_sizing(result.sizing)
    for tunnel in result.tunnels:
        print_tunnel(tunnel)
    print_links(result.links, config.pv_dir)
    click.echo("=" * 50 + "\n")


@click.command()
@cluster_options
@click.option(
    "--clean-data",
    is_flag=True,
    help="Also delete PV data and symlinks under the host root (data loss!)",
)
@click.pass_context
def down(ctx: click.Context, clean_data: bool, **overrides) -> None:
    """Remove Vertica, the operator, MinIO and the kind cluster.

    Stops background port-forwards and deletes the cluster. Every step is
    best-effort; the command always succeeds.
    """
    config = resolve_config(ctx, overrides)
    TeardownCoordinator(config).run(clean_data=clean_data)


@click.command("check-docker")
def check_docker() -> None:
    """Validate the Docker CLI and daemon."""
    info = DockerDetector().detect()
    if info.cli_available and info.daemon_running:
        click.echo("✓ Docker CLI and daemon available")
        return

    click.echo(f"ERROR: {info.error}", err=True)
    if info.hint:
        click.echo("", err=True)
        click.echo(info.hint, err=True)
    sys.exit(1)
