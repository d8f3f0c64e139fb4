"""CLI main entry point."""

import click

from .commands.cluster import check_docker, down, up
from .commands.tunnel import minio_console, pf_vertica
from .shared.logging import configure_logging


@click.group()
@click.option("-c", "--config", type=click.Path(dir_okay=False), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Write logs to a file")
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: int, log_file: str) -> None:
    """Local Vertica Eon clusters on kind with MinIO communal storage."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    configure_logging(verbose, log_file=log_file)


cli.add_command(up)
cli.add_command(down)
cli.add_command(check_docker)
cli.add_command(pf_vertica)
cli.add_command(minio_console)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
