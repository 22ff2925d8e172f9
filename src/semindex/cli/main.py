"""semindex CLI - semantic code search."""

import click

from semindex.cli.clear import clear_command
from semindex.cli.index import index_command
from semindex.cli.search import search_command
from semindex.cli.status import status_command
from semindex.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="semindex")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """semindex - index source code and search it in natural language."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    # Until a command loads the repo config
    configure_logging(level="DEBUG" if verbose else None)


cli.add_command(index_command, name="index")
cli.add_command(search_command, name="search")
cli.add_command(status_command, name="status")
cli.add_command(clear_command, name="clear")


if __name__ == "__main__":
    cli()
