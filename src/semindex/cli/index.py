"""semindex index command - index local directories."""

import asyncio
from pathlib import Path

import click
from rich.console import Console

from semindex.cli.utils import db_path_for, load_cli_config, local_project, resolve_roots
from semindex.config import SemIndexConfig
from semindex.core.errors import SemIndexError
from semindex.index import ProjectState, VectorStore, create_provider


async def _index(roots: list[Path], config: SemIndexConfig, console: Console) -> ProjectState:
    provider = create_provider(config.embedding)
    store = VectorStore.open(db_path_for(roots, config), provider, config=config)
    async with store:
        project = local_project(roots, config)
        changed = await store.index_project(project)
        console.print(f"[cyan]{changed}[/cyan] file(s) to index")
        if changed:
            with console.status("[cyan]Embedding...[/cyan]", spinner="dots"):
                await store.wait_for_project(project)
        state = store.project_state(project)
        assert state is not None
        return state


@click.command()
@click.argument(
    "paths",
    nargs=-1,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
def index_command(paths: tuple[Path, ...]) -> None:
    """Index source files under PATHS (default: current directory).

    Only new or changed files are embedded; records of deleted files are
    dropped. Waits until every selected file is committed or abandoned.
    """
    console = Console(stderr=True)
    roots = resolve_roots(paths)
    config = load_cli_config(roots)

    try:
        state = asyncio.run(_index(roots, config, console))
    except SemIndexError as e:
        raise click.ClickException(str(e)) from e

    if state.abandoned:
        console.print(
            f"  [yellow]![/yellow] {state.committed} indexed, {state.abandoned} failed "
            "(retried on the next run)"
        )
    else:
        console.print(f"  [green]✓[/green] {state.committed} indexed")
