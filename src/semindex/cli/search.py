"""semindex search command - natural-language search over the index."""

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from semindex.cli.utils import db_path_for, load_cli_config, local_project, resolve_roots
from semindex.config import SemIndexConfig
from semindex.config.constants import SEARCH_MAX_LIMIT
from semindex.core.errors import SemIndexError
from semindex.index import SearchResult, VectorStore, create_provider


async def _search(
    roots: list[Path], config: SemIndexConfig, query: str, limit: int
) -> list[SearchResult]:
    provider = create_provider(config.embedding)
    store = VectorStore.open(db_path_for(roots, config), provider, config=config)
    async with store:
        return await store.search_project(local_project(roots, config), query, limit)


def _display_path(result: SearchResult, roots: list[Path]) -> str:
    if len(roots) == 1:
        return result.relative_path
    return str(Path(result.worktree_id) / result.relative_path)


@click.command()
@click.argument("query")
@click.argument(
    "paths",
    nargs=-1,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("-n", "--limit", type=int, default=None, help="Max results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def search_command(query: str, paths: tuple[Path, ...], limit: int | None, as_json: bool) -> None:
    """Search indexed code under PATHS for QUERY."""
    roots = resolve_roots(paths)
    config = load_cli_config(roots)
    limit = min(limit if limit is not None else config.search.default_limit, SEARCH_MAX_LIMIT)

    try:
        results = asyncio.run(_search(roots, config, query, limit))
    except SemIndexError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "name": r.name,
                        "worktree_id": r.worktree_id,
                        "path": r.relative_path,
                        "start_byte": r.range.start,
                        "end_byte": r.range.end,
                        "score": round(r.score, 6),
                    }
                    for r in results
                ]
            )
        )
        return

    console = Console()
    if not results:
        console.print("[yellow]No results[/yellow] - run 'semindex index' first")
        return

    table = Table(show_header=True, box=None, padding=(0, 1), pad_edge=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Path", style="cyan")
    table.add_column("Bytes", style="dim")
    table.add_column("Score", justify="right")
    for i, r in enumerate(results, 1):
        table.add_row(
            str(i),
            r.name,
            _display_path(r, roots),
            f"{r.range.start}-{r.range.end}",
            f"{r.score:.3f}",
        )
    console.print(table)
