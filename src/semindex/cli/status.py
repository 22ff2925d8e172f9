"""semindex status command - show what is indexed."""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from semindex.cli.utils import db_path_for, load_cli_config, resolve_roots
from semindex.core.errors import SemIndexError
from semindex.index import VectorDatabase


@click.command()
@click.argument(
    "paths",
    nargs=-1,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status_command(paths: tuple[Path, ...], as_json: bool) -> None:
    """Show indexed file and document counts for PATHS."""
    roots = resolve_roots(paths)
    config = load_cli_config(roots)
    db_path = db_path_for(roots, config)

    if not db_path.exists():
        if as_json:
            click.echo(json.dumps({"initialized": False}))
        else:
            click.echo("No index yet. Run 'semindex index' first.")
        return

    try:
        database = VectorDatabase(db_path, config.database)
        try:
            stats = database.stats([str(r) for r in roots])
        finally:
            database.close()
    except SemIndexError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(
            json.dumps(
                {
                    "initialized": True,
                    "db_path": str(db_path),
                    "worktrees": [
                        {"worktree_id": s.worktree_id, "files": s.files, "documents": s.documents}
                        for s in stats
                    ],
                }
            )
        )
        return

    console = Console()
    console.print(f"Index: {db_path}")
    table = Table(show_header=True, box=None, padding=(0, 1), pad_edge=False)
    table.add_column("Worktree", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Documents", justify="right")
    counts = {s.worktree_id: s for s in stats}
    for root in roots:
        s = counts.get(str(root))
        table.add_row(str(root), str(s.files if s else 0), str(s.documents if s else 0))
    console.print(table)
