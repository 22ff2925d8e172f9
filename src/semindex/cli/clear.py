"""semindex clear command - delete the index database."""

from pathlib import Path

import click
from rich.console import Console

from semindex.cli.utils import db_path_for, load_cli_config, resolve_roots


def clear_index(db_path: Path, *, yes: bool = False) -> bool:
    """Remove the SQLite index and its WAL side files.

    Returns True if anything was removed, False if cancelled or nothing existed.
    """
    console = Console(stderr=True)
    targets = [db_path, db_path.with_name(db_path.name + "-wal"), db_path.with_name(db_path.name + "-shm")]
    existing = [t for t in targets if t.exists()]
    if not existing:
        console.print("[yellow]Nothing to clear[/yellow] - no index found")
        return False

    console.print("\n[bold]The following will be permanently deleted:[/bold]\n")
    for target in existing:
        console.print(f"  [cyan]•[/cyan] {target}")
    console.print()

    if not yes and not click.confirm("This action cannot be undone. Continue?", default=False):
        console.print("[dim]Cancelled[/dim]")
        return False

    for target in existing:
        try:
            target.unlink()
            console.print(f"  [green]✓[/green] Removed {target}")
        except OSError as e:
            raise click.ClickException(f"Failed to remove {target}: {e}") from e
    return True


@click.command()
@click.argument(
    "paths",
    nargs=-1,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
def clear_command(paths: tuple[Path, ...], yes: bool) -> None:
    """Delete the index (needed after changing the embedding model)."""
    roots = resolve_roots(paths)
    config = load_cli_config(roots)
    clear_index(db_path_for(roots, config), yes=yes)
