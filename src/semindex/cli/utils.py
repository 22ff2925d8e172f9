"""CLI utilities."""

from collections.abc import Sequence
from pathlib import Path

import click

from semindex.config import SemIndexConfig, get_db_path, load_config
from semindex.core.errors import SemIndexError
from semindex.core.logging import configure_logging
from semindex.index import LocalProject, default_registry


def resolve_roots(paths: Sequence[Path]) -> list[Path]:
    """Directories to treat as worktrees (default: current directory)."""
    return [p.resolve() for p in paths] or [Path.cwd().resolve()]


def _verbose() -> bool:
    ctx = click.get_current_context(silent=True)
    obj = ctx.find_root().obj if ctx is not None else None
    return bool(obj and obj.get("verbose"))


def load_cli_config(roots: Sequence[Path]) -> SemIndexConfig:
    """Load config relative to the first root and apply its logging section.

    ``-v`` on the group forces every log output to DEBUG.
    """
    try:
        config = load_config(roots[0])
    except SemIndexError as e:
        raise click.ClickException(str(e)) from e
    configure_logging(config=config.logging, level="DEBUG" if _verbose() else None)
    return config


def db_path_for(roots: Sequence[Path], config: SemIndexConfig) -> Path:
    return get_db_path(roots[0], config)


def local_project(roots: Sequence[Path], config: SemIndexConfig) -> LocalProject:
    return LocalProject(roots, config.index, default_registry())
