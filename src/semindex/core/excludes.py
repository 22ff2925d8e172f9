"""Directories never walked when enumerating project files.

Tier 0 (HARDCODED_DIRS): VCS internals and semindex's own data directory.
    Always excluded, include globs cannot bring them back.

Tier 1 (DEFAULT_PRUNABLE_DIRS): dependencies, caches, build outputs.
    Excluded by default; listing the directory name in
    ``index.include_dirs`` opts it back in.
"""

from __future__ import annotations

HARDCODED_DIRS: frozenset[str] = frozenset(
    (
        # VCS internals
        ".git",
        ".svn",
        ".hg",
        ".bzr",
        # semindex data
        ".semindex",
    )
)

DEFAULT_PRUNABLE_DIRS: frozenset[str] = frozenset(
    (
        # JavaScript/Node.js
        "node_modules",
        ".npm",
        ".yarn",
        ".pnpm-store",
        "bower_components",
        ".next",
        ".nuxt",
        ".turbo",
        # Python
        "venv",
        ".venv",
        ".virtualenv",
        "virtualenv",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        ".tox",
        ".nox",
        ".eggs",
        "site-packages",
        ".ipynb_checkpoints",
        ".hypothesis",
        # Go
        "vendor",
        # Rust
        "target",
        # Generic build/output directories
        "build",
        "dist",
        "out",
        "coverage",
        # IDE/Editor directories
        ".idea",
        ".vscode",
        # Misc caches
        ".cache",
    )
)

PRUNABLE_DIRS: frozenset[str] = HARDCODED_DIRS | DEFAULT_PRUNABLE_DIRS


def is_hardcoded_dir(dirname: str) -> bool:
    """Check if directory is hardcoded (never traversable, not overridable)."""
    return dirname in HARDCODED_DIRS


def is_default_prunable(dirname: str) -> bool:
    """Check if directory is prunable by default (but user can override)."""
    return dirname in DEFAULT_PRUNABLE_DIRS


def should_prune(dirname: str, include_dirs: frozenset[str] = frozenset()) -> bool:
    """Decide whether a directory is skipped during the walk."""
    if is_hardcoded_dir(dirname):
        return True
    return is_default_prunable(dirname) and dirname not in include_dirs
