"""Project and worktree collaborators.

The orchestrator only needs two things from a project: a stable identity
and, per worktree, an enumeration of ``(relative_path, content_bytes)``.
Anything that satisfies the Project/Worktree protocols works; LocalProject
is the filesystem-backed implementation used by the CLI.
"""

from __future__ import annotations

import fnmatch
import hashlib
import os
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from semindex.config.models import IndexConfig
from semindex.core.excludes import should_prune
from semindex.index._internal.parsing.packs import LanguageRegistry, default_registry
from semindex.index.models import SourceFile

log = structlog.get_logger()


def fingerprint(content: bytes) -> str:
    """Content fingerprint used to decide "unchanged, skip"."""
    return hashlib.sha256(content).hexdigest()


def matches_glob(rel_path: str, pattern: str) -> bool:
    """Check if a path matches a glob pattern, with ** support."""
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    # Handle **/pattern for any-depth matching
    if pattern.startswith("**/"):
        return fnmatch.fnmatch(rel_path, pattern[3:])
    return False


@runtime_checkable
class Worktree(Protocol):
    """A checked-out file tree inside a project."""

    @property
    def worktree_id(self) -> str: ...

    def iter_files(self) -> Iterator[SourceFile]:
        """Yield every indexable file with its raw bytes."""
        ...


@runtime_checkable
class Project(Protocol):
    """A set of worktrees indexed and searched together."""

    @property
    def project_id(self) -> str: ...

    def worktrees(self) -> Sequence[Worktree]: ...


class LocalWorktree:
    """Directory on the local filesystem.

    Prunes VCS and dependency directories, honours include/exclude globs
    and the size cap, and skips files whose language has no pack.
    """

    def __init__(
        self,
        root: Path,
        config: IndexConfig | None = None,
        registry: LanguageRegistry | None = None,
    ) -> None:
        self.root = root.resolve()
        self._config = config or IndexConfig()
        self._registry = registry
        self._include_dirs = frozenset(self._config.include_dirs)
        self._max_bytes = int(self._config.max_file_size_mb * 1024 * 1024)

    @property
    def worktree_id(self) -> str:
        return str(self.root)

    def _wanted(self, rel_path: str) -> bool:
        cfg = self._config
        if cfg.include_globs and not any(matches_glob(rel_path, p) for p in cfg.include_globs):
            return False
        if any(matches_glob(rel_path, p) for p in cfg.exclude_globs):
            return False
        return self._registry is None or self._registry.for_path(rel_path) is not None

    def iter_files(self) -> Iterator[SourceFile]:
        """Walk the root in sorted order.

        Raises:
            FileNotFoundError: The root is not a directory.
        """
        if not self.root.is_dir():
            raise FileNotFoundError(f"Worktree root is not a directory: {self.root}")

        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not should_prune(d, self._include_dirs))
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                rel_path = path.relative_to(self.root).as_posix()
                if not self._wanted(rel_path):
                    continue
                try:
                    if not path.is_file() or path.stat().st_size > self._max_bytes:
                        continue
                    content = path.read_bytes()
                except OSError as e:
                    log.warning("discovery.file_unreadable", path=rel_path, error=str(e))
                    continue
                yield SourceFile(self.worktree_id, rel_path, content)


class LocalProject:
    """One or more local directories, each its own worktree."""

    def __init__(
        self,
        roots: Sequence[Path],
        config: IndexConfig | None = None,
        registry: LanguageRegistry | None = None,
    ) -> None:
        if not roots:
            raise ValueError("LocalProject needs at least one root")
        registry = registry or default_registry()
        seen: dict[Path, LocalWorktree] = {}
        for root in roots:
            worktree = LocalWorktree(root, config, registry)
            seen.setdefault(worktree.root, worktree)
        self._worktrees = list(seen.values())

    @property
    def project_id(self) -> str:
        return "local:" + os.pathsep.join(sorted(w.worktree_id for w in self._worktrees))

    def worktrees(self) -> Sequence[LocalWorktree]:
        return list(self._worktrees)
