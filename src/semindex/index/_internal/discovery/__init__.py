"""Project enumeration and fingerprinting."""

from semindex.index._internal.discovery.project import (
    LocalProject,
    LocalWorktree,
    Project,
    Worktree,
    fingerprint,
    matches_glob,
)

__all__ = [
    "Project",
    "Worktree",
    "LocalProject",
    "LocalWorktree",
    "fingerprint",
    "matches_glob",
]
