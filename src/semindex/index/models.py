"""Data model for the semantic index.

Two groups live here:

- SQLModel tables (``files``, ``documents``): the persisted Indexed File
  Records. One ``files`` row per (worktree, relative path); its documents
  are replaced wholesale whenever the file is re-indexed.
- Plain dataclasses (ByteRange, Document, FileKey, SourceFile,
  SearchResult): values passed between the extractor, the orchestrator
  and callers. They are never persisted directly.
"""

from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import Column, ForeignKey, Integer, LargeBinary, UniqueConstraint
from sqlmodel import Field, SQLModel

# ============================================================================
# ENUMS
# ============================================================================


class ProjectPhase(str, Enum):
    """Indexing lifecycle of a project as seen by the orchestrator."""

    UNREGISTERED = "unregistered"  # never submitted to index_project
    REGISTERED = "registered"  # pass submitted, no file finished yet
    DRAINING = "draining"  # files finishing, pending > 0
    IDLE = "idle"  # pending == 0


class OutcomeKind(str, Enum):
    """How a single file job ended."""

    COMMITTED = "committed"  # record written
    ABANDONED = "abandoned"  # parse/embedding/storage failure, retried next pass
    SUPERSEDED = "superseded"  # newer pass or changed fingerprint, nothing written


# ============================================================================
# TABLES
# ============================================================================


class IndexedFile(SQLModel, table=True):
    """Fingerprint of one indexed file. Documents hang off it."""

    __tablename__ = "files"
    __table_args__ = (UniqueConstraint("worktree_id", "relative_path"),)

    id: int | None = Field(default=None, primary_key=True)
    worktree_id: str = Field(index=True)
    relative_path: str
    fingerprint: str
    language: str | None = None
    indexed_at: float | None = None


class DocumentRecord(SQLModel, table=True):
    """One embedded fragment of an indexed file."""

    __tablename__ = "documents"

    id: int | None = Field(default=None, primary_key=True)
    file_id: int = Field(
        sa_column=Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), index=True)
    )
    ordinal: int  # position within the file, source order
    name: str
    start_byte: int
    end_byte: int
    embedding: bytes = Field(sa_column=Column(LargeBinary, nullable=False))  # float32 LE
    dimensions: int


# ============================================================================
# VALUE TYPES
# ============================================================================


@dataclass(frozen=True, slots=True, order=True)
class ByteRange:
    """Half-open byte interval ``[start, end)`` into the file's source bytes."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end:
            raise ValueError(f"Invalid byte range [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start

    def contains(self, other: "ByteRange") -> bool:
        """True if ``other`` lies entirely inside this range."""
        return self.start <= other.start and other.end <= self.end


@dataclass(frozen=True, slots=True)
class Document:
    """A named, byte-ranged, embeddable fragment of one source file.

    ``embedding`` is empty until the embedding provider fills it in, and
    unit length afterwards.
    """

    name: str
    range: ByteRange
    content: str
    embedding: list[float] = field(default_factory=list)


@dataclass(frozen=True, slots=True, order=True)
class FileKey:
    """Identity of an Indexed File Record."""

    worktree_id: str
    relative_path: str


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A file as enumerated by a worktree: raw bytes, never transcoded."""

    worktree_id: str
    relative_path: str
    content: bytes

    @property
    def key(self) -> FileKey:
        return FileKey(self.worktree_id, self.relative_path)


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One ranked hit returned by search_project."""

    name: str
    range: ByteRange
    worktree_id: str
    relative_path: str
    score: float
