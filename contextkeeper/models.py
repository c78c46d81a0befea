"""Core data models shared across contextkeeper components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class FileStatus(str, Enum):
    """Change status of a file within a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"

    @classmethod
    def from_upstream(cls, value: str) -> "FileStatus":
        """Map a hosting API status onto the four statuses the engine understands."""
        lowered = (value or "").strip().lower()
        if lowered == "deleted":
            return cls.REMOVED
        try:
            return cls(lowered)
        except ValueError:
            # copied / changed / unchanged all carry content at the head revision.
            return cls.MODIFIED

    @property
    def skips_symbols(self) -> bool:
        return self in (FileStatus.REMOVED, FileStatus.RENAMED)


@dataclass(frozen=True)
class ChangedFile:
    """One file touched by a pull request, as reported by the hosting API."""

    filename: str
    status: FileStatus
    patch: str = ""
    raw_url: Optional[str] = None
    previous_filename: Optional[str] = None


@dataclass(frozen=True)
class SymbolFingerprint:
    """Identity and content digest of a callable symbol at one revision."""

    signature: str
    body_hash: Optional[str] = None


FingerprintMap = Dict[str, SymbolFingerprint]


@dataclass(frozen=True)
class DiffResult:
    """Classification of symbol changes between two fingerprint maps."""

    added: FrozenSet[str] = frozenset()
    removed: FrozenSet[str] = frozenset()
    signature_changed: FrozenSet[str] = frozenset()
    body_changed: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.signature_changed or self.body_changed)


@dataclass
class FileNarrative:
    """Story lines and prompts generated for a single file."""

    story_lines: List[str] = field(default_factory=list)
    prompts: List[str] = field(default_factory=list)


@dataclass
class FileReport:
    """Aggregated outcome for one file of the pull request."""

    filename: str
    status: FileStatus
    story_lines: List[str] = field(default_factory=list)
    prompts: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    degraded: bool = False


@dataclass
class AnalysisReport:
    """Final storyline, prompts and raw diff for a pull request."""

    storyline: str
    prompts: List[str]
    raw_diff: str
    files: List[FileReport] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "storyline": self.storyline,
            "prompts": list(self.prompts),
            "raw_diff": self.raw_diff,
        }


@dataclass(frozen=True)
class PullRequestRef:
    """Identifies a pull request on the hosting service."""

    owner: str
    repo: str
    number: int

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


@dataclass(frozen=True)
class PullRequestMetadata:
    """Subset of pull-request details needed to fetch base content."""

    base_revision: str
    head_revision: Optional[str] = None
    title: Optional[str] = None
