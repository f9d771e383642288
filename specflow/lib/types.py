"""
Shared data types for specflow.

This module contains dataclasses used across the parser, merge engine,
archiver, migrator and overview builder to avoid circular imports.
"""

from dataclasses import dataclass, field
from pathlib import Path

DELTA_TYPES = ("ADDED", "MODIFIED", "REMOVED")


@dataclass
class SpecMetadata:
    """Metadata block ("> key: value" lines) of a spec document."""
    state: str = "draft"
    version: str = "1.0.0"
    stack: str | None = None
    emit_path: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    archived_at: str | None = None
    extra: dict[str, str] = field(default_factory=dict)


@dataclass
class Scenario:
    """A WHEN/THEN example attached to a requirement."""
    name: str
    when: list[str] = field(default_factory=list)
    then: list[str] = field(default_factory=list)


@dataclass
class DeltaRequirement:
    """A single requirement entry from an ADDED/MODIFIED/REMOVED section.

    Canonical documents are parsed into the same type with type "ADDED".
    """
    type: str  # "ADDED", "MODIFIED", "REMOVED"
    id: str  # "REQ-001"
    title: str
    description: str = ""
    scenarios: list[Scenario] = field(default_factory=list)
    acceptance: list[str] = field(default_factory=list)  # "AC-001: text"


@dataclass
class ParsedSpec:
    """Structured record of one spec document."""
    title: str
    metadata: SpecMetadata
    added: list[DeltaRequirement] = field(default_factory=list)
    modified: list[DeltaRequirement] = field(default_factory=list)
    removed: list[DeltaRequirement] = field(default_factory=list)
    raw: str = ""
    path: Path | None = None
    issues: list[str] = field(default_factory=list)  # Skipped malformed items

    @property
    def state(self) -> str:
        return self.metadata.state

    @property
    def version(self) -> str:
        return self.metadata.version

    @property
    def deltas(self) -> list[DeltaRequirement]:
        return self.added + self.modified + self.removed


@dataclass
class ChangeProposal:
    """An in-flight proposal directory under the changes root."""
    name: str
    path: Path
    state: str
    version: str
    specs: list[Path] = field(default_factory=list)  # Delta documents
    has_proposal_md: bool = False
    has_tasks_md: bool = False
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class StatusOverview:
    """Lifecycle dashboard: canonical specs plus proposals bucketed by state."""
    archived: list[ParsedSpec] = field(default_factory=list)
    draft: list[ChangeProposal] = field(default_factory=list)
    review: list[ChangeProposal] = field(default_factory=list)
    implementing: list[ChangeProposal] = field(default_factory=list)

    @property
    def total_specs(self) -> int:
        return len(self.archived)

    @property
    def total_changes(self) -> int:
        return len(self.draft) + len(self.review) + len(self.implementing)


@dataclass
class PreconditionResult:
    """Outcome of checking whether a proposal may be archived."""
    can_proceed: bool
    issues: list[str] = field(default_factory=list)
    current_state: str | None = None
    files_complete: bool = False
    has_proposal_md: bool = False
    delta_files: list[Path] = field(default_factory=list)


@dataclass
class MergeResult:
    """Outcome of folding one delta into one canonical document."""
    success: bool
    target: Path
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)  # ADDED ids already present verbatim
    skipped: list[str] = field(default_factory=list)  # MODIFIED/REMOVED ids not in target
    conflicts: list[str] = field(default_factory=list)  # ADDED ids present with other content
    errors: list[str] = field(default_factory=list)
    created: bool = False
    changed: bool = False
    content: str = ""  # Computed document text (also set on dry runs)


@dataclass
class DeltaSummary:
    """Aggregate requirement ids touched by an archive run."""
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    def extend(self, merge: MergeResult) -> None:
        self.added.extend(merge.added)
        self.modified.extend(merge.modified)
        self.removed.extend(merge.removed)


@dataclass
class ArchiveResult:
    """Outcome of archiving one proposal."""
    success: bool
    proposal_name: str
    delta_summary: DeltaSummary = field(default_factory=DeltaSummary)
    archive_path: Path | None = None
    merges: list[MergeResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ReopenResult:
    """Outcome of forking an archived proposal back into draft."""
    success: bool
    proposal_name: str
    path: Path | None = None
    errors: list[str] = field(default_factory=list)


@dataclass
class Migration:
    """One planned file move, paths relative to the project directory."""
    source: str
    target: str


@dataclass
class MigrationResult:
    """Outcome of restructuring a flat specs tree into the nested layout."""
    success: bool
    migrations: list[Migration] = field(default_factory=list)
    backup_path: Path | None = None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False
