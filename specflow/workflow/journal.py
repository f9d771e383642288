"""
Archive journal.

An archive run merges deltas into canonical documents and then moves the
proposal directory. Between those steps a journal entry records what is
still pending:

    merged  canonical documents updated, move pending
    moved   proposal relocated, status rewrite pending

The entry is removed once the archive completes. recover_interrupted() in
archiver.py replays whatever an entry says is left.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from specflow.lib.validate import SchemaRegistry, ValidationError

logger = logging.getLogger(__name__)

SCHEMA_NAME = "journal"
STAGE_MERGED = "merged"
STAGE_MOVED = "moved"


@dataclass
class JournalEntry:
    proposal: str
    stage: str
    source: str  # Proposal directory under the changes root
    archive_path: str
    targets: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    timestamp: str = ""

    def to_dict(self) -> dict:
        return {
            "proposal": self.proposal,
            "stage": self.stage,
            "source": self.source,
            "archive_path": self.archive_path,
            "targets": list(self.targets),
            "added": list(self.added),
            "modified": list(self.modified),
            "removed": list(self.removed),
            "timestamp": self.timestamp or datetime.now().isoformat(),
        }


class ArchiveJournal:
    """Journal entries for one spec root, one JSON file per proposal."""

    def __init__(self, journal_dir: Path, registry: SchemaRegistry | None = None):
        self.journal_dir = journal_dir
        self.registry = registry or SchemaRegistry()

    def _path(self, proposal: str) -> Path:
        return self.journal_dir / f"{proposal}.json"

    def write(self, entry: JournalEntry) -> Path:
        """Validate and write an entry, replacing any previous one.

        Raises:
            ValidationError: if the entry doesn't match the journal schema
            OSError: if the entry can't be written
        """
        data = entry.to_dict()
        path = self._path(entry.proposal)
        self.registry.validate_before_write(data, SCHEMA_NAME, path)

        self.journal_dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        tmp.replace(path)
        logger.debug(f"[JOURNAL] {entry.proposal}: {entry.stage}")
        return path

    def read(self, proposal: str) -> JournalEntry | None:
        path = self._path(proposal)
        if not path.exists():
            return None
        data = self.registry.validate_file(path, SCHEMA_NAME)
        return JournalEntry(**data)

    def clear(self, proposal: str) -> None:
        path = self._path(proposal)
        if path.exists():
            path.unlink()
            logger.debug(f"[JOURNAL] {proposal}: cleared")

    def pending(self) -> list[JournalEntry]:
        """All readable entries. Invalid entry files are logged and skipped."""
        if not self.journal_dir.is_dir():
            return []

        entries = []
        for path in sorted(self.journal_dir.glob("*.json")):
            try:
                entries.append(JournalEntry(**self.registry.validate_file(path, SCHEMA_NAME)))
            except ValidationError as e:
                logger.warning(f"[JOURNAL] Ignoring invalid entry {path.name}: {e}")
        return entries
