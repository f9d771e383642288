"""
Loading change proposals from the changes root.

A proposal is a directory:

    changes/<name>/
        proposal.md        narrative document, carries "> state:"
        tasks.md           optional task list
        specs/...          delta documents (*.fspec.md)
"""

import logging
from datetime import datetime
from pathlib import Path

from specflow.lib.config import SpecflowConfig
from specflow.lib.parser import parse_metadata
from specflow.lib.types import ChangeProposal, SpecMetadata

logger = logging.getLogger(__name__)

DELTA_SUBDIR = "specs"


def find_spec_files(directory: Path, config: SpecflowConfig | None = None) -> list[Path]:
    """All spec files under directory, recursively, sorted. Missing dir -> []."""
    config = config or SpecflowConfig()
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*") if p.is_file() and config.is_spec_file(p))


def find_delta_documents(proposal_dir: Path, config: SpecflowConfig | None = None) -> list[Path]:
    """All delta documents under <proposal>/specs/, sorted."""
    return find_spec_files(Path(proposal_dir) / DELTA_SUBDIR, config)


def _mtime_iso(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime).isoformat(timespec="seconds")


def load_proposal(proposal_dir: Path, config: SpecflowConfig | None = None) -> ChangeProposal:
    """Build a ChangeProposal from a proposal directory.

    Missing narrative document reads as default metadata (draft, 1.0.0).

    Raises:
        OSError: if the narrative document exists but can't be read
    """
    config = config or SpecflowConfig()
    narrative = proposal_dir / config.proposal_file

    if narrative.exists():
        metadata = parse_metadata(narrative.read_text(encoding="utf-8"))
    else:
        metadata = SpecMetadata()

    created_at = metadata.created_at
    updated_at = metadata.updated_at
    if narrative.exists():
        updated_at = updated_at or _mtime_iso(narrative)

    return ChangeProposal(
        name=proposal_dir.name,
        path=proposal_dir,
        state=metadata.state,
        version=metadata.version,
        specs=find_delta_documents(proposal_dir, config),
        has_proposal_md=narrative.exists(),
        has_tasks_md=(proposal_dir / config.tasks_file).exists(),
        created_at=created_at,
        updated_at=updated_at,
    )


def list_proposals(root_dir: Path, config: SpecflowConfig | None = None) -> list[ChangeProposal]:
    """All proposals under the changes root, sorted by name."""
    config = config or SpecflowConfig()
    changes_root = config.changes_root(root_dir)
    if not changes_root.is_dir():
        return []

    proposals = []
    for d in sorted(changes_root.iterdir()):
        if d.is_dir() and not d.name.startswith((".", "_")):
            proposals.append(load_proposal(d, config))
    return proposals
