"""
Archiving proposals into the canonical spec tree.

archive_proposal() runs:

    preconditions -> parse deltas -> dry-run every merge -> merge
    -> journal "merged" -> move to archive/<name> -> journal "moved"
    -> rewrite state to archived -> clear journal

A merge conflict aborts before anything is written. After the merges a
crash leaves a journal entry; rerunning archive_proposal() or calling
recover_interrupted() skips the merges and completes the move and status
rewrite from that entry. An unreadable entry is reported, never replayed.
"""

import logging
import shutil
from datetime import date
from pathlib import Path

from specflow.lib.config import SpecflowConfig, load_config
from specflow.lib.domain import canonical_target, split_domain
from specflow.lib.metadata import remove_metadata, update_metadata
from specflow.lib.parser import UNTITLED, parse_metadata, parse_spec_file
from specflow.lib.types import ArchiveResult, DeltaSummary, ParsedSpec, ReopenResult
from specflow.lib.validate import SchemaRegistry, ValidationError
from specflow.workflow.journal import STAGE_MERGED, STAGE_MOVED, ArchiveJournal, JournalEntry
from specflow.workflow.merge import merge_deltas
from specflow.workflow.preconditions import check_preconditions
from specflow.workflow.proposals import DELTA_SUBDIR, find_delta_documents, list_proposals
from specflow.workflow.state_machine import LifecycleState, can_transition

logger = logging.getLogger(__name__)


def _rel(path: Path, root_dir: Path) -> str:
    try:
        return path.relative_to(root_dir).as_posix()
    except ValueError:
        return str(path)


def _canonical_title(target: Path, deltas: list[ParsedSpec], specs_root: Path, config: SpecflowConfig) -> str:
    for delta in deltas:
        if delta.title != UNTITLED:
            return delta.title
    parts, name = split_domain(target.relative_to(specs_root), config)
    return "/".join(parts + (name,))


def _plan_merges(
    proposal_dir: Path,
    delta_files: list[Path],
    specs_root: Path,
    config: SpecflowConfig,
    result: ArchiveResult,
) -> dict[Path, list[ParsedSpec]]:
    """Parse delta documents and group them by canonical target."""
    delta_root = proposal_dir / DELTA_SUBDIR
    groups: dict[Path, list[ParsedSpec]] = {}

    for doc in delta_files:
        parsed = parse_spec_file(doc)
        rel = _rel(doc, proposal_dir)
        for issue in parsed.issues:
            result.warnings.append(f"{rel}: {issue}")
        if not parsed.deltas:
            result.warnings.append(f"{rel}: no ADDED/MODIFIED/REMOVED requirements")
            continue
        target = canonical_target(doc, delta_root, specs_root, config)
        groups.setdefault(target, []).append(parsed)

    return groups


def _mark_archived(archive_path: Path, config: SpecflowConfig, today: str) -> None:
    """Set state archived and stamp the archive date on the moved documents."""
    documents = [archive_path / config.proposal_file] + find_delta_documents(archive_path, config)
    for doc in documents:
        if not doc.exists():
            continue
        content = doc.read_text(encoding="utf-8")
        updated = update_metadata(content, "state", LifecycleState.ARCHIVED.value)
        updated = update_metadata(updated, "archived_at", today)
        if updated != content:
            doc.write_text(updated, encoding="utf-8")


def _complete(entry: JournalEntry, root_dir: Path, config: SpecflowConfig, journal: ArchiveJournal, today: str) -> list[str]:
    """Finish an archive from its journal entry. Returns errors."""
    source = root_dir / entry.source
    archive_path = root_dir / entry.archive_path

    if entry.stage == STAGE_MERGED:
        if source.exists():
            if archive_path.exists():
                return [f"Archive destination already exists: {entry.archive_path}"]
            archive_path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"[ARCHIVE] {entry.proposal}: moving to {entry.archive_path}")
            shutil.move(str(source), str(archive_path))
        elif not archive_path.exists():
            return [f"Proposal directory missing from both {entry.source} and {entry.archive_path}"]
        entry.stage = STAGE_MOVED
        journal.write(entry)

    _mark_archived(archive_path, config, today)
    journal.clear(entry.proposal)
    return []


def archive_proposal(
    proposal_name: str,
    root_dir: Path,
    config: SpecflowConfig | None = None,
    dry_run: bool = False,
    today: str | None = None,
    registry: SchemaRegistry | None = None,
) -> ArchiveResult:
    """Merge a proposal's deltas into the canonical tree and archive it.

    Args:
        proposal_name: Directory name under the changes root
        root_dir: Spec root (contains specs/, changes/, archive/)
        config: Layout config, loaded from root_dir when omitted
        dry_run: Compute merges without writing or moving anything
        today: Date stamp (YYYY-MM-DD), defaults to today

    Raises:
        OSError: on filesystem failures
    """
    root_dir = Path(root_dir)
    config = config or load_config(root_dir, registry)
    today = today or date.today().isoformat()

    proposal_dir = config.changes_root(root_dir) / proposal_name
    specs_root = config.specs_root(root_dir)
    archive_path = config.archive_root(root_dir) / proposal_name
    result = ArchiveResult(success=False, proposal_name=proposal_name, archive_path=archive_path)

    journal = ArchiveJournal(config.journal_root(root_dir), registry)
    try:
        previous = journal.read(proposal_name)
    except ValidationError as e:
        result.errors.append(f"Unreadable archive journal for '{proposal_name}': {e}")
        logger.warning(f"[ARCHIVE] {proposal_name}: {e}")
        return result

    if previous is not None:
        # Merges already applied; only the move and status rewrite are left
        result.warnings.append(f"Resuming interrupted archive of '{proposal_name}' from stage '{previous.stage}'")
        result.delta_summary = DeltaSummary(
            added=list(previous.added),
            modified=list(previous.modified),
            removed=list(previous.removed),
        )
        result.archive_path = root_dir / previous.archive_path
        if dry_run:
            result.success = True
            return result
        result.errors.extend(_complete(previous, root_dir, config, journal, today))
        result.success = not result.errors
        return result

    pre = check_preconditions(proposal_dir, config)
    if not pre.can_proceed:
        result.errors.extend(pre.issues)
        logger.warning(f"[ARCHIVE] {proposal_name}: preconditions failed ({len(pre.issues)} issue(s))")
        return result

    if archive_path.exists():
        result.errors.append(f"Archive already contains '{proposal_name}': {archive_path}")
        return result

    groups = _plan_merges(proposal_dir, pre.delta_files, specs_root, config, result)
    titles = {t: _canonical_title(t, deltas, specs_root, config) for t, deltas in groups.items()}

    # Dry-run every merge first so a conflict in one domain writes nothing anywhere
    previews = [
        merge_deltas(target, deltas, dry_run=True, title=titles[target], today=today)
        for target, deltas in groups.items()
    ]
    for preview in previews:
        result.errors.extend(preview.errors)
    if result.errors:
        logger.warning(f"[ARCHIVE] {proposal_name}: merge conflicts, nothing written")
        return result

    if dry_run:
        result.merges = previews
        for preview in previews:
            result.delta_summary.extend(preview)
        result.success = True
        return result

    for target, deltas in groups.items():
        merge = merge_deltas(target, deltas, title=titles[target], today=today)
        result.merges.append(merge)
        if not merge.success:
            result.errors.extend(merge.errors)
            return result
        result.delta_summary.extend(merge)

    entry = JournalEntry(
        proposal=proposal_name,
        stage=STAGE_MERGED,
        source=_rel(proposal_dir, root_dir),
        archive_path=_rel(archive_path, root_dir),
        targets=[_rel(t, root_dir) for t in groups],
        added=result.delta_summary.added,
        modified=result.delta_summary.modified,
        removed=result.delta_summary.removed,
    )
    journal.write(entry)

    errors = _complete(entry, root_dir, config, journal, today)
    if errors:
        result.errors.extend(errors)
        return result

    result.success = True
    summary = result.delta_summary
    logger.info(
        f"[ARCHIVE] {proposal_name}: archived "
        f"(+{len(summary.added)} ~{len(summary.modified)} -{len(summary.removed)})"
    )
    return result


def recover_interrupted(
    root_dir: Path,
    config: SpecflowConfig | None = None,
    today: str | None = None,
    registry: SchemaRegistry | None = None,
) -> list[ArchiveResult]:
    """Complete every archive whose journal entry is still present."""
    root_dir = Path(root_dir)
    config = config or load_config(root_dir, registry)
    today = today or date.today().isoformat()
    journal = ArchiveJournal(config.journal_root(root_dir), registry)

    results = []
    for entry in journal.pending():
        logger.info(f"[ARCHIVE] {entry.proposal}: recovering from stage '{entry.stage}'")
        result = ArchiveResult(
            success=False,
            proposal_name=entry.proposal,
            delta_summary=DeltaSummary(
                added=list(entry.added),
                modified=list(entry.modified),
                removed=list(entry.removed),
            ),
            archive_path=root_dir / entry.archive_path,
        )
        result.errors.extend(_complete(entry, root_dir, config, journal, today))
        result.success = not result.errors
        results.append(result)
    return results


def get_archivable_proposals(root_dir: Path, config: SpecflowConfig | None = None) -> list[str]:
    """Names of proposals in the implementing state."""
    root_dir = Path(root_dir)
    config = config or load_config(root_dir)
    return [
        p.name for p in list_proposals(root_dir, config)
        if p.state == LifecycleState.IMPLEMENTING.value
    ]


def archive_all(
    root_dir: Path,
    config: SpecflowConfig | None = None,
    dry_run: bool = False,
    today: str | None = None,
) -> list[ArchiveResult]:
    """Archive every implementing proposal. One failure doesn't stop the rest."""
    root_dir = Path(root_dir)
    config = config or load_config(root_dir)
    registry = SchemaRegistry()
    return [
        archive_proposal(name, root_dir, config, dry_run=dry_run, today=today, registry=registry)
        for name in get_archivable_proposals(root_dir, config)
    ]


def _reopen_name(name: str, changes_root: Path) -> str:
    candidate = f"{name}-reopen"
    counter = 2
    while (changes_root / candidate).exists():
        candidate = f"{name}-reopen-{counter}"
        counter += 1
    return candidate


def reopen_proposal(
    proposal_name: str,
    root_dir: Path,
    new_name: str | None = None,
    config: SpecflowConfig | None = None,
) -> ReopenResult:
    """Fork an archived proposal into a new draft under the changes root.

    The archived copy and the canonical specs are left untouched.
    """
    root_dir = Path(root_dir)
    config = config or load_config(root_dir)
    source = config.archive_root(root_dir) / proposal_name
    changes_root = config.changes_root(root_dir)
    result = ReopenResult(success=False, proposal_name=new_name or proposal_name)

    if not source.is_dir():
        result.errors.append(f"Archived proposal not found: {source}")
        return result

    narrative = source / config.proposal_file
    state = LifecycleState.ARCHIVED.value
    if narrative.exists():
        state = parse_metadata(narrative.read_text(encoding="utf-8")).state
    if not can_transition(state, LifecycleState.DRAFT):
        result.errors.append(f"Cannot reopen '{proposal_name}' from state '{state}'")
        return result

    new_name = new_name or _reopen_name(proposal_name, changes_root)
    dest = changes_root / new_name
    result.proposal_name = new_name
    if dest.exists():
        result.errors.append(f"Proposal already exists: {dest}")
        return result

    changes_root.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, dest)

    for doc in [dest / config.proposal_file] + find_delta_documents(dest, config):
        if not doc.exists():
            continue
        content = doc.read_text(encoding="utf-8")
        updated = update_metadata(content, "state", LifecycleState.DRAFT.value)
        doc.write_text(remove_metadata(updated, "archived_at"), encoding="utf-8")

    logger.info(f"[ARCHIVE] {proposal_name}: reopened as '{new_name}'")
    result.path = dest
    result.success = True
    return result
