"""
Delta merge engine.

Folds ADDED/MODIFIED/REMOVED requirements into a canonical per-domain
document. Requirement blocks are always written by format_requirement(),
which is deterministic, so merging the same delta twice leaves the document
byte-identical.

Conflict policy for ADDED ids that already exist in the target:
- same content after formatting: no-op, reported in `unchanged`
- different content: conflict, the merge fails and nothing is written
MODIFIED/REMOVED ids missing from the target are reported in `skipped`.
"""

import logging
import re
from datetime import date
from pathlib import Path

from specflow.lib.metadata import update_metadata
from specflow.lib.parser import (
    ACCEPTANCE_LABEL_RE,
    BlockKind,
    RequirementBlock,
    RequirementLayout,
    parse_requirement_blocks,
    tokenize,
)
from specflow.lib.types import DeltaRequirement, MergeResult, ParsedSpec
from specflow.workflow.state_machine import LifecycleState

logger = logging.getLogger(__name__)

REQUIREMENTS_HEADING = "## Requirements"
REQUIREMENTS_SECTION_RE = re.compile(r'^##\s+(?:Requirements|需求)\s*$', re.IGNORECASE)
TOP_HEADING_RE = re.compile(r'^#{1,2}\s')
ACCEPTANCE_LABEL = "**Acceptance Criteria:**"


def _normalize_description(text: str) -> list[str]:
    lines: list[str] = []
    for line in (text or "").splitlines():
        line = line.rstrip()
        if not line.strip():
            if lines and lines[-1] != "":
                lines.append("")
            continue
        lines.append(line)
    while lines and lines[-1] == "":
        lines.pop()
    return _escape_structure(lines)


def _is_structural(block) -> bool:
    """True if a description line would be read back as something else."""
    if block.kind == BlockKind.HEADING:
        return block.level <= 3
    if block.kind == BlockKind.LABEL:
        return bool(ACCEPTANCE_LABEL_RE.match(block.raw))
    return block.kind in (BlockKind.METADATA, BlockKind.SCENARIO, BlockKind.CHECKBOX)


def _escape_structure(lines: list[str]) -> list[str]:
    # A leading backslash keeps the line as prose, and escaped lines never need it again
    escaped = list(lines)
    for block in tokenize("\n".join(lines)):
        if _is_structural(block):
            escaped[block.index] = "\\" + block.raw
    return escaped


def _steps(keyword: str, items: list[str]) -> list[str]:
    items = [s.strip() for s in items if s and s.strip()]
    return [f"- {keyword if i == 0 else 'AND'} {item}" for i, item in enumerate(items)]


def format_requirement(req: DeltaRequirement) -> str:
    """Render a requirement block (no trailing newline).

    ### REQ-001: Title

    Description

    **Scenario: name**
    - WHEN ...
    - AND ...
    - THEN ...

    **Acceptance Criteria:**
    - [ ] AC-001: ...
    """
    lines = [f"### {req.id}: {req.title.strip()}"]

    description = _normalize_description(req.description)
    if description:
        lines.append("")
        lines.extend(description)

    for scenario in req.scenarios or []:
        lines.append("")
        lines.append(f"**Scenario: {scenario.name.strip()}**")
        lines.extend(_steps("WHEN", scenario.when))
        lines.extend(_steps("THEN", scenario.then))

    acceptance = [a.strip() for a in (req.acceptance or []) if a and a.strip()]
    if acceptance:
        lines.append("")
        lines.append(ACCEPTANCE_LABEL)
        lines.extend(f"- [ ] {a}" for a in acceptance)

    return "\n".join(lines)


def format_canonical_document(title: str, requirements: list[DeltaRequirement], today: str) -> str:
    """Render a fresh canonical document holding the given requirements."""
    lines = [
        f"# {title}",
        "",
        f"> state: {LifecycleState.ARCHIVED.value}",
        "> version: 1.0.0",
        f"> updated: {today}",
        "",
        REQUIREMENTS_HEADING,
    ]
    for req in requirements:
        lines.append("")
        lines.extend(format_requirement(req).splitlines())
    return "\n".join(lines) + "\n"


def _insert_index(layout: RequirementLayout) -> tuple[int, list[str]]:
    """Where to insert a new block, and any lines that must precede it."""
    segments = layout.segments
    for i in range(len(segments) - 1, -1, -1):
        if isinstance(segments[i], RequirementBlock):
            return i + 1, [""]

    for i, segment in enumerate(segments):
        if isinstance(segment, str) and REQUIREMENTS_SECTION_RE.match(segment):
            end = i + 1
            while end < len(segments) and not (
                isinstance(segments[end], str) and TOP_HEADING_RE.match(segments[end])
            ):
                end += 1
            last = end - 1
            while last > i and isinstance(segments[last], str) and not segments[last].strip():
                last -= 1
            return last + 1, [""]

    end = len(segments)
    while end > 0 and isinstance(segments[end - 1], str) and not segments[end - 1].strip():
        end -= 1
    prefix = ["", REQUIREMENTS_HEADING, ""] if end > 0 else [REQUIREMENTS_HEADING, ""]
    return end, prefix


def _remove_block(layout: RequirementLayout, block: RequirementBlock) -> None:
    segments = layout.segments
    k = segments.index(block)
    del segments[k]
    # Collapse the blank line pair left behind
    if k < len(segments) and segments[k] == "" and (k == 0 or segments[k - 1] == ""):
        del segments[k]


def apply_delta(
    content: str | None,
    delta: ParsedSpec,
    result: MergeResult,
    title: str,
    today: str,
) -> str | None:
    """Fold one delta into document text, recording outcomes on result.

    content=None means the target doesn't exist yet. Returns the new text,
    or None when an ADDED conflict aborts the merge.
    """
    if content is None:
        fresh = list(delta.added)
        result.added.extend(r.id for r in fresh)
        for req in delta.modified + delta.removed:
            result.skipped.append(req.id)
        result.created = True
        return format_canonical_document(title, fresh, today)

    layout = parse_requirement_blocks(content)
    changed = False

    conflicts = []
    for req in delta.added:
        existing = layout.find(req.id)
        if existing is not None and format_requirement(existing.requirement) != format_requirement(req):
            conflicts.append(req.id)
    if conflicts:
        result.conflicts.extend(conflicts)
        for req_id in conflicts:
            result.errors.append(f"{req_id} already exists in {result.target} with different content")
        return None

    for req in delta.added:
        if layout.find(req.id) is not None:
            result.unchanged.append(req.id)
            continue
        new_lines = format_requirement(req).splitlines()
        index, prefix = _insert_index(layout)
        layout.segments[index:index] = prefix + [
            RequirementBlock(id=req.id, lines=new_lines, requirement=req)
        ]
        result.added.append(req.id)
        changed = True

    for req in delta.modified:
        existing = layout.find(req.id)
        if existing is None:
            result.skipped.append(req.id)
            continue
        formatted = format_requirement(req)
        if format_requirement(existing.requirement) == formatted and "\n".join(existing.lines) == formatted:
            result.unchanged.append(req.id)
            continue
        existing.lines = formatted.splitlines()
        existing.requirement = req
        result.modified.append(req.id)
        changed = True

    for req in delta.removed:
        existing = layout.find(req.id)
        if existing is None:
            result.skipped.append(req.id)
            continue
        _remove_block(layout, existing)
        result.removed.append(req.id)
        changed = True

    if not changed:
        return content
    return update_metadata(layout.render(), "updated_at", today)


def merge_deltas(
    target_path: Path,
    deltas: list[ParsedSpec],
    dry_run: bool = False,
    title: str | None = None,
    today: str | None = None,
) -> MergeResult:
    """Fold several deltas, in order, into one canonical document.

    The document is written once at the end, and only if its text changed.

    Raises:
        OSError: if the target can't be read or written
    """
    target_path = Path(target_path)
    today = today or date.today().isoformat()
    title = title or target_path.name.split(".", 1)[0]
    result = MergeResult(success=True, target=target_path)

    original = target_path.read_text(encoding="utf-8") if target_path.exists() else None
    content = original
    for delta in deltas:
        content = apply_delta(content, delta, result, title, today)
        if content is None:
            result.success = False
            logger.warning(f"[MERGE] {target_path}: conflict on {', '.join(result.conflicts)}")
            return result

    result.content = content or ""
    result.changed = content != original
    for req_id in result.skipped:
        logger.warning(f"[MERGE] {target_path}: {req_id} not present, skipped")

    if dry_run:
        logger.info(f"[MERGE] {target_path}: dry run, +{len(result.added)} ~{len(result.modified)} -{len(result.removed)}")
        return result

    if result.changed:
        target_path.parent.mkdir(parents=True, exist_ok=True)
        target_path.write_text(content, encoding="utf-8")
    logger.info(f"[MERGE] {target_path}: +{len(result.added)} ~{len(result.modified)} -{len(result.removed)}")
    return result


def merge_delta(
    target_path: Path,
    delta: ParsedSpec,
    dry_run: bool = False,
    title: str | None = None,
    today: str | None = None,
) -> MergeResult:
    """Fold one delta into a canonical document, creating it if needed."""
    return merge_deltas(target_path, [delta], dry_run=dry_run, title=title, today=today)
