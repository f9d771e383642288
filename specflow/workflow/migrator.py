"""
One-time migration of a flat specs/ tree into the nested layout.

    specs/user-auth.fspec.md   ->  openspec/specs/user/auth.fspec.md
    specs/auth.fspec.md        ->  openspec/specs/auth/spec.fspec.md
    specs/api/v1/users.fspec.md -> openspec/specs/api/v1/users.fspec.md

The move can't be undone by rerunning, so a full copy of the source tree is
taken first (specs.bak, or a timestamped name if that exists). A dry run
returns the same plan and touches nothing.
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path

from specflow.lib.config import SpecflowConfig
from specflow.lib.domain import extract_domain_from_filename, split_domain
from specflow.lib.metadata import update_metadata
from specflow.lib.types import Migration, MigrationResult
from specflow.workflow.proposals import find_spec_files
from specflow.workflow.state_machine import LifecycleState

logger = logging.getLogger(__name__)

__all__ = [
    "check_migration_preconditions",
    "find_spec_files",
    "extract_domain_from_filename",
    "compute_target_path",
    "backup_specs_dir",
    "create_layout",
    "update_to_archived_state",
    "migrate",
    "format_migration_report",
]

PROJECT_TEMPLATE = """# Project Conventions

> Shared context for every spec in this repository.

## Purpose

Describe what this project does and who it is for.

## Tech Stack

- Language:
- Frameworks:

## Conventions

- Canonical specs live in `specs/<domain>/<name>.fspec.md`.
- Proposed changes live in `changes/<proposal>/` until archived.
"""

AGENTS_TEMPLATE = """# AI Agent Instructions

Instructions for AI Agent assistants working with specs in this directory.

## Workflow

1. Create a proposal in `changes/<proposal>/` with `proposal.md` and delta specs under `specs/`.
2. Describe changes in `## ADDED Requirements`, `## MODIFIED Requirements` and `## REMOVED Requirements` sections.
3. Use `### REQ-NNN: Title` headings, `**Scenario: name**` blocks with WHEN/AND/THEN bullets, and `- [ ] AC-NNN:` acceptance criteria.
4. Move the proposal through draft -> review -> implementing, then archive it to merge into `specs/`.
"""

LAYOUT_SUBDIRS = ("specs_dir", "changes_dir", "archive_dir")
TEMPLATES = {
    "project.md": PROJECT_TEMPLATE,
    "AGENTS.md": AGENTS_TEMPLATE,
}


def check_migration_preconditions(project_dir: Path, config: SpecflowConfig | None = None) -> dict:
    """Check whether the flat specs tree can be migrated.

    Returns a dict with can_migrate, specs_exists, target_exists, spec_count,
    issues (blocking) and warnings.
    """
    config = config or SpecflowConfig()
    project_dir = Path(project_dir)
    specs_dir = project_dir / config.migration_source_dir
    target_dir = project_dir / config.migration_target_dir

    issues = []
    warnings = []

    specs_exists = specs_dir.is_dir()
    spec_count = len(find_spec_files(specs_dir, config))
    if not specs_exists:
        issues.append(f"{config.migration_source_dir}/ directory does not exist")
    elif spec_count == 0:
        issues.append(f"{config.migration_source_dir}/ contains no spec files")

    target_exists = target_dir.exists()
    if target_exists:
        warnings.append(
            f"{config.migration_target_dir}/ already exists; files will be merged into it"
        )

    return {
        "can_migrate": not issues,
        "specs_exists": specs_exists,
        "target_exists": target_exists,
        "spec_count": spec_count,
        "issues": issues,
        "warnings": warnings,
    }


def compute_target_path(
    source_file: Path,
    specs_dir: Path,
    target_specs_dir: Path,
    config: SpecflowConfig | None = None,
) -> Path:
    """Destination of a spec file in the nested layout.

    Nested files keep their directories as the domain; flat files are split
    on the first hyphen of their name.
    """
    config = config or SpecflowConfig()
    parts, name = split_domain(Path(source_file).relative_to(specs_dir), config)
    return target_specs_dir.joinpath(*parts) / f"{name}{config.canonical_extension}"


def backup_specs_dir(specs_dir: Path) -> Path:
    """Copy specs_dir to a backup path that doesn't exist yet.

    Tries <dir>.bak, then <dir>.bak.<timestamp>, then appends a counter.

    Raises:
        OSError: if the copy fails
    """
    specs_dir = Path(specs_dir)
    backup = specs_dir.with_name(f"{specs_dir.name}.bak")
    if backup.exists():
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        base = specs_dir.with_name(f"{specs_dir.name}.bak.{stamp}")
        backup = base
        counter = 1
        while backup.exists():
            backup = base.with_name(f"{base.name}-{counter}")
            counter += 1

    shutil.copytree(specs_dir, backup)
    logger.info(f"[MIGRATE] Backed up {specs_dir} to {backup}")
    return backup


def create_layout(layout_dir: Path, config: SpecflowConfig | None = None) -> None:
    """Create the nested layout skeleton. Existing files are left alone."""
    config = config or SpecflowConfig()
    layout_dir = Path(layout_dir)
    for attr in LAYOUT_SUBDIRS:
        (layout_dir / getattr(config, attr)).mkdir(parents=True, exist_ok=True)

    for filename, template in TEMPLATES.items():
        path = layout_dir / filename
        if not path.exists():
            path.write_text(template, encoding="utf-8")


def update_to_archived_state(file_path: Path) -> bool:
    """Rewrite a document's state to archived. Returns True if it changed."""
    file_path = Path(file_path)
    content = file_path.read_text(encoding="utf-8")
    updated = update_metadata(content, "state", LifecycleState.ARCHIVED.value)
    if updated == content:
        return False
    file_path.write_text(updated, encoding="utf-8")
    return True


def _plan(project_dir: Path, config: SpecflowConfig, result: MigrationResult) -> list[tuple[Path, Path]]:
    specs_dir = project_dir / config.migration_source_dir
    target_specs_dir = project_dir / config.migration_target_dir / config.specs_dir

    moves = []
    claimed: dict[Path, Path] = {}
    for source in find_spec_files(specs_dir, config):
        target = compute_target_path(source, specs_dir, target_specs_dir, config)
        rel_source = source.relative_to(project_dir).as_posix()
        rel_target = target.relative_to(project_dir).as_posix()

        if target in claimed:
            result.errors.append(
                f"{rel_source} and {claimed[target].relative_to(project_dir).as_posix()} "
                f"both map to {rel_target}"
            )
            continue
        claimed[target] = source

        if target.exists():
            result.warnings.append(f"{rel_target} already exists; {rel_source} left in place")
            continue

        moves.append((source, target))
        result.migrations.append(Migration(source=rel_source, target=rel_target))

    leftovers = [p for p in specs_dir.rglob("*") if p.is_file() and not config.is_spec_file(p)]
    if leftovers:
        result.warnings.append(f"{len(leftovers)} non-spec file(s) left in {config.migration_source_dir}/")

    return moves


def _prune_empty_dirs(root: Path) -> None:
    for d in sorted((p for p in root.rglob("*") if p.is_dir()), key=lambda p: len(p.parts), reverse=True):
        if not any(d.iterdir()):
            d.rmdir()


def migrate(
    project_dir: Path,
    dry_run: bool = False,
    update_state: bool = False,
    config: SpecflowConfig | None = None,
) -> MigrationResult:
    """Move every spec file from the flat tree into the nested layout.

    Args:
        project_dir: Directory holding specs/ (and, afterwards, openspec/)
        dry_run: Return the plan without touching the filesystem
        update_state: Rewrite each moved file's state to archived

    Raises:
        OSError: on filesystem failures
    """
    config = config or SpecflowConfig()
    project_dir = Path(project_dir)
    result = MigrationResult(success=False, dry_run=dry_run)

    pre = check_migration_preconditions(project_dir, config)
    result.warnings.extend(pre["warnings"])
    if not pre["can_migrate"]:
        result.errors.extend(pre["issues"])
        return result

    moves = _plan(project_dir, config, result)
    if result.errors:
        return result

    if dry_run:
        logger.info(f"[MIGRATE] Dry run: {len(moves)} file(s) would move")
        result.success = True
        return result

    specs_dir = project_dir / config.migration_source_dir
    result.backup_path = backup_specs_dir(specs_dir)
    create_layout(project_dir / config.migration_target_dir, config)

    for source, target in moves:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(target))
        if update_state:
            update_to_archived_state(target)
        logger.debug(f"[MIGRATE] {source} -> {target}")

    _prune_empty_dirs(specs_dir)
    logger.info(f"[MIGRATE] Moved {len(moves)} file(s), backup at {result.backup_path}")
    result.success = True
    return result


def format_migration_report(result: MigrationResult) -> str:
    """Plain-text summary of a migration result."""
    lines = []
    if result.success:
        header = "Migration plan (dry run)" if result.dry_run else "Migration complete"
        lines.append(f"✅ {header}: {len(result.migrations)} file(s)")
    else:
        lines.append("❌ Migration failed")

    for m in result.migrations:
        lines.append(f"  {m.source} -> {m.target}")

    if result.backup_path:
        lines.append(f"Backup: {result.backup_path}")

    for warning in result.warnings:
        lines.append(f"⚠️ {warning}")
    for error in result.errors:
        lines.append(f"❌ {error}")

    return "\n".join(lines) + "\n"
