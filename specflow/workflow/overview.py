"""
Lifecycle status overview.

Scans the canonical tree (everything there counts as archived) and the
changes root (bucketed by each proposal's state). Recomputed on every call.
"""

import logging
from pathlib import Path

from specflow.lib.config import SpecflowConfig, load_config
from specflow.lib.parser import parse_spec_file
from specflow.lib.types import StatusOverview
from specflow.workflow.proposals import find_spec_files, list_proposals
from specflow.workflow.state_machine import LifecycleState, state_display

logger = logging.getLogger(__name__)

IN_FLIGHT_BUCKETS = (
    LifecycleState.DRAFT.value,
    LifecycleState.REVIEW.value,
    LifecycleState.IMPLEMENTING.value,
)


def build_overview(root_dir: Path, config: SpecflowConfig | None = None) -> StatusOverview:
    """Build the status overview for a spec root."""
    root_dir = Path(root_dir)
    config = config or load_config(root_dir)
    overview = StatusOverview()

    for path in find_spec_files(config.specs_root(root_dir), config):
        overview.archived.append(parse_spec_file(path))

    for proposal in list_proposals(root_dir, config):
        bucket = proposal.state
        if bucket not in IN_FLIGHT_BUCKETS:
            logger.warning(
                f"Proposal '{proposal.name}' has state '{proposal.state}' under "
                f"{config.changes_dir}/, listing it as draft"
            )
            bucket = LifecycleState.DRAFT.value
        getattr(overview, bucket).append(proposal)

    return overview


def format_overview(overview: StatusOverview) -> str:
    """Plain-text rendering of an overview."""
    lines = []

    icon, label, _ = state_display(LifecycleState.ARCHIVED)
    lines.append(f"{icon} {label} ({overview.total_specs})")
    for spec in overview.archived:
        lines.append(f"  {spec.title}  v{spec.version}")

    for state in IN_FLIGHT_BUCKETS:
        proposals = getattr(overview, state)
        icon, label, _ = state_display(state)
        lines.append(f"{icon} {label} ({len(proposals)})")
        for p in proposals:
            lines.append(f"  {p.name}  v{p.version}  {len(p.specs)} spec(s)")

    lines.append(f"Total: {overview.total_specs} spec(s), {overview.total_changes} change(s)")
    return "\n".join(lines) + "\n"
