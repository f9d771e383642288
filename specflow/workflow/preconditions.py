"""
Archive precondition checks.

Read-only. Every check runs regardless of earlier failures so the caller
gets the complete list of problems in one pass.
"""

from pathlib import Path

from specflow.lib.config import SpecflowConfig
from specflow.lib.parser import parse_metadata
from specflow.lib.types import PreconditionResult
from specflow.workflow.proposals import DELTA_SUBDIR, find_delta_documents
from specflow.workflow.state_machine import LifecycleState

REQUIRED_STATE = LifecycleState.IMPLEMENTING.value


def check_preconditions(proposal_path: Path, config: SpecflowConfig | None = None) -> PreconditionResult:
    """Check whether a proposal may be archived.

    Conditions:
    - proposal directory exists
    - narrative document (proposal.md) present
    - at least one delta document under specs/
    - state is exactly "implementing"
    """
    config = config or SpecflowConfig()
    proposal_path = Path(proposal_path)
    issues = []

    if not proposal_path.is_dir():
        issues.append(f"Proposal directory does not exist: {proposal_path}")

    narrative = proposal_path / config.proposal_file
    has_proposal_md = narrative.is_file()
    if not has_proposal_md:
        issues.append(f"Missing {config.proposal_file}")

    delta_files = find_delta_documents(proposal_path, config)
    if not delta_files:
        issues.append(f"No delta documents under {DELTA_SUBDIR}/")

    current_state = None
    if has_proposal_md:
        current_state = parse_metadata(narrative.read_text(encoding="utf-8")).state
    if current_state != REQUIRED_STATE:
        issues.append(
            f"State must be '{REQUIRED_STATE}' to archive (current: {current_state or 'unknown'})"
        )

    files_complete = has_proposal_md and bool(delta_files)

    return PreconditionResult(
        can_proceed=not issues,
        issues=issues,
        current_state=current_state,
        files_complete=files_complete,
        has_proposal_md=has_proposal_md,
        delta_files=delta_files,
    )
