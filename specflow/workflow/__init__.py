"""Spec lifecycle operations.

Return type conventions:
- Orchestrators (archive_proposal, migrate, reopen_proposal) return result
  records with success/errors/warnings. They only raise on filesystem failure.
- Checks (check_preconditions, can_transition) never raise and never write.
- transition() raises InvalidTransition for edges outside the lifecycle graph.
"""

from specflow.workflow.archiver import (
    archive_all,
    archive_proposal,
    get_archivable_proposals,
    recover_interrupted,
    reopen_proposal,
)
from specflow.workflow.merge import format_requirement, merge_delta, merge_deltas
from specflow.workflow.migrator import format_migration_report, migrate
from specflow.workflow.overview import build_overview, format_overview
from specflow.workflow.preconditions import check_preconditions
from specflow.workflow.state_machine import (
    InvalidTransition,
    LifecycleState,
    can_transition,
    state_display,
    transition,
)

__all__ = [
    "archive_all",
    "archive_proposal",
    "get_archivable_proposals",
    "recover_interrupted",
    "reopen_proposal",
    "format_requirement",
    "merge_delta",
    "merge_deltas",
    "format_migration_report",
    "migrate",
    "build_overview",
    "format_overview",
    "check_preconditions",
    "InvalidTransition",
    "LifecycleState",
    "can_transition",
    "state_display",
    "transition",
]
