"""Lifecycle states, legal transitions and presentation.

Thin layer over the FSM in fsm.py. This module provides:
- LifecycleState enum for type safety
- can_transition(), a pure lookup over the transition table
- state_display() for rendering
- transition() / get_state() for proposal directories on disk

Usage:
    from specflow.workflow.state_machine import can_transition, transition, LifecycleState

    can_transition("implementing", "archived")  # True
    transition(proposal_dir, LifecycleState.REVIEW, reason="ready for review")
"""

import logging
from enum import Enum
from pathlib import Path
from typing import NamedTuple

from transitions import MachineError

from specflow.lib.config import SpecflowConfig
from specflow.lib.parser import parse_metadata
from specflow.workflow.fsm import TRIGGER_FOR, ProposalFSM

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """All valid lifecycle states.

    Values match FSM state strings.
    """

    DRAFT = "draft"
    REVIEW = "review"
    IMPLEMENTING = "implementing"
    ARCHIVED = "archived"


class StateDisplay(NamedTuple):
    icon: str
    label: str
    color: str


STATE_DISPLAY = {
    "draft": StateDisplay("📝", "Draft", "gray"),
    "review": StateDisplay("🔍", "In review", "yellow"),
    "implementing": StateDisplay("🔨", "Implementing", "blue"),
    "archived": StateDisplay("✅", "Archived", "green"),
}


class InvalidTransition(Exception):
    """Raised when attempting an invalid state transition."""

    def __init__(self, from_state: str, to_state: LifecycleState, name: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.name = name
        super().__init__(
            f"Invalid transition: {from_state} -> {to_state.value}"
            + (f" (proposal: {name})" if name else "")
        )


def _value(state) -> str:
    return state.value if isinstance(state, LifecycleState) else str(state)


def parse_state(status_str: str | None) -> LifecycleState | None:
    """Parse a state string into LifecycleState enum.

    Returns None if state is unknown.
    """
    if status_str is None:
        return None
    for state in LifecycleState:
        if state.value == status_str:
            return state
    return None


def can_transition(from_state, to_state) -> bool:
    """Check whether from_state -> to_state is an edge of the lifecycle graph.

    Pure lookup: self-transitions and unknown states are never allowed.
    """
    return (_value(from_state), _value(to_state)) in TRIGGER_FOR


def allowed_targets(from_state) -> list[str]:
    """States reachable in one step from from_state."""
    source = _value(from_state)
    return [dest for (src, dest) in TRIGGER_FOR if src == source]


def state_display(state) -> StateDisplay:
    """Icon, label and color for a state. Unknown states get a generic tuple."""
    value = _value(state)
    return STATE_DISPLAY.get(value, StateDisplay("❓", value, "gray"))


def transition(
    proposal_dir: Path,
    to_state: LifecycleState,
    reason: str = "",
    force: bool = False,
    config: SpecflowConfig | None = None,
) -> None:
    """Transition a proposal to a new state with validation.

    Args:
        proposal_dir: Path to proposal directory (contains proposal.md)
        to_state: Target state to transition to
        reason: Optional reason for the transition (for logging)
        force: If True, skip validation (use sparingly, e.g. for recovery)
        config: Layout config naming the narrative document

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    name = proposal_dir.name
    reason_str = f" ({reason})" if reason else ""

    fsm = ProposalFSM(proposal_dir, config)
    current_state = fsm.state

    if force:
        logger.info(f"[STATE] {name}: {current_state} -> {to_state.value}{reason_str} (forced)")
        fsm.machine.set_state(to_state.value)
        fsm._save_state()
        return

    trigger = TRIGGER_FOR.get((current_state, to_state.value))
    if trigger is None:
        raise InvalidTransition(current_state, to_state, name)

    try:
        logger.info(f"[STATE] {name}: {current_state} -> {to_state.value}{reason_str}")
        getattr(fsm, trigger)()
    except MachineError as e:
        raise InvalidTransition(current_state, to_state, name) from e


def get_state(proposal_dir: Path, config: SpecflowConfig | None = None) -> LifecycleState | None:
    """Get current proposal state.

    Returns None if the recorded state is unknown. A missing narrative
    document reads as draft.
    """
    config = config or SpecflowConfig()
    document = proposal_dir / config.proposal_file
    if not document.exists():
        return LifecycleState.DRAFT
    return parse_state(parse_metadata(document.read_text(encoding="utf-8")).state)
