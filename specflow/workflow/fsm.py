"""Proposal lifecycle state machine using transitions library.

Four states, seven edges:

    draft <-> review <-> implementing <-> archived
      ^                                      |
      +--------------- reopen ---------------+

The current state lives in the "> state:" metadata line of the proposal's
narrative document (proposal.md) and is written back after every transition.

Usage:
    from specflow.workflow.fsm import ProposalFSM

    fsm = ProposalFSM(proposal_dir)
    fsm.submit()   # draft -> review
    fsm.approve()  # review -> implementing
"""

import logging
from pathlib import Path
from typing import Callable

from transitions import Machine

from specflow.lib.config import SpecflowConfig
from specflow.lib.metadata import update_metadata
from specflow.lib.parser import parse_metadata

logger = logging.getLogger(__name__)


STATES = [
    "draft",
    "review",
    "implementing",
    "archived",
]

INITIAL_STATE = "draft"

# Each trigger becomes a method on the FSM
TRANSITIONS = [
    {"trigger": "submit", "source": "draft", "dest": "review"},
    {"trigger": "revise", "source": "review", "dest": "draft"},
    {"trigger": "approve", "source": "review", "dest": "implementing"},
    {"trigger": "send_back", "source": "implementing", "dest": "review"},
    {"trigger": "archive", "source": "implementing", "dest": "archived"},
    {"trigger": "restore", "source": "archived", "dest": "implementing"},
    {"trigger": "reopen", "source": "archived", "dest": "draft"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class ProposalFSM:
    """State machine for a proposal directory.

    Wraps the transitions library with proposal-specific logic:
    - Loads initial state from the narrative document's metadata
    - Persists state changes back to that document
    - Logs all transitions
    """

    def __init__(
        self,
        proposal_dir: Path,
        config: SpecflowConfig | None = None,
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """Initialize FSM for a proposal.

        Args:
            proposal_dir: Path to proposal directory (contains proposal.md)
            config: Layout config naming the narrative document
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.proposal_dir = proposal_dir
        self.name = proposal_dir.name
        self.config = config or SpecflowConfig()
        self.on_transition = on_transition

        initial = self._load_state()
        if initial not in STATES:
            logger.warning(f"[FSM] {self.name}: Unknown state '{initial}', defaulting to '{INITIAL_STATE}'")
            initial = INITIAL_STATE

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    @property
    def document_path(self) -> Path:
        return self.proposal_dir / self.config.proposal_file

    def _load_state(self) -> str:
        """Load current state from the narrative document."""
        if not self.document_path.exists():
            return INITIAL_STATE
        return parse_metadata(self.document_path.read_text(encoding="utf-8")).state

    def _save_state(self) -> None:
        """Write current state into the narrative document.

        Raises:
            OSError: if the document can't be read or written
        """
        path = self.document_path
        content = path.read_text(encoding="utf-8") if path.exists() else ""
        path.write_text(update_metadata(content, "state", self.state), encoding="utf-8")

    def on_state_change(self, event) -> None:
        """Callback after any state transition.

        Persists state to disk and logs the transition.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.name}: {from_state} -> {to_state} ({trigger})")

        self._save_state()

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return self.machine.get_triggers(self.state)
