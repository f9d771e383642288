"""Tests for specflow.workflow.fsm module."""

import pytest
from transitions import MachineError

from specflow.lib.config import SpecflowConfig
from specflow.workflow.fsm import (
    ProposalFSM,
    STATES,
    TRANSITIONS,
    TRIGGER_FOR,
)


class TestFSMStates:
    """Tests for FSM state definitions."""

    def test_all_states_defined(self):
        assert STATES == ["draft", "review", "implementing", "archived"]

    def test_seven_edges(self):
        assert len(TRANSITIONS) == 7
        assert len(TRIGGER_FOR) == 7

    def test_trigger_lookup(self):
        assert TRIGGER_FOR[("implementing", "archived")] == "archive"
        assert TRIGGER_FOR[("archived", "draft")] == "reopen"


class TestFSMBasic:
    """Basic FSM functionality tests."""

    @pytest.fixture
    def proposal_dir(self, tmp_path):
        d = tmp_path / "add-2fa"
        d.mkdir()
        (d / "proposal.md").write_text("# Proposal: 2FA\n\n> 状态: draft\n")
        return d

    def test_initial_state_from_file(self, proposal_dir):
        assert ProposalFSM(proposal_dir).state == "draft"

    def test_missing_document_defaults_to_draft(self, tmp_path):
        assert ProposalFSM(tmp_path).state == "draft"

    def test_unknown_state_defaults_to_draft(self, tmp_path, caplog):
        (tmp_path / "proposal.md").write_text("> state: bogus\n")
        fsm = ProposalFSM(tmp_path)
        assert fsm.state == "draft"
        assert "Unknown state 'bogus'" in caplog.text

    def test_submit(self, proposal_dir):
        fsm = ProposalFSM(proposal_dir)
        fsm.submit()
        assert fsm.state == "review"

    def test_state_persisted_keeps_key_spelling(self, proposal_dir):
        fsm = ProposalFSM(proposal_dir)
        fsm.submit()
        content = (proposal_dir / "proposal.md").read_text()
        assert "> 状态: review" in content

    def test_full_happy_path(self, proposal_dir):
        fsm = ProposalFSM(proposal_dir)
        fsm.submit()
        fsm.approve()
        fsm.archive()
        assert fsm.state == "archived"
        assert ProposalFSM(proposal_dir).state == "archived"

    def test_invalid_trigger_raises(self, proposal_dir):
        fsm = ProposalFSM(proposal_dir)
        with pytest.raises(MachineError):
            fsm.archive()

    def test_can_and_available_triggers(self, proposal_dir):
        fsm = ProposalFSM(proposal_dir)
        assert fsm.can("submit")
        assert not fsm.can("archive")
        assert fsm.get_available_triggers() == ["submit"]

    def test_on_transition_callback(self, proposal_dir):
        calls = []
        fsm = ProposalFSM(proposal_dir, on_transition=lambda *args: calls.append(args))
        fsm.submit()
        assert calls == [("draft", "review", "submit")]

    def test_custom_narrative_file(self, tmp_path):
        (tmp_path / "README.md").write_text("> state: review\n")
        fsm = ProposalFSM(tmp_path, SpecflowConfig(proposal_file="README.md"))
        assert fsm.state == "review"
