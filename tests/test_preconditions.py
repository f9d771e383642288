"""Tests for specflow.workflow.preconditions module."""

import pytest

from specflow.lib.config import SpecflowConfig
from specflow.workflow.preconditions import check_preconditions


def make_proposal(root, state="implementing", deltas=True):
    d = root / "changes" / "add-oauth"
    d.mkdir(parents=True)
    if state is not None:
        (d / "proposal.md").write_text(f"# Proposal: OAuth\n\n> state: {state}\n")
    if deltas:
        (d / "specs").mkdir()
        (d / "specs" / "user-auth.fspec.md").write_text("## ADDED Requirements\n\n### REQ-001: A\n")
    return d


class TestCheckPreconditions:
    """Tests for check_preconditions()."""

    def test_ready(self, tmp_path):
        result = check_preconditions(make_proposal(tmp_path))
        assert result.can_proceed
        assert result.issues == []
        assert result.current_state == "implementing"
        assert result.files_complete
        assert result.has_proposal_md
        assert [p.name for p in result.delta_files] == ["user-auth.fspec.md"]

    @pytest.mark.parametrize("state", ["draft", "review", "archived"])
    def test_wrong_state(self, tmp_path, state):
        result = check_preconditions(make_proposal(tmp_path, state=state))
        assert not result.can_proceed
        assert result.files_complete
        assert result.current_state == state
        assert len(result.issues) == 1
        assert "implementing" in result.issues[0]

    def test_missing_proposal_md(self, tmp_path):
        result = check_preconditions(make_proposal(tmp_path, state=None))
        assert not result.can_proceed
        assert not result.has_proposal_md
        assert not result.files_complete
        assert result.current_state is None
        assert any("proposal.md" in issue for issue in result.issues)

    def test_no_deltas(self, tmp_path):
        result = check_preconditions(make_proposal(tmp_path, deltas=False))
        assert not result.can_proceed
        assert not result.files_complete
        assert any("No delta documents" in issue for issue in result.issues)

    def test_missing_directory_reports_everything(self, tmp_path):
        result = check_preconditions(tmp_path / "changes" / "ghost")
        assert not result.can_proceed
        assert len(result.issues) == 4
        assert "does not exist" in result.issues[0]

    def test_nested_delta_found(self, tmp_path):
        d = make_proposal(tmp_path, deltas=False)
        (d / "specs" / "api" / "v1").mkdir(parents=True)
        (d / "specs" / "api" / "v1" / "users.spec.md").write_text("x")
        assert check_preconditions(d).can_proceed

    def test_custom_narrative_file(self, tmp_path):
        d = make_proposal(tmp_path)
        (d / "proposal.md").rename(d / "README.md")
        config = SpecflowConfig(proposal_file="README.md")
        assert check_preconditions(d, config).can_proceed

    def test_read_only(self, tmp_path):
        d = make_proposal(tmp_path, state="draft")
        before = (d / "proposal.md").read_text()
        check_preconditions(d)
        assert (d / "proposal.md").read_text() == before
