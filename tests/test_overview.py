"""Tests for specflow.workflow.overview and specflow.workflow.proposals modules."""

import pytest

from specflow.workflow.overview import build_overview, format_overview
from specflow.workflow.proposals import list_proposals, load_proposal


def write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


@pytest.fixture
def root(tmp_path):
    write(tmp_path / "specs" / "user" / "auth.fspec.md", "# Auth\n\n> state: archived\n> version: 1.2.0\n")
    write(tmp_path / "specs" / "billing" / "spec.fspec.md", "# Billing\n")
    write(tmp_path / "changes" / "add-oauth" / "proposal.md", "# Proposal: OAuth\n\n> state: implementing\n")
    write(tmp_path / "changes" / "add-oauth" / "specs" / "user-auth.fspec.md", "## ADDED Requirements\n")
    write(tmp_path / "changes" / "add-2fa" / "proposal.md", "# 2FA\n\n> 状态: review\n> 创建时间: 2026-01-05\n")
    write(tmp_path / "changes" / "export" / "tasks.md", "- [ ] write it\n")
    (tmp_path / "changes" / ".hidden").mkdir()
    return tmp_path


class TestProposals:
    """Tests for load_proposal() and list_proposals()."""

    def test_list_skips_hidden(self, root):
        assert [p.name for p in list_proposals(root)] == ["add-2fa", "add-oauth", "export"]

    def test_load_proposal(self, root):
        p = load_proposal(root / "changes" / "add-2fa")
        assert p.state == "review"
        assert p.has_proposal_md
        assert not p.has_tasks_md
        assert p.created_at == "2026-01-05"
        assert p.updated_at

    def test_missing_narrative_is_draft(self, root):
        p = load_proposal(root / "changes" / "export")
        assert p.state == "draft"
        assert p.version == "1.0.0"
        assert not p.has_proposal_md
        assert p.has_tasks_md
        assert p.updated_at is None

    def test_delta_documents(self, root):
        p = load_proposal(root / "changes" / "add-oauth")
        assert [s.name for s in p.specs] == ["user-auth.fspec.md"]

    def test_missing_changes_root(self, tmp_path):
        assert list_proposals(tmp_path) == []


class TestBuildOverview:
    """Tests for build_overview()."""

    def test_buckets(self, root):
        overview = build_overview(root)
        assert sorted(s.title for s in overview.archived) == ["Auth", "Billing"]
        assert [p.name for p in overview.draft] == ["export"]
        assert [p.name for p in overview.review] == ["add-2fa"]
        assert [p.name for p in overview.implementing] == ["add-oauth"]
        assert overview.total_specs == 2
        assert overview.total_changes == 3

    def test_unexpected_state_listed_as_draft(self, root, caplog):
        write(root / "changes" / "odd" / "proposal.md", "> state: archived\n")
        overview = build_overview(root)
        assert "odd" in [p.name for p in overview.draft]
        assert "listing it as draft" in caplog.text

    def test_empty_root(self, tmp_path):
        overview = build_overview(tmp_path)
        assert overview.total_specs == 0
        assert overview.total_changes == 0

    def test_recomputed_each_call(self, root):
        build_overview(root)
        write(root / "changes" / "new" / "proposal.md", "> state: draft\n")
        assert build_overview(root).total_changes == 4


class TestFormatOverview:
    """Tests for format_overview()."""

    def test_sections(self, root):
        text = format_overview(build_overview(root))
        assert "✅ Archived (2)" in text
        assert "📝 Draft (1)" in text
        assert "🔍 In review (1)" in text
        assert "🔨 Implementing (1)" in text
        assert "  Auth  v1.2.0" in text
        assert "  add-oauth  v1.0.0  1 spec(s)" in text
        assert text.endswith("Total: 2 spec(s), 3 change(s)\n")
