"""Tests for specflow.workflow.merge module."""

import pytest

from specflow.lib.parser import parse_requirement_blocks, parse_spec
from specflow.lib.types import DeltaRequirement, Scenario
from specflow.workflow.merge import (
    format_canonical_document,
    format_requirement,
    merge_delta,
    merge_deltas,
)

TODAY = "2026-03-01"

ADD_OAUTH = """# Feature: Auth

## ADDED Requirements

### REQ-001: OAuth login
The system SHALL support OAuth2.

**Scenario: Google**
- WHEN the user signs in with Google
- THEN a session is created

**Acceptance Criteria:**
- [ ] AC-001: Google supported
"""

EXISTING = """# Auth

> state: archived
> version: 1.0.0
> updated: 2026-01-01

## Requirements

### REQ-001: Password login
Users SHALL log in with a password.

### REQ-002: Sessions
Sessions SHALL expire after 30 minutes.

## History

Initial import.
"""


@pytest.fixture
def target(tmp_path):
    path = tmp_path / "specs" / "auth" / "login.fspec.md"
    path.parent.mkdir(parents=True)
    path.write_text(EXISTING, encoding="utf-8")
    return path


class TestFormatRequirement:
    """Tests for the deterministic block formatter."""

    def test_layout(self):
        req = DeltaRequirement(
            type="ADDED",
            id="REQ-007",
            title=" Export ",
            description="Line one\n\n\nLine two  ",
            scenarios=[Scenario(name="csv", when=["a", "b"], then=["c"])],
            acceptance=["AC-001: done", "  "],
        )
        assert format_requirement(req) == (
            "### REQ-007: Export\n"
            "\n"
            "Line one\n"
            "\n"
            "Line two\n"
            "\n"
            "**Scenario: csv**\n"
            "- WHEN a\n"
            "- AND b\n"
            "- THEN c\n"
            "\n"
            "**Acceptance Criteria:**\n"
            "- [ ] AC-001: done"
        )

    def test_title_only(self):
        assert format_requirement(DeltaRequirement("ADDED", "REQ-001", "Bare")) == "### REQ-001: Bare"

    def test_format_parse_format_is_stable(self):
        req = parse_spec(ADD_OAUTH).added[0]
        once = format_requirement(req)
        layout = parse_requirement_blocks(once)
        assert format_requirement(layout.find("REQ-001").requirement) == once

    def test_structural_description_lines_stay_prose(self):
        req = DeltaRequirement(
            type="ADDED",
            id="REQ-004",
            title="Notes",
            description="desc\n- [ ] not an AC\n> state: draft\n### REQ-005: not a heading\n#### Detail\nmore",
        )
        once = format_requirement(req)
        assert "\\- [ ] not an AC" in once
        assert "\\> state: draft" in once
        assert "\\### REQ-005: not a heading" in once
        assert "\n#### Detail\n" in once

        parsed = parse_requirement_blocks(once)
        assert [b.id for b in parsed.blocks] == ["REQ-004"]
        again = parsed.find("REQ-004").requirement
        assert again.acceptance == []
        assert format_requirement(again) == once

    def test_canonical_document_header(self):
        doc = format_canonical_document("Auth", [], TODAY)
        assert doc == (
            "# Auth\n\n> state: archived\n> version: 1.0.0\n"
            f"> updated: {TODAY}\n\n## Requirements\n"
        )


class TestMergeAdded:
    """ADDED requirements."""

    def test_creates_missing_target(self, tmp_path):
        path = tmp_path / "specs" / "billing" / "invoices.fspec.md"
        result = merge_delta(path, parse_spec(ADD_OAUTH), title="Billing", today=TODAY)
        assert result.success
        assert result.created
        assert result.added == ["REQ-001"]
        content = path.read_text()
        assert content.startswith("# Billing\n")
        assert "> state: archived" in content
        assert "### REQ-001: OAuth login" in content

    def test_appends_after_last_requirement(self, target):
        delta = parse_spec("## ADDED Requirements\n\n### REQ-003: Lockout\nLock after 5 failures.\n")
        result = merge_delta(target, delta, today=TODAY)
        content = target.read_text()
        assert result.added == ["REQ-003"]
        assert content.index("REQ-002") < content.index("REQ-003") < content.index("## History")
        assert "### REQ-003: Lockout\n\nLock after 5 failures." in content

    def test_stamps_updated_date(self, target):
        delta = parse_spec("## ADDED Requirements\n\n### REQ-003: Lockout\n")
        merge_delta(target, delta, today=TODAY)
        content = target.read_text()
        assert f"> updated: {TODAY}" in content
        assert "2026-01-01" not in content

    def test_inserts_into_empty_requirements_section(self, tmp_path):
        path = tmp_path / "doc.fspec.md"
        path.write_text("# Doc\n\n## Requirements\n\n## Notes\n\nx\n")
        merge_delta(path, parse_spec("## ADDED Requirements\n\n### REQ-001: A\n"), today=TODAY)
        content = path.read_text()
        assert content.index("## Requirements") < content.index("### REQ-001: A") < content.index("## Notes")

    def test_adds_requirements_section_when_missing(self, tmp_path):
        path = tmp_path / "doc.fspec.md"
        path.write_text("# Doc\n\nIntro.\n")
        merge_delta(path, parse_spec("## ADDED Requirements\n\n### REQ-001: A\n"), today=TODAY)
        content = path.read_text()
        assert "Intro.\n\n## Requirements\n\n### REQ-001: A" in content

    def test_identical_add_is_noop(self, target):
        before = target.read_text()
        delta = parse_spec(
            "## ADDED Requirements\n\n### REQ-002: Sessions\nSessions SHALL expire after 30 minutes.\n"
        )
        result = merge_delta(target, delta, today=TODAY)
        assert result.success
        assert result.unchanged == ["REQ-002"]
        assert not result.changed
        assert target.read_text() == before

    def test_conflicting_add_fails_without_writing(self, target):
        before = target.read_text()
        delta = parse_spec("## ADDED Requirements\n\n### REQ-002: Sessions\nDifferent text.\n")
        result = merge_delta(target, delta, today=TODAY)
        assert not result.success
        assert result.conflicts == ["REQ-002"]
        assert "REQ-002" in result.errors[0]
        assert target.read_text() == before


class TestMergeModifiedRemoved:
    """MODIFIED and REMOVED requirements."""

    def test_modified_replaces_in_place(self, target):
        delta = parse_spec("## MODIFIED Requirements\n\n### REQ-001: Password login\nMinimum 12 characters.\n")
        result = merge_delta(target, delta, today=TODAY)
        content = target.read_text()
        assert result.modified == ["REQ-001"]
        assert "Minimum 12 characters." in content
        assert "Users SHALL log in with a password." not in content
        assert content.index("REQ-001") < content.index("REQ-002")

    def test_modified_missing_is_skipped(self, target, caplog):
        delta = parse_spec("## MODIFIED Requirements\n\n### REQ-009: Ghost\n")
        result = merge_delta(target, delta, today=TODAY)
        assert result.success
        assert result.skipped == ["REQ-009"]
        assert "REQ-009 not present" in caplog.text

    def test_removed_deletes_block(self, target):
        delta = parse_spec("## REMOVED Requirements\n\n### REQ-001: Password login\n")
        result = merge_delta(target, delta, today=TODAY)
        content = target.read_text()
        assert result.removed == ["REQ-001"]
        assert "REQ-001" not in content
        assert "### REQ-002: Sessions" in content
        assert "\n\n\n" not in content

    def test_removed_missing_is_skipped(self, target):
        result = merge_delta(target, parse_spec("## REMOVED Requirements\n\n### REQ-009: Ghost\n"), today=TODAY)
        assert result.skipped == ["REQ-009"]
        assert not result.changed


class TestMergeBehaviour:
    """Idempotence, ordering and dry runs."""

    def test_remerge_is_byte_identical(self, target):
        delta = parse_spec(ADD_OAUTH.replace("REQ-001", "REQ-010"))
        merge_delta(target, delta, today=TODAY)
        first = target.read_text()
        result = merge_delta(target, delta, today="2027-01-01")
        assert result.success
        assert not result.changed
        assert target.read_text() == first

    def test_remerge_into_created_document(self, tmp_path):
        path = tmp_path / "new.fspec.md"
        delta = parse_spec(ADD_OAUTH)
        merge_delta(path, delta, today=TODAY)
        first = path.read_text()
        assert merge_delta(path, delta, today=TODAY).unchanged == ["REQ-001"]
        assert path.read_text() == first

    def test_dry_run_does_not_write(self, target):
        before = target.read_text()
        delta = parse_spec("## REMOVED Requirements\n\n### REQ-001: Password login\n")
        result = merge_delta(target, delta, dry_run=True, today=TODAY)
        assert result.changed
        assert "REQ-001" not in result.content
        assert target.read_text() == before

    def test_dry_run_does_not_create(self, tmp_path):
        path = tmp_path / "missing" / "doc.fspec.md"
        result = merge_delta(path, parse_spec(ADD_OAUTH), dry_run=True, today=TODAY)
        assert result.created
        assert not path.exists()

    def test_deltas_apply_in_order(self, target):
        add = parse_spec("## ADDED Requirements\n\n### REQ-003: Lockout\n")
        remove = parse_spec("## REMOVED Requirements\n\n### REQ-003: Lockout\n")
        result = merge_deltas(target, [add, remove], today=TODAY)
        assert result.added == ["REQ-003"]
        assert result.removed == ["REQ-003"]
        assert "REQ-003" not in target.read_text()
