"""
Spec document parser for specflow.

Parsing happens in two passes:

1. tokenize() classifies every line by position into a typed Block
   (heading, metadata, scenario marker, WHEN/AND/THEN step, checkbox,
   bold label, free text, blank). Fenced code and HTML comments never
   produce structure.
2. parse_spec() folds the blocks into sections and DeltaRequirement records.

Malformed items (bad REQ headings, duplicate ids, dangling AND steps) are
skipped and recorded in ParsedSpec.issues instead of failing the parse.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .metadata import FENCE_RE, field_for_key, match_metadata_line
from .types import DELTA_TYPES, DeltaRequirement, ParsedSpec, Scenario, SpecMetadata

logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r'^(#{1,6})\s+(.*?)\s*$')
REQ_HEADING_RE = re.compile(r'^(REQ-\d+):\s*(.+?)\s*$')
REQ_PREFIX_RE = re.compile(r'^REQ-', re.IGNORECASE)
SECTION_RE = re.compile(r'^(ADDED|MODIFIED|REMOVED)\s+Requirements?$', re.IGNORECASE)
SCENARIO_RE = re.compile(r'^\*\*\s*(?:Scenario|场景)\s*[:：]\s*(.+?)\s*\*\*\s*$')
STEP_RE = re.compile(r'^\s*[-*]\s+\**(WHEN|AND|THEN)\**\s*[:：]?\s+(.+?)\s*$')
CHECKBOX_RE = re.compile(r'^\s*[-*]\s+\[([ xX])\]\s+(.+?)\s*$')
LABEL_RE = re.compile(r'^\*\*[^*]+\*\*\s*[:：]?\s*$')
ACCEPTANCE_LABEL_RE = re.compile(r'^\*\*\s*(?:Acceptance Criteria|验收标准|验收条件)\s*[:：]?\s*\*\*\s*[:：]?\s*$', re.IGNORECASE)
TITLE_PREFIX_RE = re.compile(r'^(?:Feature|Proposal|Spec|Change|功能|提案|规格|变更)\s*[:：]\s*', re.IGNORECASE)

UNTITLED = "Untitled"


class BlockKind(Enum):
    BLANK = "blank"
    HEADING = "heading"
    METADATA = "metadata"
    SCENARIO = "scenario"
    STEP = "step"
    CHECKBOX = "checkbox"
    LABEL = "label"
    TEXT = "text"
    COMMENT = "comment"


@dataclass
class Block:
    """One classified line of a document."""
    kind: BlockKind
    index: int  # 0-based line index
    raw: str
    level: int = 0  # Heading level
    text: str = ""  # Heading text, step/checkbox text, scenario name
    key: str = ""  # Metadata key or step role
    checked: bool = False


def tokenize(text: str) -> list[Block]:
    """Pass 1: classify each line of text into a Block."""
    blocks = []
    in_fence = False
    in_comment = False

    for i, line in enumerate(text.splitlines()):
        if in_fence:
            if FENCE_RE.match(line):
                in_fence = False
            blocks.append(Block(BlockKind.TEXT, i, line))
            continue
        if FENCE_RE.match(line):
            in_fence = True
            blocks.append(Block(BlockKind.TEXT, i, line))
            continue

        # Track HTML comment blocks
        if in_comment or line.lstrip().startswith('<!--'):
            in_comment = '-->' not in line
            blocks.append(Block(BlockKind.COMMENT, i, line))
            continue

        if not line.strip():
            blocks.append(Block(BlockKind.BLANK, i, line))
            continue

        m = HEADING_RE.match(line)
        if m:
            blocks.append(Block(BlockKind.HEADING, i, line, level=len(m.group(1)), text=m.group(2)))
            continue

        meta = match_metadata_line(line)
        if meta:
            blocks.append(Block(BlockKind.METADATA, i, line, key=meta[0], text=meta[1]))
            continue

        m = SCENARIO_RE.match(line)
        if m:
            blocks.append(Block(BlockKind.SCENARIO, i, line, text=m.group(1)))
            continue

        m = STEP_RE.match(line)
        if m:
            blocks.append(Block(BlockKind.STEP, i, line, key=m.group(1), text=m.group(2)))
            continue

        m = CHECKBOX_RE.match(line)
        if m:
            blocks.append(Block(BlockKind.CHECKBOX, i, line, text=m.group(2), checked=m.group(1) != ' '))
            continue

        if LABEL_RE.match(line):
            blocks.append(Block(BlockKind.LABEL, i, line, text=line.strip()))
            continue

        blocks.append(Block(BlockKind.TEXT, i, line))

    return blocks


def parse_metadata(text: str) -> SpecMetadata:
    """Parse the "> key: value" metadata block. First occurrence of a key wins."""
    return _fold_metadata(tokenize(text))


def parse_title(text: str) -> str:
    """Return the first top-level heading with a known prefix stripped."""
    return _fold_title(tokenize(text))


def parse_delta_requirements(text: str, delta_type: str) -> list[DeltaRequirement]:
    """Return the entries of one ADDED/MODIFIED/REMOVED section."""
    delta_type = delta_type.upper()
    if delta_type not in DELTA_TYPES:
        raise ValueError(f"Unknown delta type: {delta_type}")
    spec = parse_spec(text)
    return getattr(spec, delta_type.lower())


def parse_spec(text: str, path: Path | None = None) -> ParsedSpec:
    """Pass 2: fold blocks into a ParsedSpec."""
    blocks = tokenize(text)
    spec = ParsedSpec(
        title=_fold_title(blocks),
        metadata=_fold_metadata(blocks),
        raw=text,
        path=path,
    )

    seen_ids: set[str] = set()
    for delta_type, req_id, title, span, line_no in _requirement_spans(blocks, spec.issues):
        if req_id in seen_ids:
            spec.issues.append(f"Line {line_no}: duplicate id {req_id} skipped")
            continue
        seen_ids.add(req_id)
        req = fold_requirement(delta_type, req_id, title, span, spec.issues)
        getattr(spec, delta_type.lower()).append(req)

    for issue in spec.issues:
        logger.debug(f"[PARSE] {path or '<text>'}: {issue}")

    return spec


def parse_spec_file(path: Path) -> ParsedSpec:
    """Read and parse a spec file.

    Raises:
        OSError: if the file can't be read
    """
    path = Path(path)
    return parse_spec(path.read_text(encoding="utf-8"), path=path)


def fold_requirement(
    delta_type: str,
    req_id: str,
    title: str,
    blocks: list[Block],
    issues: list[str] | None = None,
) -> DeltaRequirement:
    """Fold the blocks following a REQ heading into a DeltaRequirement."""
    issues = issues if issues is not None else []
    description: list[str] = []
    scenarios: list[Scenario] = []
    acceptance: list[str] = []
    scenario = None
    role = None

    for block in blocks:
        if block.kind == BlockKind.SCENARIO:
            scenario = Scenario(name=block.text)
            scenarios.append(scenario)
            role = None
            continue

        if scenario is not None:
            if block.kind == BlockKind.STEP:
                step_role = role if block.key == "AND" else block.key
                if step_role is None:
                    issues.append(f"Line {block.index + 1}: AND without WHEN/THEN in {req_id} skipped")
                    continue
                role = step_role
                (scenario.when if role == "WHEN" else scenario.then).append(block.text)
                continue
            if block.kind == BlockKind.BLANK:
                continue
            scenario = None
            role = None

        if block.kind == BlockKind.CHECKBOX:
            acceptance.append(block.text)
        elif block.kind == BlockKind.LABEL and ACCEPTANCE_LABEL_RE.match(block.raw):
            continue
        elif block.kind == BlockKind.BLANK:
            if description and description[-1] != "":
                description.append("")
        else:
            description.append(block.raw.rstrip())

    while description and description[-1] == "":
        description.pop()

    return DeltaRequirement(
        type=delta_type,
        id=req_id,
        title=title,
        description="\n".join(description),
        scenarios=scenarios,
        acceptance=acceptance,
    )


def _fold_metadata(blocks: list[Block]) -> SpecMetadata:
    meta = SpecMetadata()
    seen: set[str] = set()
    for block in blocks:
        if block.kind != BlockKind.METADATA:
            continue
        name = field_for_key(block.key)
        if name is None:
            meta.extra.setdefault(block.key, block.text)
            continue
        if name in seen:
            continue
        seen.add(name)
        if block.text:
            setattr(meta, name, block.text)
    return meta


def _fold_title(blocks: list[Block]) -> str:
    for block in blocks:
        if block.kind == BlockKind.HEADING and block.level == 1:
            title = TITLE_PREFIX_RE.sub("", block.text).strip()
            return title or UNTITLED
    return UNTITLED


def _requirement_spans(blocks: list[Block], issues: list[str]):
    """Yield (delta_type, id, title, blocks, line_no) for each well-formed requirement."""
    section = None
    current = None  # (type, id, title, blocks, line_no) or "skip"

    for block in blocks:
        if block.kind == BlockKind.HEADING and block.level <= 3:
            if current is not None and current != "skip":
                yield current
            current = None

            if block.level <= 2:
                m = SECTION_RE.match(block.text) if block.level == 2 else None
                section = m.group(1).upper() if m else None
                continue

            if section is None:
                continue
            m = REQ_HEADING_RE.match(block.text)
            if m:
                current = (section, m.group(1).upper(), m.group(2), [], block.index + 1)
            elif REQ_PREFIX_RE.match(block.text):
                issues.append(f"Line {block.index + 1}: malformed requirement heading '{block.text}' skipped")
                current = "skip"
            continue

        if current is not None and current != "skip":
            current[3].append(block)

    if current is not None and current != "skip":
        yield current


@dataclass
class RequirementBlock:
    """A requirement's heading and body lines inside a canonical document."""
    id: str
    lines: list[str]
    requirement: DeltaRequirement


@dataclass
class RequirementLayout:
    """A document split into raw line runs and requirement blocks, in order.

    Joining every segment back together reproduces the original text.
    """
    segments: list = field(default_factory=list)  # str lines or RequirementBlock
    trailing_newline: bool = True

    @property
    def blocks(self) -> list[RequirementBlock]:
        return [s for s in self.segments if isinstance(s, RequirementBlock)]

    def find(self, req_id: str) -> RequirementBlock | None:
        for block in self.blocks:
            if block.id == req_id:
                return block
        return None

    def render(self) -> str:
        lines: list[str] = []
        for segment in self.segments:
            if isinstance(segment, RequirementBlock):
                lines.extend(segment.lines)
            else:
                lines.append(segment)
        content = "\n".join(lines)
        return content + "\n" if self.trailing_newline and lines else content


def parse_requirement_blocks(text: str) -> RequirementLayout:
    """Split a canonical document into raw lines and requirement blocks.

    A block runs from its "### REQ-NNN: title" heading to the last
    non-blank line before the next heading of level 3 or higher. Blank
    lines after a block stay raw so rendering is lossless. Malformed
    headings and duplicate ids stay raw as well.
    """
    blocks = tokenize(text)
    lines = text.splitlines()
    layout = RequirementLayout(trailing_newline=text.endswith("\n") or not text)
    seen: set[str] = set()

    # Heading indices that start a requirement
    starts: dict[int, tuple[str, str]] = {}
    boundaries: list[int] = []
    for block in blocks:
        if block.kind == BlockKind.HEADING and block.level <= 3:
            boundaries.append(block.index)
            m = REQ_HEADING_RE.match(block.text) if block.level == 3 else None
            if m and m.group(1).upper() not in seen:
                seen.add(m.group(1).upper())
                starts[block.index] = (m.group(1).upper(), m.group(2))
    boundaries.append(len(lines))

    i = 0
    while i < len(lines):
        if i not in starts:
            layout.segments.append(lines[i])
            i += 1
            continue

        end = next(b for b in boundaries if b > i)
        last = end - 1
        while last > i and not lines[last].strip():
            last -= 1

        req_id, title = starts[i]
        body = [b for b in blocks if i < b.index <= last]
        req = fold_requirement("ADDED", req_id, title, body)
        layout.segments.append(RequirementBlock(id=req_id, lines=lines[i:last + 1], requirement=req))
        i = last + 1

    return layout
