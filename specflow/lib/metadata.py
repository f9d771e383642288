"""
Metadata block handling for spec documents.

A document may carry "> key: value" lines right under its title:

    # Feature: Login

    > state: review
    > version: 1.2.0

Keys are accepted in English or Chinese spelling, with an ASCII or
full-width colon. Rewrites keep whatever spelling the document already uses.
"""

import re

METADATA_LINE_RE = re.compile(r'^>\s*([^:：\n]+?)\s*([:：])\s*(.*?)\s*$')
FENCE_RE = re.compile(r'^\s*(```|~~~)')

# Field name -> accepted spellings (compared case-insensitively)
FIELD_ALIASES = {
    "state": ("state", "status", "状态"),
    "version": ("version", "版本"),
    "stack": ("stack", "技术栈"),
    "emit_path": ("emitpath", "emit_path", "emit-path", "派生路径"),
    "created_at": ("created", "createdat", "created_at", "创建时间"),
    "updated_at": ("updated", "updatedat", "updated_at", "last updated", "更新时间", "最后更新"),
    "archived_at": ("archived", "archivedat", "archived_at", "归档日期"),
}

# Spelling used when a field has to be inserted
DEFAULT_SPELLING = {
    "state": "state",
    "version": "version",
    "stack": "stack",
    "emit_path": "emitPath",
    "created_at": "created",
    "updated_at": "updated",
    "archived_at": "archivedAt",
}

_ALIAS_TO_FIELD = {
    alias: name for name, aliases in FIELD_ALIASES.items() for alias in aliases
}


def field_for_key(key: str) -> str | None:
    """Map a metadata key spelling to its field name, or None if unknown."""
    return _ALIAS_TO_FIELD.get(key.strip().lower())


def match_metadata_line(line: str) -> tuple[str, str] | None:
    """Return (key, value) if line is a "> key: value" metadata line."""
    m = METADATA_LINE_RE.match(line)
    if not m:
        return None
    return m.group(1), m.group(3)


def update_metadata(text: str, field_name: str, value: str) -> str:
    """Set a metadata field, replacing it in place or inserting it.

    Insertion goes after the existing metadata block, else after the first
    top-level heading, else at the top of the document.

    Raises:
        KeyError: if field_name is not a known metadata field
    """
    if field_name not in FIELD_ALIASES:
        raise KeyError(field_name)

    lines = text.splitlines()
    trailing_newline = text.endswith("\n") or not text
    in_fence = False
    last_meta_idx = None
    title_idx = None

    for i, line in enumerate(lines):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue

        m = METADATA_LINE_RE.match(line)
        if m:
            if field_for_key(m.group(1)) == field_name:
                lines[i] = f"> {m.group(1)}{m.group(2)} {value}"
                return _join(lines, trailing_newline)
            if last_meta_idx is None or last_meta_idx == i - 1:
                last_meta_idx = i
        elif title_idx is None and line.startswith("# "):
            title_idx = i

    new_line = f"> {DEFAULT_SPELLING[field_name]}: {value}"
    if last_meta_idx is not None:
        lines.insert(last_meta_idx + 1, new_line)
    elif title_idx is not None:
        lines[title_idx + 1:title_idx + 1] = ["", new_line]
        # Keep a blank line between the metadata and the body
        if title_idx + 3 < len(lines) and lines[title_idx + 3].strip():
            lines.insert(title_idx + 3, "")
    elif lines:
        lines[0:0] = [new_line, ""]
    else:
        lines = [new_line]

    return _join(lines, trailing_newline)


def remove_metadata(text: str, field_name: str) -> str:
    """Drop every metadata line for field_name. Text without it is returned as is."""
    lines = text.splitlines()
    kept = []
    in_fence = False
    for line in lines:
        if FENCE_RE.match(line):
            in_fence = not in_fence
        if not in_fence:
            m = METADATA_LINE_RE.match(line)
            if m and field_for_key(m.group(1)) == field_name:
                continue
        kept.append(line)
    if len(kept) == len(lines):
        return text
    return _join(kept, text.endswith("\n"))


def _join(lines: list[str], trailing_newline: bool) -> str:
    content = "\n".join(lines)
    return content + "\n" if trailing_newline else content
