"""
Entry Templates

Renders tracker entries as Markdown list items. Captured text is embedded
verbatim, so an entry built from multi-line input spans several lines.
Section headers and per-type prefixes are the single source of truth for
how ChurnFlow writes into tracker documents.
"""

import re
from datetime import datetime
from typing import Optional

from .capture import ItemType, Priority, SectionKind


DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"

SECTION_HEADERS = {
    SectionKind.ACTIVITY_LOG: "## Activity Log",
    SectionKind.ACTION_ITEMS: "## Action Items",
    SectionKind.REVIEW_QUEUE: "## Review Queue",
    SectionKind.REFERENCES: "## References",
    SectionKind.SOMEDAY_MAYBE: "## Someday/Maybe",
    SectionKind.NOTES: "## Notes & Context",
}

PRIORITY_INDICATORS = {
    Priority.CRITICAL: "🚨",
    Priority.HIGH: "⏫",
    Priority.MEDIUM: "🔼",
    Priority.LOW: "🔻",
}

ENTRY_PREFIXES = {
    ItemType.ACTION: "- [ ] #task",
    ItemType.ACTIVITY: "-",
    ItemType.REFERENCE: "- **Ref**:",
    ItemType.SOMEDAY: "- [ ] #someday",
    ItemType.REVIEW: "- [ ] #review",
}

COMPLETION_MARK = "✅"

_LIST_MARKER = re.compile(r"^\s*[-*+]\s+")


def _date(when: Optional[datetime]) -> str:
    return (when or datetime.now()).strftime(DATE_FORMAT)


def _timestamp(when: Optional[datetime]) -> str:
    return (when or datetime.now()).strftime(TIMESTAMP_FORMAT)


def _one_line(text: str) -> str:
    # For LLM-rendered fragments only; capture text is never folded
    return " ".join(part.strip() for part in str(text).splitlines() if part.strip())


def format_entry(
    item_type: ItemType,
    description: str,
    *,
    tag: str = "",
    priority: Optional[Priority] = None,
    title: str = "",
    confidence: Optional[float] = None,
    when: Optional[datetime] = None,
) -> str:
    """Render one entry for the given item type."""
    hashtag = f" #{tag}" if tag else ""
    indicator = f" {PRIORITY_INDICATORS[priority]}" if priority else ""

    if item_type == ItemType.ACTION:
        return f"- [ ] #task {description}{hashtag}{indicator}"
    if item_type == ItemType.ACTIVITY:
        return f"- [{_timestamp(when)}] {description}"
    if item_type == ItemType.REFERENCE:
        return f"- **{_one_line(title) or 'Ref'}**: {description} [{_date(when)}]"
    if item_type == ItemType.SOMEDAY:
        return f"- [ ] #someday [{_date(when)}] {description}{hashtag}"

    line = f"- [ ] #review [{_date(when)}] {description}"
    if confidence is not None:
        line += f" (confidence: {round(confidence * 100)}%)"
    return line


def fallback_entry(text: str, when: Optional[datetime] = None) -> str:
    """Minimal timestamped wrapper around verbatim input."""
    return f"- [ ] #review [{_timestamp(when)}] {text}"


def review_entry(
    text: str,
    suggested_tracker: Optional[str] = None,
    confidence: Optional[float] = None,
    when: Optional[datetime] = None,
) -> str:
    """Entry for the human review queue."""
    description = f"REVIEW NEEDED: {text}"
    if suggested_tracker:
        description += f" (AI suggested: {suggested_tracker})"
    return format_entry(ItemType.REVIEW, description, confidence=confidence, when=when)


def emergency_entry(text: str, error: str, when: Optional[datetime] = None) -> str:
    """Last-resort entry that embeds the raw input and the failure."""
    stamp = (when or datetime.now()).isoformat(timespec="seconds")
    return f"- [ ] EMERGENCY CAPTURE [{stamp}]: {text} (Error: {_one_line(error)})"


def normalize_entry_line(content: str) -> str:
    """Collapse LLM-rendered content into a single list line."""
    line = _one_line(content)
    if not line:
        return ""
    if not _LIST_MARKER.match(line):
        line = f"- {line}"
    return line


def mark_completed(line: str, when: Optional[datetime] = None) -> str:
    """Turn an open checkbox line into a completed one."""
    done = line.replace("- [ ]", "- [x]", 1).rstrip()
    return f"{done} {COMPLETION_MARK} {_date(when)}"
