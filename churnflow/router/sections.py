"""
Tracker Sections

Pure text algorithms for tracker bodies: splitting a Markdown body into
level-2 sections, placing a new entry in the right section, and creating
missing sections in canonical order.

Nothing here touches the filesystem. TrackerStore reads a document, runs
one of these functions over the body and writes the result back whole.

Layout rules enforced on every write:
- sections follow SectionKind declaration order when ChurnFlow creates them
- exactly one blank line before and after a section header it writes
- no blank lines between entries it inserts
- the Activity Log stays oldest-first
- a multi-line entry is written as a list item whose continuation lines
  are indented, and read back as one entry with the indent removed
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..common.schemas import SectionKind, SECTION_HEADERS, mark_completed


HEADER_PREFIX = "## "
CONTINUATION_INDENT = "  "
CANONICAL_ORDER: List[SectionKind] = list(SectionKind)

_HEADER_TO_KIND = {header: kind for kind, header in SECTION_HEADERS.items()}

# "- [2024-01-15 10:30] ..." or "- [2024-01-15] ..."
_ENTRY_TIMESTAMP = re.compile(
    r"^-\s+\[(\d{4}-\d{2}-\d{2})(?:[ T](\d{2}:\d{2}(?::\d{2})?))?\]"
)
_OPEN_TASK = re.compile(r"^(\s*)-\s+\[ \]\s")


@dataclass
class Section:
    """A level-2 header and the raw lines up to the next one"""
    header: str
    lines: List[str] = field(default_factory=list)

    @property
    def kind(self) -> Optional[SectionKind]:
        return _HEADER_TO_KIND.get(self.header.strip())

    @property
    def entries(self) -> List[str]:
        entries: List[str] = []
        current: Optional[List[str]] = None
        for line in self.lines:
            if line.startswith("-"):
                current = [line]
                entries.append(current)
            elif current is not None and _is_continuation(line):
                current.append(_dedent(line))
            else:
                current = None
        return ["\n".join(block).rstrip() for block in entries]


@dataclass
class TrackerBody:
    """Markdown body split into a preamble and sections.

    ``TrackerBody.parse(text).render() == text`` for any input.
    """
    preamble: List[str] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "TrackerBody":
        body = cls()
        for line in text.split("\n"):
            if line.startswith(HEADER_PREFIX):
                body.sections.append(Section(header=line))
            elif body.sections:
                body.sections[-1].lines.append(line)
            else:
                body.preamble.append(line)
        return body

    def render(self) -> str:
        out = list(self.preamble)
        for section in self.sections:
            out.append(section.header)
            out.extend(section.lines)
        return "\n".join(out)

    def find(self, kind: SectionKind) -> Optional[int]:
        for index, section in enumerate(self.sections):
            if section.kind == kind:
                return index
        return None

    def create_section(self, kind: SectionKind) -> int:
        """Insert an empty section for ``kind`` in canonical position.

        Goes before the first known section that ranks later; otherwise at
        the end. Returns the new section's index.
        """
        rank = CANONICAL_ORDER.index(kind)
        insert_at = len(self.sections)
        for index, section in enumerate(self.sections):
            if section.kind is not None and CANONICAL_ORDER.index(section.kind) > rank:
                insert_at = index
                break

        if insert_at == 0:
            _trim_trailing(self.preamble)
            if self.preamble:
                self.preamble.append("")
        else:
            previous = self.sections[insert_at - 1].lines
            _trim_trailing(previous)
            previous.append("")

        self.sections.insert(insert_at, Section(header=SECTION_HEADERS[kind]))
        return insert_at


def _is_continuation(line: str) -> bool:
    return line[:1] in (" ", "\t")


def _dedent(line: str) -> str:
    if line.startswith(CONTINUATION_INDENT):
        return line[len(CONTINUATION_INDENT):]
    return line[1:]


def entry_block(entry: str) -> List[str]:
    """Lines for one entry; continuation lines get the list indent."""
    first, *rest = entry.split("\n")
    return [first] + [CONTINUATION_INDENT + line for line in rest]


def _trim_trailing(lines: List[str]) -> None:
    while lines and not lines[-1].strip():
        lines.pop()


def _trimmed(lines: List[str]) -> List[str]:
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    content = lines[start:]
    _trim_trailing(content)
    return content


def parse_entry_timestamp(line: str) -> Optional[datetime]:
    """Timestamp of a top-level ``- [YYYY-MM-DD HH:MM]`` entry, if any."""
    match = _ENTRY_TIMESTAMP.match(line)
    if not match:
        return None
    date_part, time_part = match.groups()
    try:
        if time_part:
            return datetime.fromisoformat(f"{date_part}T{time_part}")
        return datetime.fromisoformat(date_part)
    except ValueError:
        return None


def _chronological_position(lines: List[str], entry: str) -> int:
    stamp = parse_entry_timestamp(entry)
    if stamp is None:
        return len(lines)
    for index, line in enumerate(lines):
        existing = parse_entry_timestamp(line)
        if existing is not None and existing > stamp:
            return index
    return len(lines)


def insert_entry(text: str, entry: str, kind: SectionKind) -> str:
    """Return ``text`` with ``entry`` placed into the section for ``kind``.

    Activity Log entries are placed chronologically; every other kind goes
    directly under the section header. A missing section is created.
    """
    trailing_newline = text.endswith("\n")
    body = TrackerBody.parse(text.rstrip("\n"))

    index = body.find(kind)
    if index is None:
        index = body.create_section(kind)

    section = body.sections[index]
    content = _trimmed(section.lines)
    if kind == SectionKind.ACTIVITY_LOG:
        position = _chronological_position(content, entry)
    else:
        position = 0
    content[position:position] = entry_block(entry)

    is_last = index == len(body.sections) - 1
    section.lines = [""] + content + ([] if is_last else [""])

    rendered = body.render()
    return rendered + "\n" if trailing_newline else rendered


def section_entries(text: str, kind: SectionKind) -> List[str]:
    """List lines of the section for ``kind``; empty when it is absent."""
    body = TrackerBody.parse(text)
    index = body.find(kind)
    if index is None:
        return []
    return body.sections[index].entries


def complete_task(text: str, description: str, when: Optional[datetime] = None) -> Optional[str]:
    """Mark the first open task containing ``description`` as done.

    Returns the updated text, or None when no open task matches.
    """
    needle = " ".join(description.lower().split())
    if not needle:
        return None

    lines = text.split("\n")
    for index, line in enumerate(lines):
        if not _OPEN_TASK.match(line):
            continue
        if needle in " ".join(line.lower().split()):
            lines[index] = mark_completed(line, when)
            return "\n".join(lines)
    return None
