"""Tests for tracker body section parsing and entry placement."""

from datetime import datetime

from churnflow.common.schemas import SectionKind
from churnflow.router.sections import (
    TrackerBody,
    complete_task,
    insert_entry,
    parse_entry_timestamp,
    section_entries,
)


DOC = """# Project 55

Notes about the truck.

## Activity Log

- [2024-01-10 09:00] Bought parts
- [2024-01-12 14:00] Pulled the engine

## Action Items

- [ ] #task Order gaskets #project-55 🔼

## Notes & Context

Free text.
"""


def _headers(text):
    return [line for line in text.split("\n") if line.startswith("## ")]


class TestTrackerBody:
    def test_parse_render_is_lossless(self):
        for text in (DOC, "", "no headers at all\n", "## Only\n\n\n", "pre\n## A\nx\n## B"):
            assert TrackerBody.parse(text).render() == text

    def test_parse_finds_known_sections(self):
        body = TrackerBody.parse(DOC)
        assert body.find(SectionKind.ACTIVITY_LOG) == 0
        assert body.find(SectionKind.NOTES) == 2
        assert body.find(SectionKind.REFERENCES) is None

    def test_unknown_headers_are_kept(self):
        text = "## Custom Stuff\n\n- a\n"
        result = insert_entry(text, "- [ ] #task b", SectionKind.ACTION_ITEMS)
        assert "## Custom Stuff" in result
        assert "- a" in result


class TestInsertEntry:
    def test_action_goes_first_in_section(self):
        result = insert_entry(DOC, "- [ ] #task Call Doug", SectionKind.ACTION_ITEMS)
        assert section_entries(result, SectionKind.ACTION_ITEMS) == [
            "- [ ] #task Call Doug",
            "- [ ] #task Order gaskets #project-55 🔼",
        ]

    def test_activity_is_chronological(self):
        result = insert_entry(DOC, "- [2024-01-11 08:00] Cleaned the bay", SectionKind.ACTIVITY_LOG)
        result = insert_entry(result, "- [2024-01-20 08:00] Test drive", SectionKind.ACTIVITY_LOG)
        assert section_entries(result, SectionKind.ACTIVITY_LOG) == [
            "- [2024-01-10 09:00] Bought parts",
            "- [2024-01-11 08:00] Cleaned the bay",
            "- [2024-01-12 14:00] Pulled the engine",
            "- [2024-01-20 08:00] Test drive",
        ]

    def test_missing_section_created_in_canonical_order(self):
        result = insert_entry(DOC, "- **Ref**: Torque 90 [2024-01-15]", SectionKind.REFERENCES)
        result = insert_entry(result, "- [ ] #review [2024-01-15] hmm", SectionKind.REVIEW_QUEUE)
        result = insert_entry(result, "- [ ] #someday [2024-01-15] paint", SectionKind.SOMEDAY_MAYBE)
        assert _headers(result) == [
            "## Activity Log",
            "## Action Items",
            "## Review Queue",
            "## References",
            "## Someday/Maybe",
            "## Notes & Context",
        ]

    def test_created_sections_have_single_blank_lines(self):
        result = insert_entry("# Title\n", "- [ ] #task one", SectionKind.ACTION_ITEMS)
        result = insert_entry(result, "- [2024-01-01 10:00] start", SectionKind.ACTIVITY_LOG)
        assert result == (
            "# Title\n"
            "\n"
            "## Activity Log\n"
            "\n"
            "- [2024-01-01 10:00] start\n"
            "\n"
            "## Action Items\n"
            "\n"
            "- [ ] #task one\n"
        )
        assert "\n\n\n" not in result

    def test_entry_into_empty_document(self):
        result = insert_entry("", "- [ ] #task one", SectionKind.ACTION_ITEMS)
        assert result == "## Action Items\n\n- [ ] #task one"

    def test_other_sections_untouched(self):
        result = insert_entry(DOC, "- [ ] #task x", SectionKind.ACTION_ITEMS)
        assert section_entries(result, SectionKind.ACTIVITY_LOG) == section_entries(DOC, SectionKind.ACTIVITY_LOG)
        assert "Free text." in result
        assert result.startswith("# Project 55\n\nNotes about the truck.\n")


class TestTimestamps:
    def test_parse_entry_timestamp(self):
        assert parse_entry_timestamp("- [2024-01-15 10:30] x") == datetime(2024, 1, 15, 10, 30)
        assert parse_entry_timestamp("- [2024-01-15] x") == datetime(2024, 1, 15)
        assert parse_entry_timestamp("- [ ] #task x") is None
        assert parse_entry_timestamp("- [2024-13-45 10:30] x") is None


class TestCompleteTask:
    def test_marks_first_matching_open_task(self):
        result = complete_task(DOC, "order   GASKETS", datetime(2024, 2, 1))
        assert "- [x] #task Order gaskets #project-55 🔼 ✅ 2024-02-01" in result

    def test_no_match_returns_none(self):
        assert complete_task(DOC, "buy a welder") is None
        assert complete_task(DOC, "   ") is None

    def test_completed_task_is_not_matched_again(self):
        once = complete_task(DOC, "order gaskets", datetime(2024, 2, 1))
        assert complete_task(once, "order gaskets") is None


class TestMultiLineEntries:
    def test_continuation_lines_are_indented_and_read_back(self):
        entry = "- [ ] #review [2024-01-15] Call Doug\nabout the welder\n## not a header"
        result = insert_entry(DOC, entry, SectionKind.ACTION_ITEMS)

        assert "- [ ] #review [2024-01-15] Call Doug\n  about the welder\n  ## not a header\n" in result
        assert _headers(result) == _headers(DOC)
        assert section_entries(result, SectionKind.ACTION_ITEMS) == [
            entry,
            "- [ ] #task Order gaskets #project-55 🔼",
        ]

    def test_chronological_insert_skips_continuation_lines(self):
        first = insert_entry(DOC, "- [2024-01-11 08:00] long\nnote", SectionKind.ACTIVITY_LOG)
        result = insert_entry(first, "- [2024-01-11 09:00] after", SectionKind.ACTIVITY_LOG)
        assert section_entries(result, SectionKind.ACTIVITY_LOG) == [
            "- [2024-01-10 09:00] Bought parts",
            "- [2024-01-11 08:00] long\nnote",
            "- [2024-01-11 09:00] after",
            "- [2024-01-12 14:00] Pulled the engine",
        ]
