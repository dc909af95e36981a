"""
Tracker Store

Loads the crossref registry and the tracker documents it points to,
answers context queries for inference, and performs structural writes.

Tracker documents are Markdown files with YAML front matter:

    ---
    tag: project-55
    friendlyName: Project 55
    contextType: project
    ---
    # Project 55

    ## Action Items
    - [ ] #task ...

Every write is a full rewrite built from a fresh read of the file taken
immediately before it. The new text is staged in memory and swapped in
with os.replace, so a failed write never leaves a half-written tracker.
Concurrent external edits between that read and the replace are lost;
there is a single writer.
Front matter is written back with its keys in their original order.
"""

import json
import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import frontmatter
import yaml
from pydantic import TypeAdapter, ValidationError

from ..common.schemas import (
    ContextType,
    RegistryEntry,
    SectionKind,
    TrackerMetadata,
)
from .sections import complete_task, insert_entry, section_entries

logger = logging.getLogger("churnflow.router.tracker_store")

MAX_KEYWORDS = 10
MAX_RECENT_ACTIVITY = 5

_HASHTAG = re.compile(r"#[\w-]+")
_WORD = re.compile(r"[a-z][a-z'-]+")

STOP_WORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "her", "was", "one", "our", "out", "day", "get", "has", "him", "his",
    "how", "its", "may", "new", "now", "old", "see", "two", "who", "did",
    "way", "she", "use", "your", "said", "each", "make", "most", "over",
    "such", "very", "what", "with", "have", "will", "this", "that", "they",
    "from", "been", "call", "come", "could", "down", "first", "good", "into",
    "just", "like", "look", "made", "many", "more", "than", "then", "them",
    "time", "well", "were", "when", "where", "which", "while", "would",
    "there", "their", "about", "after", "before", "should", "task", "tasks",
    "review", "someday", "items", "notes", "context", "activity", "action",
    "references", "maybe", "tracker",
})

_registry_adapter = TypeAdapter(List[RegistryEntry])


class RegistryError(RuntimeError):
    """The crossref registry could not be read; nothing can be routed."""


@dataclass
class Tracker:
    """One loaded tracker document"""
    tag: str
    metadata: TrackerMetadata
    content: str
    file_path: Path
    entry: RegistryEntry

    @property
    def friendly_name(self) -> str:
        return self.metadata.friendly_name or self.tag

    @property
    def context_type(self) -> ContextType:
        return self.metadata.context_type or self.entry.context_type


@dataclass
class TrackerSummary:
    """Compact per-tracker context handed to the inference prompt"""
    tag: str
    friendly_name: str
    context_type: str
    keywords: List[str] = field(default_factory=list)
    recent_activity: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "tag": self.tag,
            "friendlyName": self.friendly_name,
            "contextType": self.context_type,
            "keywords": self.keywords,
            "recentActivity": self.recent_activity,
        }


def extract_keywords(content: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """Hashtags first, then the most frequent non-trivial words."""
    keywords: List[str] = []
    for tag, _ in Counter(_HASHTAG.findall(content)).most_common():
        if tag.lower() not in keywords:
            keywords.append(tag.lower())

    without_tags = _HASHTAG.sub(" ", content.lower())
    words = [
        w.strip("'-") for w in _WORD.findall(without_tags)
    ]
    counts = Counter(w for w in words if len(w) > 3 and w not in STOP_WORDS)
    for word, _ in counts.most_common():
        if word not in keywords:
            keywords.append(word)

    return keywords[:limit]


class TrackerStore:
    """
    Owns the in-memory map of loaded trackers.

    Construct once, call initialize(), then query and write. refresh()
    rebuilds the map from disk after out-of-band edits.
    """

    def __init__(self, crossref_path: Path):
        self._crossref_path = Path(crossref_path)
        self._registry: List[RegistryEntry] = []
        self._trackers: Dict[str, Tracker] = {}

    @property
    def registry(self) -> List[RegistryEntry]:
        return list(self._registry)

    def initialize(self) -> None:
        """Load the registry and every active tracker.

        Raises:
            RegistryError: if the registry is missing or malformed
        """
        self._registry = self._load_registry()
        self._trackers = self._load_trackers(self._registry)
        logger.info("Loaded %d active trackers", len(self._trackers))

    def refresh(self) -> None:
        """Discard in-memory state and reload from disk"""
        self.initialize()

    def _load_registry(self) -> List[RegistryEntry]:
        try:
            raw = json.loads(self._crossref_path.read_text(encoding="utf-8"))
            entries = _registry_adapter.validate_python(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error("Failed to load crossref %s: %s", self._crossref_path, e)
            raise RegistryError(f"Cannot initialize without crossref data: {e}") from e

        logger.info("Loaded %d crossref entries", len(entries))
        return entries

    def _load_trackers(self, entries: List[RegistryEntry]) -> Dict[str, Tracker]:
        trackers: Dict[str, Tracker] = {}
        for entry in entries:
            if not entry.active:
                continue
            try:
                tracker = self._read_tracker(entry)
            except (OSError, ValueError, ValidationError, yaml.YAMLError) as e:
                logger.warning("Failed to load tracker %s: %s", entry.tag, e)
                continue
            if not tracker.metadata.active:
                logger.info("Skipping tracker %s: deactivated in front matter", entry.tag)
                continue
            trackers[entry.tag] = tracker
            logger.debug("Loaded tracker: %s (%s)", entry.tag, entry.context_type.value)
        return trackers

    def _read_tracker(self, entry: RegistryEntry) -> Tracker:
        path = Path(entry.tracker_file)
        post = frontmatter.loads(path.read_text(encoding="utf-8"))
        metadata = TrackerMetadata.model_validate(post.metadata)
        if not metadata.tag:
            metadata.tag = entry.tag
        return Tracker(
            tag=entry.tag,
            metadata=metadata,
            content=post.content,
            file_path=path,
            entry=entry,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_tracker(self, tag: str) -> Optional[Tracker]:
        return self._trackers.get(tag)

    def get_trackers_by_context(self, context_type: Optional[str] = None) -> List[Tracker]:
        """Active trackers in registry order, optionally for one context"""
        trackers = list(self._trackers.values())
        if not context_type:
            return trackers
        wanted = context_type.value if isinstance(context_type, ContextType) else str(context_type).lower()
        return [t for t in trackers if t.context_type.value == wanted]

    def build_context_summary(self) -> Dict[str, TrackerSummary]:
        """Per-tracker keywords and recent activity for the inference prompt"""
        summary: Dict[str, TrackerSummary] = {}
        for tracker in self.get_trackers_by_context():
            recent = section_entries(tracker.content, SectionKind.ACTIVITY_LOG)
            summary[tracker.tag] = TrackerSummary(
                tag=tracker.tag,
                friendly_name=tracker.friendly_name,
                context_type=tracker.context_type.value,
                keywords=extract_keywords(tracker.content),
                recent_activity=recent[-MAX_RECENT_ACTIVITY:],
            )
        return summary

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append_item(
        self,
        tag: str,
        entry: str,
        section: SectionKind = SectionKind.ACTION_ITEMS,
    ) -> bool:
        """Place one entry line into the tracker's section for ``section``.

        Returns False (never raises) when the tracker is unknown or the
        document cannot be read or written.
        """
        tracker = self._trackers.get(tag)
        if tracker is None:
            logger.error("Tracker not found: %s", tag)
            return False

        try:
            self._rewrite(tracker, lambda body: insert_entry(body, entry, section))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Failed to append to tracker %s: %s", tag, e)
            return False

        logger.info("Appended %s entry to tracker: %s", section.value, tag)
        return True

    def mark_task_complete(self, tag: str, description: str) -> bool:
        """Flip the first open task matching ``description`` to done.

        Already-completed or unknown tasks leave the file untouched.
        """
        tracker = self._trackers.get(tag)
        if tracker is None:
            logger.error("Tracker not found: %s", tag)
            return False

        try:
            updated = self._rewrite(tracker, lambda body: complete_task(body, description, datetime.now()))
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Failed to complete task in %s: %s", tag, e)
            return False

        if not updated:
            logger.info("No open task matching '%s' in %s", description, tag)
        return updated

    def _rewrite(self, tracker: Tracker, transform) -> bool:
        """Read, transform the body, write atomically.

        ``transform`` returns the new body, or None for "nothing to write".
        Returns whether a write happened.
        """
        post = frontmatter.loads(tracker.file_path.read_text(encoding="utf-8"))
        new_body = transform(post.content)
        if new_body is None:
            return False

        post.content = new_body
        # Documents without front matter stay without it
        text = frontmatter.dumps(post, sort_keys=False) if post.metadata else new_body
        if not text.endswith("\n"):
            text += "\n"
        _atomic_write(tracker.file_path, text)

        tracker.content = new_body
        return True


def _atomic_write(path: Path, text: str) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        if tmp.exists():
            tmp.unlink()
        raise
