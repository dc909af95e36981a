"""
Router - Capture Routing

Takes free-form captured text, asks an LLM which tracker it belongs to and
writes formatted entries into the tracker Markdown documents.

Key Components:
- TrackerStore: Loads the crossref registry and tracker documents, writes entries
- InferenceEngine: LLM classification with a deterministic fallback
- CaptureEngine: Capture pipeline with review routing and emergency capture

Rules for routing:
1. Capturing never loses input
2. Low confidence always goes to human review
3. One capture may produce several entries in several trackers
4. Completion signals are reported, never applied implicitly
"""

from .tracker_store import RegistryError, Tracker, TrackerStore, TrackerSummary
from .inference import InferenceEngine
from .capture_engine import CaptureEngine, CaptureState

__all__ = [
    "RegistryError",
    "Tracker",
    "TrackerStore",
    "TrackerSummary",
    "InferenceEngine",
    "CaptureEngine",
    "CaptureState",
]
