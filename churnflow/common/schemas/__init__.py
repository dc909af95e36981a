"""
ChurnFlow Capture Schemas

Typed models for registry, trackers, capture input, inference and results.
"""

from .capture import (
    ItemType,
    Priority,
    ContextType,
    InputType,
    SectionKind,
    SECTION_FOR_ITEM_TYPE,
    DEFAULT_REVIEW_TRACKER,
    FALLBACK_CONFIDENCE,
    RegistryEntry,
    TrackerMetadata,
    CaptureInput,
    GeneratedItem,
    TaskCompletion,
    InferenceResponse,
    InferenceResult,
    CaptureItemResult,
    CaptureResult,
    CompletionOutcome,
    clamp_confidence,
    coerce_item_type,
    coerce_priority,
)
from .templates import (
    SECTION_HEADERS,
    PRIORITY_INDICATORS,
    format_entry,
    fallback_entry,
    review_entry,
    emergency_entry,
    normalize_entry_line,
    mark_completed,
)

__all__ = [
    "ItemType",
    "Priority",
    "ContextType",
    "InputType",
    "SectionKind",
    "SECTION_FOR_ITEM_TYPE",
    "DEFAULT_REVIEW_TRACKER",
    "FALLBACK_CONFIDENCE",
    "RegistryEntry",
    "TrackerMetadata",
    "CaptureInput",
    "GeneratedItem",
    "TaskCompletion",
    "InferenceResponse",
    "InferenceResult",
    "CaptureItemResult",
    "CaptureResult",
    "CompletionOutcome",
    "clamp_confidence",
    "coerce_item_type",
    "coerce_priority",
    "SECTION_HEADERS",
    "PRIORITY_INDICATORS",
    "format_entry",
    "fallback_entry",
    "review_entry",
    "emergency_entry",
    "normalize_entry_line",
    "mark_completed",
]
