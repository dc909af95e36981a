"""
Capture Schemas

Typed models for everything that flows through the capture pipeline:
the tracker registry, tracker front matter, capture input, the LLM
inference result and the final capture result.

The inference models treat every field coming back from the LLM as
untrusted input. Each field has an explicit coercion rule instead of a
strict schema, so a slightly-off response is repaired rather than rejected.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enums
# ============================================================================

class ItemType(str, Enum):
    """Kind of entry generated from a capture"""
    ACTION = "action"
    ACTIVITY = "activity"
    REVIEW = "review"
    REFERENCE = "reference"
    SOMEDAY = "someday"


class Priority(str, Enum):
    """Entry priority"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ContextType(str, Enum):
    """Area of life a tracker belongs to"""
    BUSINESS = "business"
    PERSONAL = "personal"
    PROJECT = "project"
    SYSTEM = "system"


class InputType(str, Enum):
    """How the capture text was produced"""
    TEXT = "text"
    VOICE = "voice"


class SectionKind(str, Enum):
    """Tracker body sections, declared in canonical document order"""
    ACTIVITY_LOG = "activity_log"
    ACTION_ITEMS = "action_items"
    REVIEW_QUEUE = "review_queue"
    REFERENCES = "references"
    SOMEDAY_MAYBE = "someday_maybe"
    NOTES = "notes"


SECTION_FOR_ITEM_TYPE = {
    ItemType.ACTIVITY: SectionKind.ACTIVITY_LOG,
    ItemType.ACTION: SectionKind.ACTION_ITEMS,
    ItemType.REVIEW: SectionKind.REVIEW_QUEUE,
    ItemType.REFERENCE: SectionKind.REFERENCES,
    ItemType.SOMEDAY: SectionKind.SOMEDAY_MAYBE,
}

DEFAULT_REVIEW_TRACKER = "review"
FALLBACK_CONFIDENCE = 0.1
DEFAULT_CONFIDENCE = 0.5


def coerce_item_type(value: Any) -> ItemType:
    """Map any raw value onto ItemType, defaulting to REVIEW."""
    try:
        return ItemType(str(value).strip().lower())
    except ValueError:
        return ItemType.REVIEW


def coerce_priority(value: Any) -> Priority:
    """Map any raw value onto Priority, defaulting to MEDIUM."""
    try:
        return Priority(str(value).strip().lower())
    except ValueError:
        return Priority.MEDIUM


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    """Parse a confidence value and clamp it to [0, 1]."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


# ============================================================================
# Registry & trackers
# ============================================================================

class RegistryEntry(BaseModel):
    """One row of the crossref registry"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tag: str
    tracker_file: str = Field(..., alias="trackerFile")
    collection_file: str = Field(default="", alias="collectionFile")
    priority: int = 0
    context_type: ContextType = Field(default=ContextType.PERSONAL, alias="contextType")
    active: bool = True


class TrackerMetadata(BaseModel):
    """Front matter of a tracker document (unknown keys are kept)"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    tag: str = ""
    friendly_name: str = Field(default="", alias="friendlyName")
    context_type: Optional[ContextType] = Field(default=None, alias="contextType")
    active: bool = True

    @field_validator("context_type", mode="before")
    @classmethod
    def _lenient_context(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip().lower()
        return text if text in {c.value for c in ContextType} else None


# ============================================================================
# Capture input
# ============================================================================

class CaptureInput(BaseModel):
    """A single unit of free text submitted for routing"""
    text: str
    input_type: InputType = InputType.TEXT
    force_context: Optional[str] = None
    timestamp: Optional[datetime] = None


# ============================================================================
# Inference
# ============================================================================

class GeneratedItem(BaseModel):
    """One typed, tracker-targeted entry produced from a capture"""
    model_config = ConfigDict(populate_by_name=True)

    tracker: str = ""
    item_type: ItemType = Field(default=ItemType.REVIEW, alias="itemType")
    priority: Priority = Priority.MEDIUM
    content: str = ""
    reasoning: str = ""

    @field_validator("item_type", mode="before")
    @classmethod
    def _coerce_item_type(cls, value: Any) -> ItemType:
        return coerce_item_type(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Priority:
        return coerce_priority(value)

    @field_validator("tracker", "reasoning", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> str:
        # Content may embed raw capture text, keep it untouched
        return "" if value is None else str(value)


class TaskCompletion(BaseModel):
    """Inferred claim that an existing task is now finished"""
    tracker: str = ""
    description: str = ""
    reasoning: str = ""

    @field_validator("tracker", "description", "reasoning", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class InferenceResponse(BaseModel):
    """Raw LLM response after field-level coercion.

    Accepts both the camelCase keys of the wire contract and snake_case.
    Nothing here raises on bad values; the engine turns this into an
    InferenceResult and applies the item-list and confidence policies.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    primary_tracker: str = Field(default="", alias="primaryTracker")
    confidence: float = DEFAULT_CONFIDENCE
    overall_reasoning: str = Field(default="", alias="overallReasoning")
    generated_items: List[GeneratedItem] = Field(default_factory=list, alias="generatedItems")
    task_completions: List[TaskCompletion] = Field(default_factory=list, alias="taskCompletions")
    requires_review: bool = Field(default=False, alias="requiresReview")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)

    @field_validator("primary_tracker", "overall_reasoning", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("generated_items", "task_completions", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list:
        return [v for v in _as_list(value) if isinstance(v, dict)]

    @field_validator("requires_review", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"true", "yes", "1"}
        return bool(value)


class InferenceResult(BaseModel):
    """Validated routing decision for one capture"""
    primary_tracker: str
    confidence: float = Field(ge=0.0, le=1.0)
    overall_reasoning: str = ""
    generated_items: List[GeneratedItem] = Field(min_length=1)
    task_completions: List[TaskCompletion] = Field(default_factory=list)
    requires_review: bool = False


# ============================================================================
# Results
# ============================================================================

class CaptureItemResult(BaseModel):
    """Outcome of placing one generated item"""
    success: bool
    tracker: str
    item_type: ItemType
    formatted_entry: str
    error: Optional[str] = None


class CaptureResult(BaseModel):
    """Terminal outcome of a capture"""
    success: bool
    primary_tracker: str
    confidence: float
    item_results: List[CaptureItemResult] = Field(default_factory=list)
    completed_tasks: List[TaskCompletion] = Field(default_factory=list)
    requires_review: bool = False
    error: Optional[str] = None


class CompletionOutcome(BaseModel):
    """Outcome of applying one TaskCompletion to its tracker"""
    tracker: str
    description: str
    success: bool
    error: Optional[str] = None
