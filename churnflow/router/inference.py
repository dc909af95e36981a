"""
Inference Engine

Turns one capture plus the tracker context summary into a validated
InferenceResult using an LLM.

Validation happens in two stages:
1. Outer: the LLM call itself and JSON extraction. Any failure here
   (client unavailable, network/service error, timeout, no JSON object)
   switches to the fallback result.
2. Fields: the JSON object is read through InferenceResponse, whose
   validators coerce every field instead of rejecting the response.

infer() never raises and never returns an empty item list.
"""

import json
import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..common.config import CaptureConfig, LLMConfig
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import (
    CaptureInput,
    DEFAULT_REVIEW_TRACKER,
    FALLBACK_CONFIDENCE,
    GeneratedItem,
    InferenceResponse,
    InferenceResult,
    InputType,
    ItemType,
    Priority,
    fallback_entry,
    normalize_entry_line,
)
from .tracker_store import TrackerSummary

logger = logging.getLogger("churnflow.router.inference")


SYSTEM_PROMPT = """You are an ADHD-friendly productivity assistant that analyzes captured thoughts and routes them into trackers.

Your job is to:
1. Analyze natural language input, often dictated or typed in a hurry
2. Identify ALL actionable items, updates, and completions within the input
3. Generate a separate entry for each distinct item (action, review, reference, someday, activity)
4. Detect if the input indicates completion of an existing task
5. Route each item to the most appropriate tracker tag

Item types:
- activity: something that happened (goes to the Activity Log)
- action: a specific task to do (goes to Action Items)
- reference: information worth keeping (goes to References)
- review: needs a human decision (goes to the Review Queue)
- someday: a future possibility (goes to Someday/Maybe)

One capture can contain several items; extract them all. Look for task
completions ("Doug picked up his welder" means that task is done).

Entry formats (one Markdown line each):
- action:    "- [ ] #task <description> #<tag> <priority icon>"
- activity:  "- [YYYY-MM-DD HH:MM] <description>"
- reference: "- **<title>**: <description> [YYYY-MM-DD]"
- someday:   "- [ ] #someday [YYYY-MM-DD] <description> #<tag>"
- review:    "- [ ] #review [YYYY-MM-DD] <description>"
Priority icons: critical 🚨, high ⏫, medium 🔼, low 🔻.

Respond with a valid JSON object only, in this format:
{
  "primaryTracker": "most-relevant-tag",
  "confidence": 0.95,
  "overallReasoning": "Brief explanation of analysis",
  "generatedItems": [
    {
      "tracker": "tag-name",
      "itemType": "action|review|reference|someday|activity",
      "priority": "critical|high|medium|low",
      "content": "- [ ] #task Formatted entry for this item",
      "reasoning": "Why this item goes here"
    }
  ],
  "taskCompletions": [
    {
      "tracker": "tag-name",
      "description": "What task was completed",
      "reasoning": "Evidence of completion"
    }
  ],
  "requiresReview": false
}"""


USER_PROMPT = """Route the capture described by this request:

{request}

Use only tracker tags listed under "trackers". Prefer quick, accurate routing
over perfection; lower your confidence when the input is ambiguous.

JSON:"""


class InferenceRequest(BaseModel):
    """Structured request embedded in the user prompt"""
    text: str
    input_type: InputType = Field(serialization_alias="inputType")
    force_context: Optional[str] = Field(default=None, serialization_alias="forcedContext")
    timestamp: str
    trackers: List[dict] = Field(default_factory=list)


class InferenceEngine:
    """
    LLM-backed capture classifier.

    The confidence threshold is authoritative: a result below it always
    requires review, whatever the model's own requiresReview says.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        confidence_threshold: float = 0.7,
        llm_config: Optional[LLMConfig] = None,
    ):
        self._llm = llm_client
        self._threshold = confidence_threshold
        self._llm_config = llm_config or LLMConfig()

    @classmethod
    def from_config(cls, llm_config: LLMConfig, capture_config: CaptureConfig) -> "InferenceEngine":
        return cls(
            llm_client=LLMClient.from_config(llm_config),
            confidence_threshold=capture_config.confidence_threshold,
            llm_config=llm_config,
        )

    @property
    def confidence_threshold(self) -> float:
        return self._threshold

    def infer(
        self,
        capture: CaptureInput,
        context_summary: Optional[Dict[str, TrackerSummary]] = None,
    ) -> InferenceResult:
        """Classify a capture. Falls back to a review item on any failure."""
        try:
            request = self.build_request(capture, context_summary or {})
            raw = self._llm.generate(
                USER_PROMPT.format(request=request),
                system=SYSTEM_PROMPT,
                max_tokens=self._llm_config.max_tokens,
                temperature=self._llm_config.temperature,
                timeout=self._llm_config.timeout,
                json_output=True,
            )
            data = parse_llm_json(raw)
            if not data:
                raise ValueError("LLM response contained no JSON object")
            response = InferenceResponse.model_validate(data)
        except ValidationError as e:
            logger.warning("LLM response failed validation: %s", e)
            return self.fallback(capture)
        except Exception as e:
            logger.warning("AI inference failed: %s", e)
            return self.fallback(capture)

        return self._to_result(response, capture)

    def build_request(
        self,
        capture: CaptureInput,
        context_summary: Dict[str, TrackerSummary],
    ) -> str:
        """Render the JSON request for one capture"""
        timestamp = capture.timestamp or datetime.now()
        request = InferenceRequest(
            text=capture.text,
            input_type=capture.input_type,
            force_context=capture.force_context,
            timestamp=timestamp.isoformat(timespec="seconds"),
            trackers=[summary.to_dict() for summary in context_summary.values()],
        )
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        return json.dumps(payload, indent=2, ensure_ascii=False)

    def _to_result(self, response: InferenceResponse, capture: CaptureInput) -> InferenceResult:
        primary = response.primary_tracker or DEFAULT_REVIEW_TRACKER

        items: List[GeneratedItem] = []
        for item in response.generated_items:
            content = normalize_entry_line(item.content) or fallback_entry(capture.text, capture.timestamp)
            items.append(item.model_copy(update={
                "tracker": item.tracker or primary,
                "content": content,
                "reasoning": item.reasoning or "Generated item",
            }))

        if not items:
            items.append(GeneratedItem(
                tracker=primary,
                item_type=ItemType.REVIEW,
                priority=Priority.MEDIUM,
                content=fallback_entry(capture.text, capture.timestamp),
                reasoning="Fallback item creation",
            ))

        completions = [
            c.model_copy(update={
                "tracker": c.tracker or primary,
                "description": c.description or "Task completion detected",
                "reasoning": c.reasoning or "Completion inference",
            })
            for c in response.task_completions
        ]

        requires_review = response.requires_review or response.confidence < self._threshold

        return InferenceResult(
            primary_tracker=primary,
            confidence=response.confidence,
            overall_reasoning=response.overall_reasoning or "AI inference result",
            generated_items=items,
            task_completions=completions,
            requires_review=requires_review,
        )

    def fallback(self, capture: CaptureInput) -> InferenceResult:
        """Synthetic result used whenever inference cannot be trusted"""
        return InferenceResult(
            primary_tracker=DEFAULT_REVIEW_TRACKER,
            confidence=FALLBACK_CONFIDENCE,
            overall_reasoning="AI inference failed, routing to review",
            generated_items=[GeneratedItem(
                tracker=DEFAULT_REVIEW_TRACKER,
                item_type=ItemType.REVIEW,
                priority=Priority.MEDIUM,
                content=fallback_entry(capture.text, capture.timestamp),
                reasoning="Fallback due to AI failure",
            )],
            task_completions=[],
            requires_review=True,
        )
