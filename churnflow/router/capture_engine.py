"""
Capture Engine

End-to-end capture pipeline with all failure recovery.

Each capture walks a linear state machine. Transitions only move forward:

    INFER ──► REVIEW_GATE ──► COMPLETIONS ──► PLACEMENT ──► RESOLVE ──► DONE
      │            │                                           │
      │            └──────────────► REVIEW_ROUTING ◄───────────┘ (all items failed)
      │                                  │
      └──────────► EMERGENCY ◄───────────┘ (no review tracker accepted it)

- INFER: classify via InferenceEngine (which already falls back internally;
  an exception escaping it goes to EMERGENCY)
- REVIEW_GATE: requires_review skips placement
- COMPLETIONS: completion signals are surfaced to the caller, not applied
- PLACEMENT: each generated item is written independently
- RESOLVE: any placed item makes the capture a success
- REVIEW_ROUTING: review entry to the first accepting review tracker
- EMERGENCY: raw text to the first accepting tracker of all

capture() never raises. The only result with success=False is an
emergency capture in which every loaded tracker refused the write.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..common.config import ChurnConfig
from ..common.schemas import (
    CaptureInput,
    CaptureItemResult,
    CaptureResult,
    CompletionOutcome,
    FALLBACK_CONFIDENCE,
    InferenceResult,
    ItemType,
    SECTION_FOR_ITEM_TYPE,
    SectionKind,
    TaskCompletion,
    emergency_entry,
    review_entry,
)
from .inference import InferenceEngine
from .tracker_store import RegistryError, TrackerStore

logger = logging.getLogger("churnflow.router.capture_engine")

NO_TRACKER = "none"


class CaptureState(str, Enum):
    """Pipeline states for a single capture"""
    INFER = "infer"
    REVIEW_GATE = "review_gate"
    COMPLETIONS = "completions"
    PLACEMENT = "placement"
    RESOLVE = "resolve"
    REVIEW_ROUTING = "review_routing"
    EMERGENCY = "emergency"
    DONE = "done"


@dataclass
class CaptureRun:
    """Mutable state of one capture as it moves through the pipeline"""
    capture: CaptureInput
    state: CaptureState = CaptureState.INFER
    inference: Optional[InferenceResult] = None
    item_results: List[CaptureItemResult] = field(default_factory=list)
    completed_tasks: List[TaskCompletion] = field(default_factory=list)
    error: Optional[str] = None
    result: Optional[CaptureResult] = None
    history: List[CaptureState] = field(default_factory=list)


class CaptureEngine:
    """
    Orchestrates inference, review routing, placement and emergency capture.

    Owns the TrackerStore it writes through; the store is built at startup
    and rebuilt by refresh().
    """

    def __init__(
        self,
        store: TrackerStore,
        inference: InferenceEngine,
        review_trackers: Optional[List[str]] = None,
        config: Optional[ChurnConfig] = None,
    ):
        self._store = store
        self._inference = inference
        self._config = config or ChurnConfig()
        self._review_trackers = list(review_trackers or self._config.capture.review_trackers)
        self._initialized = False
        self._handlers = {
            CaptureState.INFER: self._infer,
            CaptureState.REVIEW_GATE: self._review_gate,
            CaptureState.COMPLETIONS: self._record_completions,
            CaptureState.PLACEMENT: self._place_items,
            CaptureState.RESOLVE: self._resolve,
            CaptureState.REVIEW_ROUTING: self._route_to_review,
            CaptureState.EMERGENCY: self._emergency_capture,
        }

    @classmethod
    def from_config(cls, config: ChurnConfig) -> "CaptureEngine":
        store = TrackerStore(Path(config.tracking.crossref_path))
        inference = InferenceEngine.from_config(config.llm, config.capture)
        return cls(store=store, inference=inference, config=config)

    @property
    def store(self) -> TrackerStore:
        return self._store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load trackers. Idempotent; registry errors propagate."""
        if self._initialized:
            return
        logger.info("Initializing ChurnFlow capture system")
        self._store.initialize()
        self._initialized = True
        logger.info("ChurnFlow ready for capture")

    def refresh(self) -> None:
        """Reload trackers after manual edits"""
        logger.info("Refreshing ChurnFlow trackers")
        self._store.refresh()
        self._initialized = True

    def get_status(self) -> Dict[str, Any]:
        trackers = self._store.get_trackers_by_context()
        by_context = Counter(t.context_type.value for t in trackers)
        return {
            "initialized": self._initialized,
            "total_trackers": len(trackers),
            "trackers_by_context": dict(by_context),
            "config": {
                "crossref_path": self._config.tracking.crossref_path,
                "ai_provider": self._config.llm.provider,
                "confidence_threshold": self._inference.confidence_threshold,
            },
        }

    # ------------------------------------------------------------------
    # Public capture API
    # ------------------------------------------------------------------

    def capture(self, text_or_input: Union[str, CaptureInput]) -> CaptureResult:
        """Capture one piece of free text and route it"""
        capture = _normalize_input(text_or_input)
        run = CaptureRun(capture=capture)

        if not self._initialized:
            try:
                self.initialize()
            except RegistryError as e:
                run.error = str(e)
                run.state = CaptureState.EMERGENCY

        logger.info("Capturing: %r", capture.text)
        while run.state != CaptureState.DONE:
            run.history.append(run.state)
            run.state = self._handlers[run.state](run)

        logger.debug("Capture path: %s", " -> ".join(s.value for s in run.history))
        return run.result

    def capture_batch(self, inputs: Iterable[Union[str, CaptureInput]]) -> List[CaptureResult]:
        """Capture inputs one at a time, in order.

        A failure on one input becomes a failed result for that input only.
        """
        results: List[CaptureResult] = []
        for item in inputs:
            try:
                results.append(self.capture(item))
            except Exception as e:
                text = item if isinstance(item, str) else getattr(item, "text", str(item))
                logger.error("Batch capture failed for %r: %s", text, e)
                results.append(CaptureResult(
                    success=False,
                    primary_tracker=NO_TRACKER,
                    confidence=0.0,
                    item_results=[CaptureItemResult(
                        success=False,
                        tracker=NO_TRACKER,
                        item_type=ItemType.REVIEW,
                        formatted_entry=text,
                        error=str(e) or type(e).__name__,
                    )],
                    requires_review=True,
                    error=str(e) or type(e).__name__,
                ))
        return results

    def apply_completions(self, completions: Iterable[TaskCompletion]) -> List[CompletionOutcome]:
        """Mark surfaced completion signals done in their trackers.

        Separate from capture(): detection happens during capture, applying
        it is an explicit follow-up call.
        """
        outcomes: List[CompletionOutcome] = []
        for completion in completions:
            success = self._store.mark_task_complete(completion.tracker, completion.description)
            outcomes.append(CompletionOutcome(
                tracker=completion.tracker,
                description=completion.description,
                success=success,
                error=None if success else f"No open task matching '{completion.description}' in {completion.tracker}",
            ))
        return outcomes

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _infer(self, run: CaptureRun) -> CaptureState:
        try:
            run.inference = self._inference.infer(run.capture, self._store.build_context_summary())
        except Exception as e:
            logger.error("Capture failed during inference: %s", e)
            run.error = str(e) or type(e).__name__
            return CaptureState.EMERGENCY

        logger.info(
            "AI inference: %s (%.0f%% confidence), %d items, %d completions",
            run.inference.primary_tracker,
            run.inference.confidence * 100,
            len(run.inference.generated_items),
            len(run.inference.task_completions),
        )
        return CaptureState.REVIEW_GATE

    def _review_gate(self, run: CaptureRun) -> CaptureState:
        if run.inference.requires_review:
            return CaptureState.REVIEW_ROUTING
        return CaptureState.COMPLETIONS

    def _record_completions(self, run: CaptureRun) -> CaptureState:
        for completion in run.inference.task_completions:
            logger.info("Task completion detected: %s in %s", completion.description, completion.tracker)
            run.completed_tasks.append(completion)
        return CaptureState.PLACEMENT

    def _place_items(self, run: CaptureRun) -> CaptureState:
        for item in run.inference.generated_items:
            section = SECTION_FOR_ITEM_TYPE.get(item.item_type, SectionKind.ACTION_ITEMS)
            try:
                success = self._store.append_item(item.tracker, item.content, section)
                error = None if success else f"Failed to write to {item.tracker}"
            except Exception as e:
                success = False
                error = f"Failed to write to {item.tracker}: {e}"

            if success:
                logger.info("%s added to %s", item.item_type.value, item.tracker)
            else:
                logger.error("Failed to add %s to %s", item.item_type.value, item.tracker)

            run.item_results.append(CaptureItemResult(
                success=success,
                tracker=item.tracker,
                item_type=item.item_type,
                formatted_entry=item.content,
                error=error,
            ))
        return CaptureState.RESOLVE

    def _resolve(self, run: CaptureRun) -> CaptureState:
        if not any(r.success for r in run.item_results):
            logger.warning("No generated item could be placed, routing to review")
            return CaptureState.REVIEW_ROUTING

        run.result = CaptureResult(
            success=True,
            primary_tracker=run.inference.primary_tracker,
            confidence=run.inference.confidence,
            item_results=run.item_results,
            completed_tasks=run.completed_tasks,
            requires_review=False,
        )
        return CaptureState.DONE

    def _route_to_review(self, run: CaptureRun) -> CaptureState:
        logger.info("Routing to review queue (needs human attention)")
        inference = run.inference
        entry = review_entry(
            run.capture.text,
            suggested_tracker=inference.primary_tracker if inference else None,
            confidence=inference.confidence if inference else None,
            when=run.capture.timestamp,
        )

        for tag in self._review_trackers:
            if self._store.get_tracker(tag) is None:
                continue
            if self._store.append_item(tag, entry, SectionKind.REVIEW_QUEUE):
                run.item_results.append(CaptureItemResult(
                    success=True,
                    tracker=tag,
                    item_type=ItemType.REVIEW,
                    formatted_entry=entry,
                ))
                run.result = CaptureResult(
                    success=True,
                    primary_tracker=tag,
                    confidence=inference.confidence if inference else FALLBACK_CONFIDENCE,
                    item_results=run.item_results,
                    completed_tasks=run.completed_tasks,
                    requires_review=True,
                )
                return CaptureState.DONE

        run.error = "No review tracker accepted the entry"
        logger.error("Review routing failed: %s", run.error)
        return CaptureState.EMERGENCY

    def _emergency_capture(self, run: CaptureRun) -> CaptureState:
        logger.warning("Emergency capture - saving raw input")
        error = run.error or "Unknown error"
        entry = emergency_entry(run.capture.text, error)

        for tracker in self._store.get_trackers_by_context():
            try:
                success = self._store.append_item(tracker.tag, entry)
            except Exception as e:
                logger.error("Emergency write to %s failed: %s", tracker.tag, e)
                continue
            if success:
                logger.warning("Emergency capture saved to %s", tracker.tag)
                run.result = CaptureResult(
                    success=True,
                    primary_tracker=tracker.tag,
                    confidence=FALLBACK_CONFIDENCE,
                    item_results=[CaptureItemResult(
                        success=True,
                        tracker=tracker.tag,
                        item_type=ItemType.ACTION,
                        formatted_entry=entry,
                    )],
                    completed_tasks=run.completed_tasks,
                    requires_review=True,
                )
                return CaptureState.DONE

        message = f"Complete capture failure: {error}"
        logger.error("Emergency capture failed, no tracker accepted the input: %s", message)
        run.result = CaptureResult(
            success=False,
            primary_tracker=NO_TRACKER,
            confidence=0.0,
            item_results=[CaptureItemResult(
                success=False,
                tracker=NO_TRACKER,
                item_type=ItemType.ACTION,
                formatted_entry=entry,
                error=message,
            )],
            completed_tasks=run.completed_tasks,
            requires_review=True,
            error=message,
        )
        return CaptureState.DONE


def _normalize_input(text_or_input: Union[str, CaptureInput]) -> CaptureInput:
    if isinstance(text_or_input, CaptureInput):
        return text_or_input
    return CaptureInput(text=str(text_or_input))
