"""Tests for InferenceEngine -- LLM response handling and the fallback path."""

import json
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from churnflow.common.schemas import CaptureInput, ItemType, Priority
from churnflow.router.inference import InferenceEngine
from churnflow.router.tracker_store import TrackerSummary


def _engine(response=None, side_effect=None, threshold=0.7):
    llm = MagicMock()
    if side_effect is not None:
        llm.generate.side_effect = side_effect
    else:
        llm.generate.return_value = response if isinstance(response, str) else json.dumps(response)
    return InferenceEngine(llm, confidence_threshold=threshold), llm


CAPTURE = CaptureInput(text="Doug picked up his welder, need to call him about the frame", timestamp=datetime(2024, 1, 15, 10, 30))


class TestInferHappyPath:
    def test_multi_item_response(self):
        engine, _ = _engine({
            "primaryTracker": "project-55",
            "confidence": 0.92,
            "overallReasoning": "Truck project",
            "generatedItems": [
                {"tracker": "project-55", "itemType": "activity", "priority": "low",
                 "content": "- [2024-01-15 10:30] Doug picked up his welder", "reasoning": "event"},
                {"tracker": "project-55", "itemType": "action", "priority": "high",
                 "content": "- [ ] #task Call Doug about the frame #project-55 ⏫", "reasoning": "todo"},
            ],
            "taskCompletions": [
                {"tracker": "project-55", "description": "Doug picks up welder", "reasoning": "picked up"},
            ],
            "requiresReview": False,
        })

        result = engine.infer(CAPTURE)

        assert result.primary_tracker == "project-55"
        assert result.confidence == 0.92
        assert [i.item_type for i in result.generated_items] == [ItemType.ACTIVITY, ItemType.ACTION]
        assert result.generated_items[1].priority == Priority.HIGH
        assert result.task_completions[0].description == "Doug picks up welder"
        assert result.requires_review is False

    def test_items_default_to_primary_tracker(self):
        engine, _ = _engine({
            "primaryTracker": "project-55",
            "confidence": 0.9,
            "generatedItems": [{"itemType": "action", "content": "Call Doug"}],
            "taskCompletions": [{"description": "welder"}],
        })
        result = engine.infer(CAPTURE)
        item = result.generated_items[0]
        assert item.tracker == "project-55"
        assert item.content == "- Call Doug"
        assert item.reasoning
        assert result.task_completions[0].tracker == "project-55"

    def test_request_carries_context_and_timeout(self):
        engine, llm = _engine({"primaryTracker": "a", "confidence": 0.9, "generatedItems": []})
        summary = {"project-55": TrackerSummary(tag="project-55", friendly_name="Project 55", context_type="project")}

        engine.infer(CAPTURE.model_copy(update={"force_context": "project"}), summary)

        prompt = llm.generate.call_args.args[0]
        kwargs = llm.generate.call_args.kwargs
        assert '"forcedContext": "project"' in prompt
        assert '"inputType": "text"' in prompt
        assert '"friendlyName": "Project 55"' in prompt
        assert kwargs["timeout"] == 30.0
        assert kwargs["json_output"] is True


class TestCoercionAndPolicy:
    def test_empty_item_list_becomes_review_item(self):
        engine, _ = _engine({"primaryTracker": "project-55", "confidence": 0.95, "generatedItems": []})
        result = engine.infer(CAPTURE)
        assert len(result.generated_items) == 1
        item = result.generated_items[0]
        assert item.item_type == ItemType.REVIEW
        assert item.tracker == "project-55"
        assert CAPTURE.text in item.content

    def test_invalid_enums_and_confidence_are_coerced(self):
        engine, _ = _engine({
            "primaryTracker": "project-55",
            "confidence": 7,
            "generatedItems": [{"itemType": "chore", "priority": "asap", "content": "- [ ] x"}],
        })
        result = engine.infer(CAPTURE)
        assert result.confidence == 1.0
        assert result.generated_items[0].item_type == ItemType.REVIEW
        assert result.generated_items[0].priority == Priority.MEDIUM

    @pytest.mark.parametrize("confidence,threshold,expected", [
        (0.5, 0.7, True),
        (0.7, 0.7, False),
        (0.9, 0.7, False),
        (0.5, 0.4, False),
    ])
    def test_threshold_decides_review(self, confidence, threshold, expected):
        engine, _ = _engine(
            {"primaryTracker": "project-55", "confidence": confidence,
             "generatedItems": [{"itemType": "action", "content": "- [ ] #task x"}],
             "requiresReview": False},
            threshold=threshold,
        )
        assert engine.infer(CAPTURE).requires_review is expected

    def test_model_requested_review_is_kept(self):
        engine, _ = _engine({"primaryTracker": "a", "confidence": 0.99, "requiresReview": True})
        assert engine.infer(CAPTURE).requires_review is True

    def test_missing_primary_tracker_defaults_to_review(self):
        engine, _ = _engine({"confidence": 0.9, "generatedItems": [{"content": "- x"}]})
        result = engine.infer(CAPTURE)
        assert result.primary_tracker == "review"
        assert result.generated_items[0].tracker == "review"


class TestFallback:
    @pytest.mark.parametrize("raw", ["not json at all", "", "[1, 2, 3]"])
    def test_unusable_response_falls_back(self, raw):
        engine, _ = _engine(raw)
        result = engine.infer(CAPTURE)
        assert result.primary_tracker == "review"
        assert result.confidence == 0.1
        assert result.requires_review is True
        assert CAPTURE.text in result.generated_items[0].content

    def test_llm_error_falls_back_with_warning(self, caplog):
        import logging
        engine, _ = _engine(side_effect=TimeoutError("request timed out"))
        with caplog.at_level(logging.WARNING, logger="churnflow.router.inference"):
            result = engine.infer(CAPTURE)
        assert result.primary_tracker == "review"
        assert result.generated_items[0].item_type == ItemType.REVIEW
        assert "AI inference failed" in caplog.text

    def test_unavailable_client_falls_back(self):
        from churnflow.common.llm_client import LLMClient
        engine = InferenceEngine(LLMClient(provider="openai"))
        result = engine.infer(CaptureInput(text="anything"))
        assert result.confidence == 0.1
        assert result.generated_items[0].content.endswith("anything")

    def test_multi_line_input_is_verbatim_in_fallback(self):
        engine, _ = _engine(side_effect=TimeoutError("slow"))
        text = "Call Doug\nabout the welder\n  and the frame  "
        result = engine.infer(CaptureInput(text=text))
        assert any(text in item.content for item in result.generated_items)

    def test_fallback_content_is_verbatim(self):
        engine, _ = _engine(side_effect=RuntimeError("boom"))
        text = "weird   spacing #tags & <symbols>"
        result = engine.infer(CaptureInput(text=text))
        assert text in result.generated_items[0].content
