"""Tests for shared LLM response parsing utilities."""

from churnflow.common.llm_utils import parse_llm_json


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"key": "value"}') == {"key": "value"}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"primaryTracker": "project-55", "requiresReview": false}\n```'
        result = parse_llm_json(raw)
        assert result == {"primaryTracker": "project-55", "requiresReview": False}

    def test_json_with_plain_fences(self):
        raw = '```\n{"a": 1}\n```'
        assert parse_llm_json(raw) == {"a": 1}

    def test_json_embedded_in_text(self):
        raw = 'Here is the routing: {"primaryTracker": "review"} hope that helps.'
        assert parse_llm_json(raw) == {"primaryTracker": "review"}

    def test_no_json_returns_empty_dict(self):
        assert parse_llm_json("I could not decide where this goes") == {}

    def test_empty_string_returns_empty_dict(self):
        assert parse_llm_json("") == {}

    def test_nested_json(self):
        raw = '{"generatedItems": [{"tracker": "a"}, {"tracker": "b"}]}'
        result = parse_llm_json(raw)
        assert len(result["generatedItems"]) == 2

    def test_invalid_json_with_braces_returns_empty(self):
        assert parse_llm_json('{"broken: json') == {}

    def test_top_level_array_returns_empty(self):
        assert parse_llm_json('[{"tracker": "a"}]') == {}
