# tests/test_parse_utils.py
"""Tests for tolerant JSON-like parsing of model output."""

from __future__ import annotations

import pytest


class TestParseJsonLike:
    def test_strict_json(self):
        from medimind.pipelines.parse_utils import parse_json_like

        assert parse_json_like('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        from medimind.pipelines.parse_utils import parse_json_like

        assert parse_json_like('Here you go:\n```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}

    def test_prose_around_object(self):
        from medimind.pipelines.parse_utils import parse_json_like

        assert parse_json_like('Result: {"name": "Aspirin"} Hope this helps!') == {"name": "Aspirin"}

    def test_trailing_commas(self):
        from medimind.pipelines.parse_utils import parse_json_like

        assert parse_json_like('{"a": [1, 2,], "b": 3,}') == {"a": [1, 2], "b": 3}

    def test_python_literal(self):
        from medimind.pipelines.parse_utils import parse_json_like

        assert parse_json_like("{'a': None, 'b': True}") == {"a": None, "b": True}

    def test_truncated_answer_is_repaired(self):
        from medimind.pipelines.parse_utils import parse_json_like

        parsed = parse_json_like('{"name": "Aspirin", "dosage_forms": ["tablet", "gel"')
        assert parsed["name"] == "Aspirin"
        assert parsed["dosage_forms"] == ["tablet", "gel"]

    def test_unquoted_keys_are_repaired(self):
        from medimind.pipelines.parse_utils import parse_json_like

        assert parse_json_like('Answer: {name: "Aspirin"}') == {"name": "Aspirin"}

    def test_python_sets_become_lists(self):
        from medimind.pipelines.parse_utils import parse_json_like

        parsed = parse_json_like("{'dosage': {'amount': {500, 250}}, 'times': (1, 2)}")
        assert parsed == {"dosage": {"amount": [250, 500]}, "times": [1, 2]}

    @pytest.mark.parametrize("raw", [None, "", "no json here", "```\n```"])
    def test_unparseable(self, raw):
        from medimind.pipelines.parse_utils import parse_json_like

        assert parse_json_like(raw) is None

    def test_strip_markdown_fences_passthrough(self):
        from medimind.pipelines.parse_utils import strip_markdown_fences

        assert strip_markdown_fences("  plain  ") == "plain"


class TestJsonRegion:
    def test_object_region(self):
        from medimind.pipelines.parse_utils import json_region

        assert json_region('Sure! {"a": {"b": 1}} Thanks.') == '{"a": {"b": 1}}'

    def test_list_before_object(self):
        from medimind.pipelines.parse_utils import json_region

        assert json_region('[{"a": 1}] trailing') == '[{"a": 1}]'

    def test_unclosed_region_runs_to_end(self):
        from medimind.pipelines.parse_utils import json_region

        assert json_region('x {"a": 1') == '{"a": 1'

    def test_no_region(self):
        from medimind.pipelines.parse_utils import json_region

        assert json_region("plain words") is None
