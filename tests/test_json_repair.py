"""
Clause2Case
Tests — JSON self-repair.
"""

import json

import pytest

from clause2case.ai.json_repair import repair_json


class TestRepairLeavesValidJsonAlone:
    @pytest.mark.parametrize("text", [
        '{"testCases": [{"title": "A", "steps": ["1", "2"]}]}',
        '[1, 2.5, -3e4, true, false, null]',
        '{"a": "text with , commas } and ] brackets"}',
        '{"escaped": "quote \\" and backslash \\\\"}',
        '{\n  "nested": {"x": [ {}, [] ]}\n}',
        '"just a string"',
    ])
    def test_valid_json_unchanged(self, text):
        assert repair_json(text) == text

    def test_idempotent_after_repair(self):
        once = repair_json('[{"a": 1} {"b": 2},]')
        assert repair_json(once) == once


class TestMissingCommas:
    def test_between_objects_in_array(self):
        assert json.loads(repair_json('[{"a": 1}{"b": 2}]')) == [{"a": 1}, {"b": 2}]

    def test_between_strings_in_array(self):
        assert json.loads(repair_json('["one" "two"\n "three"]')) == ["one", "two", "three"]

    def test_between_object_members(self):
        text = '{"title": "Login" "priority": "high"}'
        assert json.loads(repair_json(text)) == {"title": "Login", "priority": "high"}

    def test_after_nested_value_in_object(self):
        text = '{"steps": ["a", "b"] "tags": []}'
        assert json.loads(repair_json(text)) == {"steps": ["a", "b"], "tags": []}

    def test_between_literals_in_array(self):
        assert json.loads(repair_json("[1 2 true]")) == [1, 2, True]


class TestCommaCleanup:
    def test_trailing_comma_in_array(self):
        assert json.loads(repair_json("[1, 2, ]")) == [1, 2]

    def test_trailing_comma_in_object(self):
        assert json.loads(repair_json('{"a": 1,\n}')) == {"a": 1}

    def test_duplicate_commas(self):
        assert json.loads(repair_json("[1,, 2,,,3]")) == [1, 2, 3]


class TestTruncation:
    def test_unterminated_string_and_containers(self):
        text = '{"testCases": [{"title": "Refund window", "steps": ["Open the form", "Subm'
        repaired = json.loads(repair_json(text))
        assert repaired["testCases"][0]["steps"] == ["Open the form", "Subm"]

    def test_missing_closers_in_stack_order(self):
        assert repair_json('{"a": [1, {"b": 2') == '{"a": [1, {"b": 2}]}'

    def test_truncated_after_comma(self):
        assert json.loads(repair_json('[{"a": 1},')) == [{"a": 1}]

    def test_truncated_after_colon(self):
        assert json.loads(repair_json('{"a": 1, "b":')) == {"a": 1, "b": None}


class TestStringsUntouched:
    def test_string_contents_preserved(self):
        text = '["a,, b" "c ] d"'
        assert json.loads(repair_json(text)) == ["a,, b", "c ] d"]

    def test_unrepairable_stays_invalid(self):
        with pytest.raises(json.JSONDecodeError):
            json.loads(repair_json('{"a" 1}'))
