"""Tests for structured text canonicalization."""

import pytest

from awx_controller.canonical import canonicalize, is_equivalent


class TestCanonicalize:
    """Tests for canonicalize."""

    def test_json_sorted_and_compact(self) -> None:
        """Test that JSON comes out compact with sorted keys."""
        assert canonicalize('{ "b": 1,\n  "a": [1, 2] }') == '{"a":[1,2],"b":1}'

    def test_yaml_and_json_agree(self) -> None:
        """Test that YAML and JSON spellings of the same data canonicalize equally."""
        yaml_text = "b: 1\na:\n  - 1\n  - 2\n"

        assert canonicalize(yaml_text) == canonicalize('{"a": [1, 2], "b": 1}')

    def test_non_ascii_preserved(self) -> None:
        """Test that non-ASCII characters are not escaped."""
        assert canonicalize('{"greeting": "grüezi"}') == '{"greeting":"grüezi"}'

    def test_blank_text_is_empty(self) -> None:
        """Test that blank input canonicalizes to the empty string."""
        assert canonicalize("") == ""
        assert canonicalize("   \n") == ""

    def test_unparsable_text_unchanged(self) -> None:
        """Test that text which parses as neither JSON nor YAML is returned as-is."""
        broken = "key: [unclosed"

        assert canonicalize(broken) == broken

    def test_yaml_without_json_form_unchanged(self) -> None:
        """Test that YAML values with no JSON representation are left alone."""
        text = "when: 2024-01-01 10:00:00"

        assert canonicalize(text) == text

    def test_mapping_serialized_directly(self) -> None:
        """Test that decoded mappings are serialized."""
        assert canonicalize({"b": 2, "a": 1}) == '{"a":1,"b":2}'

    def test_none_passes_through(self) -> None:
        """Test that None is passed through."""
        assert canonicalize(None) is None

    def test_integer_keys_sorted_as_strings(self) -> None:
        """Test that non-string YAML keys sort by their JSON spelling."""
        assert canonicalize("9: b\n10: a\ntrue: c\n") == '{"10":"a","9":"b","true":"c"}'

    @pytest.mark.parametrize(
        "text",
        [
            '{"a": {"c": 3, "b": 2}}',
            "list:\n  - x\n  - y\n",
            "---\nkey: value\n",
            '{"big": 1e20, "pi": 3.14}',
            "9: b\n10: a\n",
            "not: [valid",
            "",
        ],
    )
    def test_idempotent(self, text: str) -> None:
        """Test that canonicalizing twice equals canonicalizing once."""
        once = canonicalize(text)

        assert canonicalize(once) == once


class TestIsEquivalent:
    """Tests for is_equivalent."""

    def test_formatting_differences_are_equivalent(self) -> None:
        """Test that whitespace and key order do not count as drift."""
        assert is_equivalent('{"a":1,"b":2}', "b: 2\na: 1")

    def test_value_differences_are_not_equivalent(self) -> None:
        """Test that a changed value counts as drift."""
        assert not is_equivalent('{"a": 1}', '{"a": 2}')

    def test_none_equals_empty(self) -> None:
        """Test that an unset value equals empty text."""
        assert is_equivalent(None, "")
