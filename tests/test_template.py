"""Tests for opsctl.template: placeholder lookup and rendering."""

from opsctl.template import ABSENT, extract_placeholders, lookup, render_template, stringify


class TestLookup:
    def test_nested_path(self) -> None:
        assert lookup({"github": {"title": "x"}}, "github.title") == "x"

    def test_missing_segment(self) -> None:
        assert lookup({"github": {}}, "github.title") is ABSENT

    def test_through_non_mapping(self) -> None:
        assert lookup({"title": "x"}, "title.length") is ABSENT


class TestStringify:
    def test_scalars(self) -> None:
        assert stringify(None) == ""
        assert stringify(True) == "true"
        assert stringify(0) == "0"

    def test_list_joined(self) -> None:
        assert stringify(["bug", "auth"]) == "bug, auth"

    def test_mapping_is_compact_json(self) -> None:
        assert stringify({"a": 1, "b": "é"}) == '{"a":1,"b":"é"}'


class TestRenderTemplate:
    def test_substitutes_values(self) -> None:
        result = render_template("Fix {{ title }} in {{repo}}", {"title": "auth", "repo": "acme/w"})
        assert result.text == "Fix auth in acme/w"
        assert result.missing_required == []
        assert result.placeholders_used == ["title", "repo"]

    def test_fallback_used_for_blank_values(self) -> None:
        result = render_template("{{summary|No summary yet.}} / {{notes | none }}", {"summary": ""})
        assert result.text == "No summary yet. / none"
        assert result.missing_required == []

    def test_falsy_non_blank_values_render(self) -> None:
        result = render_template("{{count|x}} {{flag|x}} {{tags|x}}", {"count": 0, "flag": False, "tags": []})
        assert result.text == "0 false "

    def test_missing_without_fallback_reported_once(self) -> None:
        result = render_template("{{a}} {{a}} {{b}}", {})
        assert result.text == "  "
        assert result.missing_required == ["a", "b"]

    def test_none_value_counts_as_missing(self) -> None:
        assert render_template("{{x}}", {"x": None}).missing_required == ["x"]

    def test_dotted_path(self) -> None:
        ctx = {"sidecar": {"priority": "high"}}
        assert render_template("{{sidecar.priority}}", ctx).text == "high"

    def test_non_placeholder_braces_untouched(self) -> None:
        assert render_template("{{ not valid! }} {x}", {}).text == "{{ not valid! }} {x}"

    def test_placeholders_used_includes_fallbacks(self) -> None:
        result = render_template("{{a|1}}{{b}}", {"b": "2"})
        assert result.placeholders_used == ["a", "b"]


class TestExtractPlaceholders:
    def test_distinct_in_order(self) -> None:
        assert extract_placeholders("{{b}} {{a|x}} {{b}}") == ["b", "a"]
