"""
Tests for scope-aware variable validation.
"""

import pytest

from wclip.template.parser import parse
from wclip.template.validator import (
    PRESET_VARIABLE_NAMES,
    find_similar_variable,
    is_valid_variable,
    levenshtein_distance,
    validate_variables,
)


def warnings_for(template, known_variables=None):
    result = parse(template)
    assert result.errors == []
    return validate_variables(result.ast, known_variables=known_variables)


def warning_messages(template, known_variables=None):
    return [w.message for w in warnings_for(template, known_variables)]


class TestLevenshtein:

    @pytest.mark.parametrize("a, b, expected", [
        ("", "", 0),
        ("abc", "", 3),
        ("", "abc", 3),
        ("title", "title", 0),
        ("titl", "title", 1),
        ("kitten", "sitting", 3),
        ("auther", "author", 1),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_symmetric(self):
        assert levenshtein_distance("flaw", "lawn") == levenshtein_distance("lawn", "flaw")


class TestSuggestions:

    def test_close_match(self):
        assert find_similar_variable("titl") == "title"
        assert find_similar_variable("auther") == "author"

    def test_case_insensitive(self):
        assert find_similar_variable("URL") == "url"

    def test_no_match_for_distant_names(self):
        assert find_similar_variable("customVariable") is None

    def test_first_candidate_wins_on_tie(self):
        # "titel" is two edits away from both "site" and "title"
        assert PRESET_VARIABLE_NAMES.index("site") < PRESET_VARIABLE_NAMES.index("title")
        assert find_similar_variable("titel") == "site"


class TestIsValidVariable:

    @pytest.mark.parametrize("name", [
        "title",
        "author.name",
        "highlights[0]",
        "schema:@Article:author",
        "selector:h1",
        "selectorHtml:.content",
        "meta:og:title",
        "loop.index",
        '"a prompt"',
    ])
    def test_always_valid(self, name):
        assert is_valid_variable(name, set())

    def test_scope_names(self):
        assert is_valid_variable("item", {"item"})
        assert is_valid_variable("item.name", {"item"})
        assert not is_valid_variable("item", set())

    def test_scope_accepts_any_iterable(self):
        assert is_valid_variable("item", ["item"])


class TestValidateVariables:

    def test_known_template_has_no_warnings(self):
        template = (
            "# {{title}}\n"
            "By {{author|default:\"Unknown\"}} on {{published|date:\"YYYY-MM-DD\"}}\n"
            "{% for h in highlights %}- {{h.text}} ({{loop.index}}){% endfor %}"
        )
        assert warnings_for(template) == []

    def test_unknown_variable_with_suggestion(self):
        assert warning_messages("{{auther}}") == ['Unknown variable "auther". Did you mean "author"?']

    def test_unknown_variable_without_suggestion(self):
        assert warning_messages("{{customVariable}}") == ['Unknown variable "customVariable"']

    def test_warning_position(self):
        warnings = warnings_for("line\n  {{ mystery }}")
        assert len(warnings) == 1
        assert (warnings[0].line, warnings[0].column) == (2, 6)

    def test_special_prefixes_and_prompts(self):
        template = '{{schema:@Article:name}}{{selector:h1}}{{meta:og:title}}{{"summarize the page"}}'
        assert warnings_for(template) == []

    def test_only_subject_checked_in_substitutions(self):
        assert warnings_for("{{title|replace:other}}") == []
        assert warnings_for("{{title ?? fallback}}") == []

    def test_subject_of_nullish_checked(self):
        messages = warning_messages('{{missing ?? "x"}}')
        assert len(messages) == 1
        assert messages[0].startswith('Unknown variable "missing"')

    def test_all_identifiers_checked_in_tags(self):
        messages = warning_messages("{% if foo and title %}x{% endif %}")
        assert messages == ['Unknown variable "foo"']

    def test_set_defines_variable(self):
        assert warnings_for("{% set slug = title|lower %}{{slug}}") == []

    def test_use_before_set_warns(self):
        warnings = warnings_for("{{y}}{% set y = 1 %}{{y}}")
        assert [(w.message, w.line, w.column) for w in warnings] == [('Unknown variable "y"', 1, 3)]

    def test_set_visible_after_if(self):
        template = "{% if title %}{% set note = 1 %}{% endif %}{{note}}"
        assert warnings_for(template) == []

    def test_loop_variables_scoped_to_body(self):
        template = "{% for a in highlights %}{{a}}{{a_index}}{% endfor %}{{a_index}}"
        warnings = warnings_for(template)
        assert len(warnings) == 1
        assert warnings[0].message.startswith('Unknown variable "a_index"')
        assert warnings[0].column == 56

    def test_set_inside_loop_does_not_leak(self):
        template = "{% for h in highlights %}{% set y = h %}{% endfor %}{{y}}"
        assert warning_messages(template) == ['Unknown variable "y"']

    def test_iterable_checked_in_outer_scope(self):
        messages = warning_messages("{% for item in items %}{{item}}{% endfor %}")
        assert len(messages) == 1
        assert messages[0].startswith('Unknown variable "items"')

    def test_known_variables(self):
        assert warnings_for("{{custom}}{{custom.field}}", known_variables=["custom"]) == []

    def test_elseif_conditions_checked(self):
        messages = warning_messages("{% if title %}a{% elseif other %}b{% else %}c{% endif %}")
        assert messages == ['Unknown variable "other"']

    def test_warnings_in_document_order(self):
        names = [
            w.message.split('"')[1]
            for w in warnings_for("{{zeta}}{% if alpha %}{{beta}}{% endif %}")
        ]
        assert names == ["zeta", "alpha", "beta"]
