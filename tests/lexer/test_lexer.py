"""
Tests for the template lexer.
"""

import pytest

from wclip.template.lexer import TemplateLexer, tokenize
from wclip.template.tokens import Token, TokenType, format_error, format_token


def types_of(tokens):
    return [t.type for t in tokens]


def contains_sequence(tokens, expected):
    """True if the token types contain `expected` as a contiguous run."""
    actual = types_of(tokens)
    for start in range(len(actual) - len(expected) + 1):
        if actual[start:start + len(expected)] == expected:
            return True
    return False


class TestBasicTokenization:

    def test_plain_text(self):
        """Test plain text becomes a single text token"""
        result = tokenize("Hello, world!")
        assert result.errors == []
        assert types_of(result.tokens) == [TokenType.TEXT, TokenType.EOF]
        assert result.tokens[0].value == "Hello, world!"

    def test_empty_string(self):
        """Test empty input yields only EOF"""
        result = tokenize("")
        assert result.errors == []
        assert types_of(result.tokens) == [TokenType.EOF]

    def test_simple_variable(self):
        result = tokenize("{{title}}")
        assert result.errors == []
        assert types_of(result.tokens) == [
            TokenType.VARIABLE_START, TokenType.IDENTIFIER, TokenType.VARIABLE_END, TokenType.EOF,
        ]
        assert result.tokens[1].value == "title"

    def test_variable_with_filter(self):
        result = tokenize("{{title|lower}}")
        assert result.errors == []
        assert contains_sequence(result.tokens, [TokenType.IDENTIFIER, TokenType.PIPE, TokenType.IDENTIFIER])

    def test_whitespace_inside_variable_is_ignored(self):
        result = tokenize("{{ title | lower }}")
        assert result.errors == []
        assert types_of(result.tokens) == [
            TokenType.VARIABLE_START,
            TokenType.IDENTIFIER,
            TokenType.PIPE,
            TokenType.IDENTIFIER,
            TokenType.VARIABLE_END,
            TokenType.EOF,
        ]

    def test_variable_delimiters_never_trim(self):
        """Test variables never request whitespace trimming"""
        result = tokenize("{{ title }}")
        start, end = result.tokens[0], result.tokens[2]
        assert start.trim_left is False
        assert end.trim_right is False

    def test_nested_property_access_is_one_identifier(self):
        result = tokenize("{{author.name}}")
        assert result.errors == []
        assert result.tokens[1].type == TokenType.IDENTIFIER
        assert result.tokens[1].value == "author.name"

    def test_eof_is_always_last_and_unique(self):
        for text in ["", "abc", "{{x}}", "{% if %}", "{{", "{{ 'open"]:
            tokens = tokenize(text).tokens
            assert tokens[-1].type == TokenType.EOF
            assert types_of(tokens).count(TokenType.EOF) == 1


class TestTags:

    def test_if_tag(self):
        result = tokenize("{% if title %}")
        assert result.errors == []
        assert types_of(result.tokens) == [
            TokenType.TAG_START, TokenType.KEYWORD_IF, TokenType.IDENTIFIER, TokenType.TAG_END, TokenType.EOF,
        ]

    def test_if_else_endif(self):
        result = tokenize("{% if x %}yes{% else %}no{% endif %}")
        assert result.errors == []
        assert types_of(result.tokens) == [
            TokenType.TAG_START, TokenType.KEYWORD_IF, TokenType.IDENTIFIER, TokenType.TAG_END,
            TokenType.TEXT,
            TokenType.TAG_START, TokenType.KEYWORD_ELSE, TokenType.TAG_END,
            TokenType.TEXT,
            TokenType.TAG_START, TokenType.KEYWORD_ENDIF, TokenType.TAG_END,
            TokenType.EOF,
        ]

    def test_for_loop(self):
        result = tokenize("{% for item in items %}")
        assert result.errors == []
        assert contains_sequence(result.tokens, [
            TokenType.KEYWORD_FOR, TokenType.IDENTIFIER, TokenType.KEYWORD_IN, TokenType.IDENTIFIER,
        ])

    def test_set_tag(self):
        result = tokenize('{% set name = "John" %}')
        assert result.errors == []
        assert contains_sequence(result.tokens, [
            TokenType.KEYWORD_SET, TokenType.IDENTIFIER, TokenType.OP_ASSIGN, TokenType.STRING,
        ])
        assert result.tokens[4].value == "John"

    def test_tag_delimiters_trim_flags(self):
        """Test tag start never trims and tag end always trims"""
        result = tokenize("{% if x %}")
        assert result.tokens[0].trim_left is False
        assert result.tokens[3].trim_right is True

    def test_dash_closer_also_trims(self):
        result = tokenize("{% if x -%}")
        assert result.errors == []
        end = result.tokens[3]
        assert end.type == TokenType.TAG_END
        assert end.value == "-%}"
        assert end.trim_right is True

    def test_keywords_are_case_insensitive(self):
        result = tokenize("{% IF x AND y %}")
        assert result.errors == []
        assert result.tokens[1].type == TokenType.KEYWORD_IF
        assert result.tokens[3].type == TokenType.OP_AND
        assert result.tokens[1].value == "IF"


class TestOperators:

    @pytest.mark.parametrize("op, expected", [
        ("==", TokenType.OP_EQ),
        ("!=", TokenType.OP_NEQ),
        (">", TokenType.OP_GT),
        ("<", TokenType.OP_LT),
        (">=", TokenType.OP_GTE),
        ("<=", TokenType.OP_LTE),
    ])
    def test_comparison_operators(self, op, expected):
        result = tokenize(f"{{% if x {op} 5 %}}")
        assert result.errors == []
        assert result.tokens[3].type == expected
        assert result.tokens[3].value == op

    def test_contains_operator(self):
        result = tokenize('{% if title contains "test" %}')
        assert result.errors == []
        assert result.tokens[3].type == TokenType.OP_CONTAINS

    @pytest.mark.parametrize("source, expected", [
        ("x and y", TokenType.OP_AND),
        ("x && y", TokenType.OP_AND),
        ("x or y", TokenType.OP_OR),
        ("x || y", TokenType.OP_OR),
    ])
    def test_logical_operators(self, source, expected):
        result = tokenize(f"{{% if {source} %}}")
        assert result.errors == []
        assert result.tokens[3].type == expected

    @pytest.mark.parametrize("source", ["not x", "!x"])
    def test_not_operator(self, source):
        result = tokenize(f"{{% if {source} %}}")
        assert result.errors == []
        assert result.tokens[2].type == TokenType.OP_NOT

    def test_nullish_and_arrow(self):
        result = tokenize("{{a ?? b|map:x => x}}")
        assert result.errors == []
        assert TokenType.OP_NULLISH in types_of(result.tokens)
        assert TokenType.ARROW in types_of(result.tokens)

    def test_single_char_punctuation(self):
        result = tokenize("{{ ( ) [ ] : , . * / { $ }}")
        assert result.errors == []
        assert types_of(result.tokens)[1:-2] == [
            TokenType.LPAREN, TokenType.RPAREN, TokenType.LBRACKET, TokenType.RBRACKET,
            TokenType.COLON, TokenType.COMMA, TokenType.DOT, TokenType.STAR, TokenType.SLASH,
            TokenType.LBRACE, TokenType.DOLLAR,
        ]

    def test_parentheses(self):
        result = tokenize("{% if (x or y) and z %}")
        assert result.errors == []
        assert TokenType.LPAREN in types_of(result.tokens)
        assert TokenType.RPAREN in types_of(result.tokens)


class TestLiterals:

    def test_double_quoted_string(self):
        result = tokenize('{% set x = "hello world" %}')
        assert result.errors == []
        assert result.tokens[4].type == TokenType.STRING
        assert result.tokens[4].value == "hello world"

    def test_single_quoted_string(self):
        result = tokenize("{% set x = 'hello world' %}")
        assert result.errors == []
        assert result.tokens[4].value == "hello world"

    def test_escape_sequences(self):
        result = tokenize('{% set x = "line1\\nline2\\t\\"q\\" \\\\ \\z" %}')
        assert result.errors == []
        assert result.tokens[4].value == 'line1\nline2\t"q" \\ z'

    @pytest.mark.parametrize("source, value", [
        ("42", "42"),
        ("3.14", "3.14"),
        ("-5", "-5"),
    ])
    def test_numbers(self, source, value):
        result = tokenize(f"{{% if x == {source} %}}")
        assert result.errors == []
        assert result.tokens[4].type == TokenType.NUMBER
        assert result.tokens[4].value == value

    @pytest.mark.parametrize("source", ["true", "false", "True"])
    def test_booleans(self, source):
        result = tokenize(f"{{% if {source} %}}")
        assert result.errors == []
        assert result.tokens[2].type == TokenType.BOOLEAN
        assert result.tokens[2].value == source

    def test_null(self):
        result = tokenize("{% if x == null %}")
        assert result.errors == []
        assert result.tokens[4].type == TokenType.NULL

    def test_filter_with_colon_argument(self):
        result = tokenize("{{title|truncate:100}}")
        assert result.errors == []
        assert contains_sequence(result.tokens, [TokenType.COLON, TokenType.NUMBER])

    def test_filter_with_empty_string_argument(self):
        result = tokenize('{{"test"|replace:"%":""}}')
        assert result.errors == []
        assert contains_sequence(result.tokens, [
            TokenType.VARIABLE_START, TokenType.STRING, TokenType.PIPE, TokenType.IDENTIFIER,
            TokenType.COLON, TokenType.STRING, TokenType.COLON, TokenType.STRING, TokenType.VARIABLE_END,
        ])
        strings = [t.value for t in result.tokens if t.type == TokenType.STRING]
        assert strings == ["test", "%", ""]

    def test_prompt_with_spaces_and_empty_argument(self):
        result = tokenize('{{"cacao percentage of this chocolate"|replace:"%":""}}')
        assert result.errors == []
        strings = [t.value for t in result.tokens if t.type == TokenType.STRING]
        assert strings == ["cacao percentage of this chocolate", "%", ""]

    def test_escaped_argument(self):
        """Test a backslash starts an escaped bare argument"""
        result = tokenize("{{title|split:\\,|join:\\n}}")
        assert result.errors == []
        strings = [t.value for t in result.tokens if t.type == TokenType.STRING]
        assert strings == [",", "\n"]

    def test_lone_brace_before_pipe_is_punctuation(self):
        result = tokenize("{{ {a} |x}}")
        assert result.errors == []
        assert TokenType.RBRACE in types_of(result.tokens)


class TestPositions:

    def test_line_and_column(self):
        result = tokenize("line1\n{{x}}")
        assert result.errors == []
        start = next(t for t in result.tokens if t.type == TokenType.VARIABLE_START)
        assert (start.line, start.column) == (2, 1)

    def test_multiline_template(self):
        result = tokenize("{% if x %}\nyes\n{% endif %}")
        assert result.errors == []
        endif = next(t for t in result.tokens if t.type == TokenType.KEYWORD_ENDIF)
        assert endif.line == 3

    def test_columns_inside_expression(self):
        result = tokenize("ab{{ title }}")
        ident = result.tokens[2]
        assert (ident.line, ident.column) == (1, 6)


class TestSpecialIdentifiers:

    def test_mixed_content(self):
        result = tokenize("Hello {{name}}, you have {{count}} items.")
        assert result.errors == []
        assert types_of(result.tokens) == [
            TokenType.TEXT,
            TokenType.VARIABLE_START, TokenType.IDENTIFIER, TokenType.VARIABLE_END,
            TokenType.TEXT,
            TokenType.VARIABLE_START, TokenType.IDENTIFIER, TokenType.VARIABLE_END,
            TokenType.TEXT,
            TokenType.EOF,
        ]

    def test_schema_variable(self):
        result = tokenize("{{schema:@Article:author}}")
        assert result.errors == []
        identifiers = [t.value for t in result.tokens if t.type == TokenType.IDENTIFIER]
        assert identifiers == ["schema", "@Article", "author"]

    @pytest.mark.parametrize("template, expected", [
        ("{% for item in selector:.comment %}", "selector:.comment"),
        ('{% set comments = selector:div[slot="comment"] %}', 'selector:div[slot="comment"]'),
        ("{{selector:article.post:first-child}}", "selector:article.post:first-child"),
        (
            '{{selector:div[data-type="content"][class*="highlight"]}}',
            'selector:div[data-type="content"][class*="highlight"]',
        ),
        ("{{selector:li:nth-child(2) > a}}", "selector:li:nth-child(2) > a"),
    ])
    def test_selector_is_single_identifier(self, template, expected):
        result = tokenize(template)
        assert result.errors == []
        selectors = [t for t in result.tokens if t.type == TokenType.IDENTIFIER and t.value.startswith("selector")]
        assert len(selectors) == 1
        assert selectors[0].value == expected

    def test_selector_html_stops_at_pipe(self):
        result = tokenize('{{selectorHtml:div[data-type="content"]|trim}}')
        assert result.errors == []
        assert result.tokens[1].value == 'selectorHtml:div[data-type="content"]'
        assert contains_sequence(result.tokens, [TokenType.PIPE, TokenType.IDENTIFIER])

    def test_unclosed_bracket_in_selector(self):
        result = tokenize("{{selector:p[attr='value'|trim}}")
        messages = [e.message for e in result.errors]
        assert "Unclosed '[' in selector - missing ']'" in messages

    def test_unclosed_paren_in_selector(self):
        result = tokenize("{{selector:li:nth-child(2}}")
        assert [e.message for e in result.errors] == ["Unclosed '(' in selector - missing ')'"]

    def test_unclosed_string_in_selector(self):
        result = tokenize('{{selector:a[title="x}}')
        assert result.errors[0].message == 'Unclosed string in selector - missing closing "'

    def test_extra_closing_bracket_is_clamped(self):
        result = tokenize("{{selector:div]}}")
        messages = [e.message for e in result.errors]
        assert messages == ["Extra ']' in selector - no matching '['"]
        # Depth clamped back to zero: the variable still closes normally
        assert result.tokens[-2].type == TokenType.VARIABLE_END

    def test_extra_closing_paren_is_clamped(self):
        result = tokenize("{{selector:li)}}")
        assert [e.message for e in result.errors] == ["Extra ')' in selector - no matching '('"]
        assert result.tokens[-2].type == TokenType.VARIABLE_END


class TestErrorRecovery:

    def test_curly_quotes_are_unexpected_characters(self):
        result = tokenize("{{“test”}}")
        assert len(result.errors) == 2
        assert all("Unexpected character" in e.message for e in result.errors)

    def test_unterminated_string_before_tag_end(self):
        result = tokenize('{% set x = "unterminated %}')
        assert any("Unclosed string" in e.message for e in result.errors)
        assert result.errors[0].message == 'Unclosed string - missing " before %}'
        # The tag still closes
        assert result.tokens[-2].type == TokenType.TAG_END

    def test_unterminated_string_at_end_of_input(self):
        result = tokenize("{{ 'open")
        assert result.errors[0].message == "Unclosed string - missing closing '"
        assert (result.errors[0].line, result.errors[0].column) == (1, 4)

    def test_malformed_variable_end(self):
        result = tokenize("{{title}")
        assert result.errors[0].message == "Malformed variable: expected '}}' but found '}'. Did you forget a '}'?"
        end = result.tokens[2]
        assert end.type == TokenType.VARIABLE_END
        assert end.value == "}"

    def test_malformed_tag_end(self):
        result = tokenize("{% if x }yes{% endif %}")
        assert result.errors[0].message == "Malformed tag: expected '%}' but found '}'. Did you forget the '%'?"
        # Tokenization resumes in text mode after the synthetic end
        assert TokenType.TEXT in types_of(result.tokens)
        assert TokenType.KEYWORD_ENDIF in types_of(result.tokens)

    def test_unterminated_variable_is_discarded(self):
        result = tokenize("{{titl\n{% set x = 1 %}")
        assert [e.message for e in result.errors] == ["Missing closing '}}' for variable"]
        assert (result.errors[0].line, result.errors[0].column) == (1, 1)
        assert types_of(result.tokens) == [
            TokenType.TAG_START, TokenType.KEYWORD_SET, TokenType.IDENTIFIER, TokenType.OP_ASSIGN,
            TokenType.NUMBER, TokenType.TAG_END, TokenType.EOF,
        ]

    def test_unterminated_tag_is_discarded(self):
        result = tokenize("a{% if x {{title}}")
        assert [e.message for e in result.errors] == ["Missing closing '%}' for tag"]
        assert types_of(result.tokens) == [
            TokenType.TEXT, TokenType.VARIABLE_START, TokenType.IDENTIFIER, TokenType.VARIABLE_END, TokenType.EOF,
        ]

    def test_unclosed_variable_with_trailing_whitespace(self):
        result = tokenize("{{ title ")
        assert [e.message for e in result.errors] == ["Unclosed variable - missing '}}'"]

    def test_unclosed_tag_with_trailing_whitespace(self):
        result = tokenize("{% if x ")
        assert [e.message for e in result.errors] == ["Unclosed tag - missing '%}'"]

    def test_unexpected_character_message(self):
        result = tokenize("{{ title # }}")
        assert [e.message for e in result.errors] == ["Unexpected character '#' in template"]


class TestLexerProperties:

    def test_tokenize_is_idempotent(self):
        template = '{% for a in items %}{{a|lower}} {{ "x" }}{% endfor %}{{selector:p[x="1"]}}'
        first = tokenize(template)
        second = tokenize(template)
        assert first.tokens == second.tokens
        assert first.errors == second.errors

    def test_variable_sites_are_paired(self):
        template = "{{a}} and {{b|upper}} then {{c.d}}"
        tokens = tokenize(template).tokens
        assert types_of(tokens).count(TokenType.VARIABLE_START) == 3
        assert types_of(tokens).count(TokenType.VARIABLE_END) == 3

    def test_lexer_instance_matches_function(self):
        assert TemplateLexer("{{x}}").tokenize().tokens == tokenize("{{x}}").tokens


class TestFormatting:

    def test_format_token(self):
        token = Token(TokenType.IDENTIFIER, "title", 1, 3)
        assert format_token(token) == 'identifier("title") at 1:3'

    def test_format_token_without_value(self):
        assert format_token(Token(TokenType.EOF, "", 2, 1)) == "eof at 2:1"

    def test_format_error(self):
        error = tokenize("{{ # }}").errors[0]
        assert format_error(error) == "Error at line 1, column 4: Unexpected character '#' in template"
        assert str(error) == format_error(error)
