"""
Парсер шаблонов с рекурсивным спуском.

Строит AST из потока токенов лексера. Ошибки не выбрасываются, а
накапливаются: парсер всегда доходит до конца ввода и возвращает
частично построенное дерево вместе со списком ошибок.

Грамматика выражений (от низшего приоритета к высшему):
expression  → nullish
nullish     → filter ("??" filter)*
filter      → or ("|" IDENTIFIER (":" filter_args)?)*
filter_args → "(" or ("," or)* ")" | STRING ":" STRING ("," STRING ":" STRING)* | primary
or          → and (("or" | "||") and)*
and         → not (("and" | "&&") not)*
not         → ("not" | "!") not | comparison
comparison  → postfix (COMPARE_OP postfix)?
postfix     → primary ("[" or "]")*
primary     → "(" or ")" | STRING | NUMBER | BOOLEAN | NULL | identifier
identifier  → IDENTIFIER (":" (IDENTIFIER | "." | ":")*)?
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .expressions import (
    BinaryExpression,
    Expression,
    FilterExpression,
    GroupExpression,
    IdentifierExpression,
    LiteralExpression,
    MemberExpression,
    UnaryExpression,
)
from .lexer import tokenize
from .nodes import (
    ElseIfBranch,
    ForNode,
    IfNode,
    SetNode,
    TemplateAST,
    TemplateNode,
    TextNode,
    VariableNode,
)
from .tokens import Token, TokenType

logger = logging.getLogger(__name__)

# Ограничение глубины рекурсии для вложенных выражений и тегов
MAX_NESTING_DEPTH = 50

# Максимум слов, просматриваемых эвристикой "промпт без кавычек"
_MULTI_WORD_LOOKAHEAD = 10

_COMPARISON_OPERATORS = {
    TokenType.OP_EQ: "==",
    TokenType.OP_NEQ: "!=",
    TokenType.OP_GT: ">",
    TokenType.OP_LT: "<",
    TokenType.OP_GTE: ">=",
    TokenType.OP_LTE: "<=",
    TokenType.OP_CONTAINS: "contains",
}

_CLOSING_KEYWORDS = (
    TokenType.KEYWORD_ELSE,
    TokenType.KEYWORD_ELSEIF,
    TokenType.KEYWORD_ENDIF,
    TokenType.KEYWORD_ENDFOR,
)

_IF_BRANCH_STOP = (TokenType.KEYWORD_ELSEIF, TokenType.KEYWORD_ELSE, TokenType.KEYWORD_ENDIF)


@dataclass(frozen=True)
class ParserError:
    """Ошибка (или предупреждение валидатора) с позицией в исходном тексте."""
    message: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"Error at line {self.line}, column {self.column}: {self.message}"


@dataclass
class ParserResult:
    """Результат разбора: AST и все ошибки (сначала ошибки лексера)."""
    ast: TemplateAST = field(default_factory=list)
    errors: List[ParserError] = field(default_factory=list)


class TemplateParser:
    """
    Парсер шаблонов с рекурсивным спуском.

    Каждый нетерминал грамматики реализован отдельным методом. При
    отсутствии обязательного токена метод добавляет одну конкретную ошибку
    и либо возвращает None, либо достраивает узел и продолжает. Любой путь
    восстановления сдвигает курсор хотя бы на один токен.
    """

    def __init__(self, tokens: List[Token], errors: Optional[List[ParserError]] = None):
        self.tokens = tokens
        self.position = 0
        self.errors: List[ParserError] = list(errors) if errors else []
        self._expression_depth = 0
        self._tag_depth = 0
        # Выставляется при превышении глубины выражения; гасит каскад ошибок
        self._nesting_exceeded = False

    def parse(self) -> ParserResult:
        """
        Разбирает весь поток токенов.

        Returns:
            ParserResult с AST и накопленными ошибками
        """
        ast: TemplateAST = []

        while not self._is_at_end():
            node = self._parse_node()
            if node is not None:
                ast.append(node)

        logger.debug(f"Parsed AST with {len(ast)} top-level nodes ({len(self.errors)} errors)")
        return ParserResult(ast=ast, errors=self.errors)

    # ---------------- Узлы верхнего уровня ----------------

    def _parse_node(self) -> Optional[TemplateNode]:
        token = self._current_token()

        if token.type is TokenType.TEXT:
            self._advance()
            return TextNode(value=token.value, line=token.line, column=token.column)

        if token.type is TokenType.VARIABLE_START:
            return self._parse_variable()

        if token.type is TokenType.TAG_START:
            return self._parse_tag()

        if token.type is TokenType.EOF:
            self._advance()
            return None

        self._error(f'Unexpected "{token.value}" in template', token)
        self._advance()
        return None

    def _parse_body(self, stop_keywords: tuple) -> List[TemplateNode]:
        """Разбирает последовательность узлов до тега с одним из stop_keywords."""
        nodes: List[TemplateNode] = []

        while not self._is_at_end():
            if self._check_tag_keyword(*stop_keywords):
                break
            node = self._parse_node()
            if node is not None:
                nodes.append(node)

        return nodes

    def _parse_variable(self) -> Optional[VariableNode]:
        start_token = self._advance()  # {{
        trim_left = bool(start_token.trim_left)

        expression = self._parse_expression()
        if expression is None:
            if not self._nesting_exceeded:
                self._error("Empty variable - add a variable name between {{ and }}", start_token)
            self._skip_to_end_of_variable()
            return None

        # {{a summary of the page}} вместо {{"a summary of the page"}}
        if self._check(TokenType.IDENTIFIER):
            saved_position = self.position
            extra_words = 0
            while self._check(TokenType.IDENTIFIER) and extra_words < _MULTI_WORD_LOOKAHEAD:
                self._advance()
                extra_words += 1
            self.position = saved_position

            if extra_words > 0:
                self._error(
                    'Multiple words without quotes - if this is a prompt, '
                    'wrap it in quotes: {{"your prompt here"}}',
                    start_token,
                )
                self._skip_to_end_of_variable()
                return None

        trim_right = False
        if self._check(TokenType.VARIABLE_END):
            trim_right = bool(self._advance().trim_right)
        else:
            self._error("Missing closing }}", self._current_token())
            self._skip_to_end_of_variable()

        return VariableNode(
            expression=expression,
            trim_left=trim_left,
            trim_right=trim_right,
            line=start_token.line,
            column=start_token.column,
        )

    # ---------------- Теги ----------------

    def _parse_tag(self) -> Optional[TemplateNode]:
        start_token = self._advance()  # {%
        trim_left = bool(start_token.trim_left)
        keyword = self._current_token()

        if keyword.type in (TokenType.KEYWORD_IF, TokenType.KEYWORD_FOR) and self._tag_depth >= MAX_NESTING_DEPTH:
            self._error("Tags are nested too deeply", keyword)
            self._skip_to_end_of_tag()
            return None

        if keyword.type is TokenType.KEYWORD_IF:
            return self._parse_if(start_token, trim_left)
        if keyword.type is TokenType.KEYWORD_FOR:
            return self._parse_for(start_token, trim_left)
        if keyword.type is TokenType.KEYWORD_SET:
            return self._parse_set(start_token, trim_left)

        if keyword.type in _CLOSING_KEYWORDS:
            self._error(f"Unexpected {{% {keyword.value} %}} - no matching opening tag", keyword)
        elif keyword.type in (TokenType.TAG_END, TokenType.EOF):
            self._error("Empty tag - add a keyword between {% and %}", keyword)
        else:
            self._error(f"Unknown tag: {{% {keyword.value} %}}", keyword)

        self._skip_to_end_of_tag()
        return None

    def _parse_if(self, start_token: Token, trim_left: bool) -> Optional[IfNode]:
        self._advance()  # if

        condition = self._parse_expression()
        if condition is None:
            if not self._nesting_exceeded:
                self._error("{% if %} requires a condition", start_token)
            self._skip_to_end_of_tag()
            return None

        trim_right = self._consume_statement_end("Missing %} to close {% if %}")

        self._tag_depth += 1
        try:
            consequent = self._parse_body(_IF_BRANCH_STOP)

            elseifs: List[ElseIfBranch] = []
            while self._check_tag_keyword(TokenType.KEYWORD_ELSEIF):
                self._advance()  # {%
                self._advance()  # elseif

                elseif_condition = self._parse_expression()
                if elseif_condition is None:
                    if not self._nesting_exceeded:
                        self._error("{% elseif %} requires a condition", self._current_token())
                    self._skip_to_end_of_tag()
                    # Тело разбирается, чтобы вложенные теги остались сбалансированными
                    self._parse_body(_IF_BRANCH_STOP)
                    continue

                self._consume_tag_end()
                body = self._parse_body(_IF_BRANCH_STOP)
                elseifs.append(ElseIfBranch(condition=elseif_condition, body=body))

            alternate: Optional[List[TemplateNode]] = None
            if self._check_tag_keyword(TokenType.KEYWORD_ELSE):
                self._advance()  # {%
                self._advance()  # else
                self._consume_tag_end()
                alternate = self._parse_body((TokenType.KEYWORD_ENDIF,))
        finally:
            self._tag_depth -= 1

        if self._check_tag_keyword(TokenType.KEYWORD_ENDIF):
            self._advance()  # {%
            self._advance()  # endif
            self._consume_tag_end()
        else:
            self._error("Missing {% endif %} to close {% if %}", self._current_token())

        return IfNode(
            condition=condition,
            consequent=consequent,
            elseifs=elseifs,
            alternate=alternate,
            trim_left=trim_left,
            trim_right=trim_right,
            line=start_token.line,
            column=start_token.column,
        )

    def _parse_for(self, start_token: Token, trim_left: bool) -> Optional[ForNode]:
        self._advance()  # for

        if not self._check(TokenType.IDENTIFIER):
            self._error("{% for %} requires a variable name, e.g. {% for item in items %}", self._current_token())
            self._skip_to_end_of_tag()
            return None
        iterator = self._advance().value

        if not self._check(TokenType.KEYWORD_IN):
            self._error('{% for %} requires "in" keyword, e.g. {% for item in items %}', self._current_token())
            self._skip_to_end_of_tag()
            return None
        self._advance()  # in

        iterable = self._parse_expression()
        if iterable is None:
            if not self._nesting_exceeded:
                self._error('{% for %} requires something to loop over after "in"', self._current_token())
            self._skip_to_end_of_tag()
            return None

        trim_right = self._consume_statement_end("Missing %} to close {% for %}")

        self._tag_depth += 1
        try:
            body = self._parse_body((TokenType.KEYWORD_ENDFOR,))
        finally:
            self._tag_depth -= 1

        if self._check_tag_keyword(TokenType.KEYWORD_ENDFOR):
            self._advance()  # {%
            self._advance()  # endfor
            self._consume_tag_end()
        else:
            self._error("Missing {% endfor %} to close {% for %}", self._current_token())

        return ForNode(
            iterator=iterator,
            iterable=iterable,
            body=body,
            trim_left=trim_left,
            trim_right=trim_right,
            line=start_token.line,
            column=start_token.column,
        )

    def _parse_set(self, start_token: Token, trim_left: bool) -> Optional[SetNode]:
        self._advance()  # set

        if not self._check(TokenType.IDENTIFIER):
            self._error("{% set %} requires a variable name, e.g. {% set name = value %}", self._current_token())
            self._skip_to_end_of_tag()
            return None
        variable = self._advance().value

        if not self._check(TokenType.OP_ASSIGN):
            self._error('{% set %} requires "=" after variable name', self._current_token())
            self._skip_to_end_of_tag()
            return None
        self._advance()  # =

        value = self._parse_expression()
        if value is None:
            if not self._nesting_exceeded:
                self._error('{% set %} requires a value after "="', self._current_token())
            self._skip_to_end_of_tag()
            return None

        trim_right = self._consume_statement_end("Missing %} to close {% set %}")

        return SetNode(
            variable=variable,
            value=value,
            trim_left=trim_left,
            trim_right=trim_right,
            line=start_token.line,
            column=start_token.column,
        )

    # ---------------- Выражения ----------------

    def _parse_expression(self) -> Optional[Expression]:
        """Точка входа для выражения внутри одной переменной или тега."""
        self._nesting_exceeded = False
        self._expression_depth = 0
        return self._parse_nullish()

    def _parse_nullish(self) -> Optional[Expression]:
        left = self._parse_filter()
        if left is None:
            return None

        while self._check(TokenType.OP_NULLISH):
            op_token = self._advance()
            right = self._parse_filter()
            if right is None:
                self._expression_error("Missing fallback value after ??", op_token)
                break
            left = BinaryExpression(
                operator="??", left=left, right=right, line=op_token.line, column=op_token.column
            )

        return left

    def _parse_filter(self) -> Optional[Expression]:
        left = self._parse_or()
        if left is None:
            return None

        while self._check(TokenType.PIPE):
            self._advance()  # |

            if not self._check(TokenType.IDENTIFIER):
                self._expression_error("Missing filter name after |", self._current_token())
                break

            name_token = self._advance()
            args: List[Expression] = []

            if self._check(TokenType.COLON):
                self._advance()  # :
                args = self._parse_filter_args()

            left = FilterExpression(
                value=left,
                name=name_token.value,
                args=args,
                line=name_token.line,
                column=name_token.column,
            )

        return left

    def _parse_filter_args(self) -> List[Expression]:
        """
        Разбирает аргументы фильтра после ':'.

        Поддерживаемые формы:
        - name:(a, b, c) - список выражений в скобках
        - name:"search":"replace","s2":"r2" - пары в кавычках, каждая пара один аргумент
        - name:arg - один первичный аргумент
        """
        args: List[Expression] = []

        if self._check(TokenType.LPAREN):
            self._advance()  # (
            while not self._check(TokenType.RPAREN) and not self._is_at_end():
                arg = self._parse_or()
                if arg is not None:
                    args.append(arg)
                if self._check(TokenType.COMMA):
                    self._advance()
                else:
                    break
            if self._check(TokenType.RPAREN):
                self._advance()  # )
            else:
                self._expression_error("Missing closing ) in filter arguments", self._current_token())
            return args

        if self._is_string_pair(0):
            args.append(self._parse_string_pair())
            while self._check(TokenType.COMMA) and self._is_string_pair(1):
                self._advance()  # ,
                args.append(self._parse_string_pair())
            return args

        arg = self._parse_primary()
        if arg is not None:
            args.append(arg)
        return args

    def _is_string_pair(self, offset: int) -> bool:
        return (
            self._peek(offset).type is TokenType.STRING
            and self._peek(offset + 1).type is TokenType.COLON
            and self._peek(offset + 2).type is TokenType.STRING
        )

    def _parse_string_pair(self) -> LiteralExpression:
        search = self._advance()
        self._advance()  # :
        replacement = self._advance()
        value = f'"{search.value}":"{replacement.value}"'
        return LiteralExpression(value=value, raw=value, line=search.line, column=search.column)

    def _parse_or(self) -> Optional[Expression]:
        if not self._enter_nested():
            return None
        try:
            left = self._parse_and()
            if left is None:
                return None

            while self._check(TokenType.OP_OR):
                op_token = self._advance()
                right = self._parse_and()
                if right is None:
                    self._expression_error('Missing value after "or"', op_token)
                    break
                left = BinaryExpression(
                    operator="or", left=left, right=right, line=op_token.line, column=op_token.column
                )

            return left
        finally:
            self._expression_depth -= 1

    def _parse_and(self) -> Optional[Expression]:
        left = self._parse_not()
        if left is None:
            return None

        while self._check(TokenType.OP_AND):
            op_token = self._advance()
            right = self._parse_not()
            if right is None:
                self._expression_error('Missing value after "and"', op_token)
                break
            left = BinaryExpression(
                operator="and", left=left, right=right, line=op_token.line, column=op_token.column
            )

        return left

    def _parse_not(self) -> Optional[Expression]:
        if not self._check(TokenType.OP_NOT):
            return self._parse_comparison()

        op_token = self._advance()
        if not self._enter_nested():
            return None
        try:
            argument = self._parse_not()
        finally:
            self._expression_depth -= 1

        if argument is None:
            self._expression_error('Missing value after "not"', op_token)
            return None

        return UnaryExpression(operator="not", argument=argument, line=op_token.line, column=op_token.column)

    def _parse_comparison(self) -> Optional[Expression]:
        left = self._parse_postfix()
        if left is None:
            return None

        operator = _COMPARISON_OPERATORS.get(self._current_token().type)
        if operator is None:
            return left

        op_token = self._advance()
        right = self._parse_postfix()
        if right is None:
            self._expression_error(f'Missing value after "{op_token.value}"', op_token)
            return left

        return BinaryExpression(
            operator=operator, left=left, right=right, line=op_token.line, column=op_token.column
        )

    def _parse_postfix(self) -> Optional[Expression]:
        left = self._parse_primary()
        if left is None:
            return None

        while self._check(TokenType.LBRACKET):
            bracket_token = self._advance()  # [

            prop = self._parse_or()
            if prop is None:
                self._expression_error("Empty brackets [] - add an index or key", bracket_token)
                break

            if self._check(TokenType.RBRACKET):
                self._advance()  # ]
            else:
                self._expression_error("Missing closing ]", self._current_token())

            left = MemberExpression(
                object=left, property=prop, line=bracket_token.line, column=bracket_token.column
            )

        return left

    def _parse_primary(self) -> Optional[Expression]:
        token = self._current_token()

        if token.type is TokenType.LPAREN:
            self._advance()  # (
            inner = self._parse_or()
            if inner is None:
                self._expression_error("Empty parentheses () - add an expression", token)
                return None
            if self._check(TokenType.RPAREN):
                self._advance()  # )
            else:
                self._expression_error("Missing closing )", self._current_token())
            return GroupExpression(expression=inner, line=token.line, column=token.column)

        if token.type is TokenType.STRING:
            self._advance()
            return LiteralExpression(value=token.value, raw=token.value, line=token.line, column=token.column)

        if token.type is TokenType.NUMBER:
            self._advance()
            number = float(token.value) if "." in token.value else int(token.value)
            return LiteralExpression(value=number, raw=token.value, line=token.line, column=token.column)

        if token.type is TokenType.BOOLEAN:
            self._advance()
            return LiteralExpression(
                value=token.value.lower() == "true", raw=token.value, line=token.line, column=token.column
            )

        if token.type is TokenType.NULL:
            self._advance()
            return LiteralExpression(value=None, raw="null", line=token.line, column=token.column)

        if token.type is TokenType.IDENTIFIER:
            self._advance()
            name = token.value

            # Префиксы с двоеточием: schema:@Article:author, meta:og:title
            if self._check(TokenType.COLON):
                self._advance()  # :
                parts: List[str] = []
                while (
                    self._check(TokenType.IDENTIFIER)
                    or self._check(TokenType.DOT)
                    or self._check(TokenType.COLON)
                ):
                    parts.append(self._advance().value)
                name = name + ":" + "".join(parts)

            return IdentifierExpression(name=name, line=token.line, column=token.column)

        return None

    # ---------------- Вспомогательные методы ----------------

    def _enter_nested(self) -> bool:
        """
        Увеличивает глубину вложенности выражения.

        При превышении MAX_NESTING_DEPTH сообщает об ошибке один раз,
        пропускает остаток выражения и возвращает False.
        """
        if self._nesting_exceeded:
            return False
        if self._expression_depth >= MAX_NESTING_DEPTH:
            self._error("Expression is nested too deeply", self._current_token())
            self._nesting_exceeded = True
            while not self._is_at_end() and not (
                self._check(TokenType.VARIABLE_END) or self._check(TokenType.TAG_END)
            ):
                self._advance()
            return False
        self._expression_depth += 1
        return True

    def _expression_error(self, message: str, token: Token) -> None:
        if not self._nesting_exceeded:
            self._error(message, token)

    def _error(self, message: str, token: Token) -> None:
        self.errors.append(ParserError(message, token.line, token.column))

    def _consume_statement_end(self, message: str) -> bool:
        """Поглощает %} после заголовка тега; при отсутствии сообщает и пропускает до %}."""
        if self._check(TokenType.TAG_END):
            return bool(self._advance().trim_right)
        self._error(message, self._current_token())
        self._skip_to_end_of_tag()
        return False

    def _consume_tag_end(self) -> Optional[Token]:
        if self._check(TokenType.TAG_END):
            return self._advance()
        self._error("Missing closing %}", self._current_token())
        return None

    def _check_tag_keyword(self, *keywords: TokenType) -> bool:
        """Проверяет, что курсор стоит на {% за которым идёт одно из ключевых слов."""
        if not self._check(TokenType.TAG_START):
            return False
        if self.position + 1 >= len(self.tokens):
            return False
        return self.tokens[self.position + 1].type in keywords

    def _skip_to_end_of_tag(self) -> None:
        while not self._is_at_end() and not self._check(TokenType.TAG_END):
            self._advance()
        if self._check(TokenType.TAG_END):
            self._advance()

    def _skip_to_end_of_variable(self) -> None:
        while not self._is_at_end() and not self._check(TokenType.VARIABLE_END):
            self._advance()
        if self._check(TokenType.VARIABLE_END):
            self._advance()

    def _peek(self, offset: int = 0) -> Token:
        index = self.position + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return Token(TokenType.EOF, "", 0, 0)

    def _current_token(self) -> Token:
        return self._peek(0)

    def _check(self, token_type: TokenType) -> bool:
        return self._current_token().type is token_type

    def _advance(self) -> Token:
        token = self._current_token()
        if not self._is_at_end():
            self.position += 1
        return token

    def _is_at_end(self) -> bool:
        return self._current_token().type is TokenType.EOF


def parse(text: str) -> ParserResult:
    """
    Разбирает текст шаблона в AST.

    Ошибки лексера идут в результате первыми, за ними ошибки парсера.

    Args:
        text: Исходный текст шаблона

    Returns:
        ParserResult с AST и ошибками (исключения не выбрасываются)
    """
    tokenized = tokenize(text)
    errors = [ParserError(e.message, e.line, e.column) for e in tokenized.errors]
    return TemplateParser(tokenized.tokens, errors).parse()


def parse_tokens(tokens: List[Token]) -> ParserResult:
    """Разбирает уже готовый поток токенов."""
    return TemplateParser(tokens).parse()


__all__ = [
    "MAX_NESTING_DEPTH",
    "ParserError",
    "ParserResult",
    "TemplateParser",
    "parse",
    "parse_tokens",
]
