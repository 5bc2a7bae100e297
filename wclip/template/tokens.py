"""
Лексические типы шаблонизатора.

Определяет закрытый набор типов токенов, сам токен с позиционной
информацией и структуру ошибки токенизации.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import List, Optional


class TokenType(enum.Enum):
    """Типы токенов в шаблоне."""

    # Структурные токены
    TEXT = "text"
    VARIABLE_START = "variable_start"    # {{
    VARIABLE_END = "variable_end"        # }}
    TAG_START = "tag_start"              # {%
    TAG_END = "tag_end"                  # %} или -%}

    # Ключевые слова
    KEYWORD_IF = "keyword_if"
    KEYWORD_ELSEIF = "keyword_elseif"
    KEYWORD_ELSE = "keyword_else"
    KEYWORD_ENDIF = "keyword_endif"
    KEYWORD_FOR = "keyword_for"
    KEYWORD_IN = "keyword_in"
    KEYWORD_ENDFOR = "keyword_endfor"
    KEYWORD_SET = "keyword_set"

    # Операторы
    OP_EQ = "op_eq"                      # ==
    OP_NEQ = "op_neq"                    # !=
    OP_GTE = "op_gte"                    # >=
    OP_LTE = "op_lte"                    # <=
    OP_GT = "op_gt"                      # >
    OP_LT = "op_lt"                      # <
    OP_AND = "op_and"                    # and, &&
    OP_OR = "op_or"                      # or, ||
    OP_NOT = "op_not"                    # not, !
    OP_CONTAINS = "op_contains"          # contains
    OP_NULLISH = "op_nullish"            # ??
    OP_ASSIGN = "op_assign"              # =

    # Литералы и идентификаторы
    IDENTIFIER = "identifier"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"

    # Пунктуация
    PIPE = "pipe"                        # |
    LPAREN = "lparen"                    # (
    RPAREN = "rparen"                    # )
    LBRACKET = "lbracket"                # [
    RBRACKET = "rbracket"                # ]
    LBRACE = "lbrace"                    # {
    RBRACE = "rbrace"                    # }
    COLON = "colon"                      # :
    COMMA = "comma"                      # ,
    DOT = "dot"                          # .
    STAR = "star"                        # *
    SLASH = "slash"                      # /
    ARROW = "arrow"                      # =>
    DOLLAR = "dollar"                    # $

    EOF = "eof"


@dataclass(frozen=True)
class Token:
    """
    Токен с позиционной информацией для точной диагностики ошибок.

    Флаги trim_left/trim_right имеют смысл только для разделителей
    (variable_start/end, tag_start/end); у прочих токенов они равны None.
    """
    type: TokenType
    value: str
    line: int           # Номер строки (начиная с 1)
    column: int         # Номер колонки (начиная с 1)
    trim_left: Optional[bool] = None
    trim_right: Optional[bool] = None

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


@dataclass(frozen=True)
class TokenizerError:
    """Ошибка токенизации. Не выбрасывается, а накапливается в результате."""
    message: str
    line: int
    column: int

    def __str__(self) -> str:
        return format_error(self)


@dataclass
class TokenizerResult:
    """Результат токенизации: поток токенов (всегда с EOF в конце) и ошибки."""
    tokens: List[Token] = field(default_factory=list)
    errors: List[TokenizerError] = field(default_factory=list)


def format_token(token: Token) -> str:
    """Форматирует токен для отладочного вывода."""
    pos = f"{token.line}:{token.column}"
    if token.value:
        return f"{token.type.value}({json.dumps(token.value, ensure_ascii=False)}) at {pos}"
    return f"{token.type.value} at {pos}"


def format_error(error) -> str:
    """Форматирует ошибку (токенизатора, парсера или рендера) с позицией."""
    return f"Error at line {error.line}, column {error.column}: {error.message}"


__all__ = [
    "TokenType",
    "Token",
    "TokenizerError",
    "TokenizerResult",
    "format_token",
    "format_error",
]
