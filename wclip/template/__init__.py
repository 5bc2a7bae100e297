"""
Шаблонизатор Web Clipper.

Лексер, парсер с восстановлением после ошибок, проверка переменных и
рендерер для шаблонов вида {{ title|lower }} и {% if %}/{% for %}/{% set %}.
"""

from __future__ import annotations

from .evaluator import EvaluationError, ExpressionEvaluator, RenderContext
from .lexer import TemplateLexer, tokenize
from .nodes import format_ast_tree
from .parser import MAX_NESTING_DEPTH, ParserError, ParserResult, TemplateParser, parse, parse_tokens
from .renderer import RenderError, RenderResult, TemplateRenderer, render, render_ast
from .tokens import Token, TokenType, TokenizerError, TokenizerResult, format_error, format_token
from .validator import find_similar_variable, levenshtein_distance, validate_variables

__all__ = [
    # Лексер
    "Token",
    "TokenType",
    "TokenizerError",
    "TokenizerResult",
    "TemplateLexer",
    "tokenize",
    "format_token",
    "format_error",
    # Парсер
    "MAX_NESTING_DEPTH",
    "ParserError",
    "ParserResult",
    "TemplateParser",
    "parse",
    "parse_tokens",
    "format_ast_tree",
    # Валидатор
    "validate_variables",
    "levenshtein_distance",
    "find_similar_variable",
    # Рендеринг
    "EvaluationError",
    "ExpressionEvaluator",
    "RenderContext",
    "RenderError",
    "RenderResult",
    "TemplateRenderer",
    "render",
    "render_ast",
]
