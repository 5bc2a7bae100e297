"""
Рендеринг AST шаблона в текст.

Обрабатывает подстановки с фильтрами, условия if/elseif/else, циклы for,
присваивания set и управление пробелами после тегов. Ошибки вычисления
не прерывают рендеринг, а собираются в RenderResult.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .evaluator import (
    EvaluationError,
    ExpressionEvaluator,
    RenderContext,
    is_truthy,
    value_to_string,
)
from .expressions import LiteralExpression
from .nodes import (
    ForNode,
    IfNode,
    SetNode,
    TemplateAST,
    TemplateNode,
    TextNode,
    VariableNode,
)
from .parser import parse

logger = logging.getLogger(__name__)

# Пробелы/табы и один перевод строки после тега с trim_right
_LEADING_WHITESPACE_RE = re.compile(r"^[\t ]*\r?\n")
# Пробелы/табы и перевод строки перед узлом с trim_left
_TRAILING_WHITESPACE_RE = re.compile(r"[\t ]*\r?\n?$")


@dataclass(frozen=True)
class RenderError:
    """Ошибка рендеринга с позицией узла."""
    message: str
    line: Optional[int] = None
    column: Optional[int] = None

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"Error at line {self.line}, column {self.column}: {self.message}"


@dataclass
class RenderResult:
    output: str = ""
    errors: List[RenderError] = field(default_factory=list)


class TemplateRenderer:
    """
    Рендерер AST шаблона.

    Экземпляр хранит состояние одного прохода: собранные ошибки и флаг
    отложенной обрезки пробелов в начале следующего вывода.
    """

    def __init__(self, context: RenderContext):
        self.context = context
        self.evaluator = ExpressionEvaluator(context)
        self.errors: List[RenderError] = []
        self._pending_trim_right = False

    def render(self, ast: TemplateAST) -> RenderResult:
        """
        Рендерит AST в переменных контекста.

        set на верхнем уровне изменяет context.variables.
        """
        output = self._render_nodes(ast, self.context.variables)
        logger.debug(f"Rendered {len(ast)} nodes into {len(output)} chars ({len(self.errors)} errors)")
        return RenderResult(output=output, errors=self.errors)

    def _render_nodes(self, nodes: List[TemplateNode], variables: Dict[str, Any]) -> str:
        parts: List[str] = []

        for node in nodes:
            if getattr(node, "trim_left", False) and parts:
                parts[-1] = _TRAILING_WHITESPACE_RE.sub("", parts[-1], count=1)

            # Обрезка, запрошенная предыдущим узлом, относится к выводу этого узла
            trim_this = self._pending_trim_right
            self._pending_trim_right = False

            node_output = self._render_node(node, variables)

            if trim_this:
                if node_output:
                    node_output = _LEADING_WHITESPACE_RE.sub("", node_output, count=1)
                else:
                    # Пустой вывод: обрезка переходит к следующему узлу
                    self._pending_trim_right = True

            parts.append(node_output)

        return "".join(parts)

    def _render_node(self, node: TemplateNode, variables: Dict[str, Any]) -> str:
        if isinstance(node, TextNode):
            return node.value
        if isinstance(node, VariableNode):
            return self._render_variable(node, variables)
        if isinstance(node, IfNode):
            return self._render_if(node, variables)
        if isinstance(node, ForNode):
            return self._render_for(node, variables)
        if isinstance(node, SetNode):
            return self._render_set(node, variables)

        self.errors.append(RenderError(f"Unknown node type: {type(node).__name__}"))
        return ""

    def _render_variable(self, node: VariableNode, variables: Dict[str, Any]) -> str:
        expression = node.expression

        # Строка в {{ }} - плейсхолдер промпта для последующей обработки
        if isinstance(expression, LiteralExpression) and isinstance(expression.value, str):
            result = '{{"' + expression.value + '"}}'
        else:
            try:
                result = value_to_string(self.evaluator.evaluate(expression, variables))
            except Exception as e:
                self._error(f"Error evaluating variable: {e}", node)
                return ""

        if node.trim_right:
            self._pending_trim_right = True
        return result

    def _render_if(self, node: IfNode, variables: Dict[str, Any]) -> str:
        try:
            branch: Optional[List[TemplateNode]] = None
            if is_truthy(self.evaluator.evaluate(node.condition, variables)):
                branch = node.consequent
            else:
                for elseif in node.elseifs:
                    if is_truthy(self.evaluator.evaluate(elseif.condition, variables)):
                        branch = elseif.body
                        break
                else:
                    branch = node.alternate
        except Exception as e:
            self._error(f"Error evaluating if condition: {e}", node)
            return ""

        result = ""
        if branch is not None:
            # Каждая ветка начинается сразу после %} своего тега
            self._pending_trim_right = node.trim_right
            result = self._render_nodes(branch, variables)
            self._pending_trim_right = False

        if node.trim_right:
            self._pending_trim_right = True
        return result

    def _render_for(self, node: ForNode, variables: Dict[str, Any]) -> str:
        try:
            iterable = self.evaluator.evaluate(node.iterable, variables)
        except Exception as e:
            self._error(f"Error in for loop: {e}", node)
            return ""

        if not isinstance(iterable, (list, tuple)):
            self._error(f"For loop iterable is not an array: {_type_name(iterable)}", node)
            if node.trim_right:
                self._pending_trim_right = True
            return ""

        results: List[str] = []
        length = len(iterable)

        for index, item in enumerate(iterable):
            loop_variables = dict(variables)
            loop_variables[node.iterator] = item
            loop_variables[f"{node.iterator}_index"] = index
            loop_variables["loop"] = {
                "index": index + 1,
                "index0": index,
                "first": index == 0,
                "last": index == length - 1,
                "length": length,
            }
            self._pending_trim_right = False
            results.append(self._render_nodes(node.body, loop_variables).strip())

        if node.trim_right:
            self._pending_trim_right = True
        return "\n".join(results)

    def _render_set(self, node: SetNode, variables: Dict[str, Any]) -> str:
        try:
            variables[node.variable] = self.evaluator.evaluate(node.value, variables)
        except Exception as e:
            self._error(f"Error in set: {e}", node)
            return ""

        if node.trim_right:
            self._pending_trim_right = True
        return ""

    def _error(self, message: str, node: TemplateNode) -> None:
        logger.debug(message)
        self.errors.append(RenderError(message, getattr(node, "line", None), getattr(node, "column", None)))


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def render_ast(ast: TemplateAST, context: RenderContext) -> RenderResult:
    """Рендерит уже разобранный AST."""
    return TemplateRenderer(context).render(ast)


def render(template: str, context: Optional[RenderContext] = None) -> RenderResult:
    """
    Разбирает и рендерит шаблон.

    Если разбор дал ошибки, шаблон не рендерится: возвращается пустой
    вывод и ошибки разбора.

    Args:
        template: Исходный текст шаблона
        context: Контекст рендеринга (по умолчанию пустой)

    Returns:
        RenderResult с текстом и ошибками
    """
    context = context or RenderContext()
    parsed = parse(template)

    if parsed.errors:
        logger.debug(f"Template has {len(parsed.errors)} parse errors; skipping render")
        return RenderResult(
            output="",
            errors=[RenderError(e.message, e.line, e.column) for e in parsed.errors],
        )

    return render_ast(parsed.ast, context)


__all__ = [
    "EvaluationError",
    "RenderContext",
    "RenderError",
    "RenderResult",
    "TemplateRenderer",
    "render",
    "render_ast",
]
