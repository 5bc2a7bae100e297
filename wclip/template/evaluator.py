"""
Вычислитель выражений шаблонов.

Проходит по дереву выражения и вычисляет значение в контексте
переменных рендеринга. Разрешение селекторов и применение встроенных
фильтров делегируются внешним функциям из RenderContext.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, cast

from .expressions import (
    BinaryExpression,
    Expression,
    ExpressionType,
    FilterExpression,
    GroupExpression,
    IdentifierExpression,
    LiteralExpression,
    MemberExpression,
    UnaryExpression,
)

logger = logging.getLogger(__name__)

FilterFunc = Callable[..., Any]
ApplyFilterFunc = Callable[[str, Any, List[Any]], Any]
ResolverFunc = Callable[[str, "RenderContext"], Any]

_BRACKET_KEY_RE = re.compile(r"^([^\[]*)\[([^\]]+)\]")
_DIGITS_RE = re.compile(r"^\d+$")


class EvaluationError(Exception):
    """Ошибка при вычислении выражения шаблона."""
    pass


@dataclass
class RenderContext:
    """
    Контекст рендеринга шаблона.

    Attributes:
        variables: Переменные страницы. Ключи могут быть как простыми (title),
                   так и обёрнутыми ({{title}})
        current_url: URL текущей страницы, передаётся во внешние фильтры
        filters: Пользовательские фильтры name -> callable(value, *args)
        apply_filter: Внешняя функция применения встроенных фильтров
        resolver: Внешняя функция разрешения selector:/selectorHtml: переменных
    """
    variables: Dict[str, Any] = field(default_factory=dict)
    current_url: str = ""
    filters: Dict[str, FilterFunc] = field(default_factory=dict)
    apply_filter: Optional[ApplyFilterFunc] = None
    resolver: Optional[ResolverFunc] = None


def is_truthy(value: Any) -> bool:
    """Истинность значения в условиях шаблона: None, "", 0, False и пустые списки ложны."""
    if value is None or value is False:
        return False
    if isinstance(value, str) and value == "":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return False
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return False
    return True


def resolve_variable(name: str, variables: Mapping[str, Any]) -> Any:
    """
    Ищет значение переменной.

    Порядок: ключ вида {{name}}, затем простой ключ, затем путь
    через точки и скобки (author.name, items[0]).
    """
    trimmed = name.strip()

    wrapped = variables.get("{{" + trimmed + "}}")
    if wrapped is not None:
        return wrapped

    plain = variables.get(trimmed)
    if plain is not None:
        return plain

    if "." in trimmed or "[" in trimmed:
        return _get_nested_value(variables, trimmed)

    return None


def _get_nested_value(obj: Any, path: str) -> Any:
    value = obj

    for key in path.split("."):
        if value is None:
            return None

        match = _BRACKET_KEY_RE.match(key) if "[" in key and "]" in key else None
        if match:
            base_key, index = match.group(1), match.group(2)
            base = _lookup_key(value, base_key) if base_key else value
            if isinstance(base, (list, tuple)):
                value = _index_sequence(base, index)
            elif isinstance(base, Mapping):
                value = base.get(index.strip("\"'"))
            else:
                return None
            continue

        value = _lookup_key(value, key)

    return value


def _lookup_key(value: Any, key: str) -> Any:
    if not isinstance(value, Mapping):
        return None
    wrapped = value.get("{{" + key + "}}")
    if wrapped is not None:
        return wrapped
    return value.get(key)


def _index_sequence(sequence: Any, index: Any) -> Any:
    if isinstance(index, str):
        if not _DIGITS_RE.match(index):
            return None
        index = int(index)
    elif isinstance(index, float) and index.is_integer():
        index = int(index)
    if isinstance(index, bool) or not isinstance(index, int):
        return None
    if 0 <= index < len(sequence):
        return sequence[index]
    return None


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Нестрогое равенство: числовые строки сравниваются как числа."""
    if left is None or right is None:
        return left is None and right is None
    if left == right:
        return True
    if isinstance(left, str) and isinstance(right, str):
        return False
    left_number, right_number = _to_number(left), _to_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return False


def _compare(operator: str, left: Any, right: Any) -> bool:
    if not (isinstance(left, str) and isinstance(right, str)):
        left_number, right_number = _to_number(left), _to_number(right)
        if left_number is not None and right_number is not None:
            left, right = left_number, right_number
    try:
        if operator == ">":
            return left > right
        if operator == "<":
            return left < right
        if operator == ">=":
            return left >= right
        return left <= right
    except TypeError:
        # Несравнимые значения (None, dict и т.п.)
        return False


def evaluate_contains(left: Any, right: Any) -> bool:
    """contains без учёта регистра для строк и элементов списков."""
    if left is None or right is None:
        return False

    if isinstance(left, (list, tuple)):
        for item in left:
            if isinstance(item, str) and isinstance(right, str):
                if item.lower() == right.lower():
                    return True
            elif loose_equals(item, right):
                return True
        return False

    if isinstance(left, str):
        needle = right if isinstance(right, str) else value_to_string(right)
        return needle.lower() in left.lower()

    return False


def value_to_string(value: Any) -> str:
    """Преобразует значение в текст для вывода."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


class ExpressionEvaluator:
    """
    Вычислитель выражений шаблона.

    Принимает дерево выражения и словарь переменных текущей области
    видимости, возвращает значение.
    """

    def __init__(self, context: RenderContext):
        """
        Инициализирует вычислитель с контекстом.

        Args:
            context: Контекст рендеринга с фильтрами и внешними функциями
        """
        self.context = context

    def evaluate(self, expr: Expression, variables: Dict[str, Any]) -> Any:
        """
        Вычисляет значение выражения.

        Args:
            expr: Корневой узел выражения
            variables: Переменные текущей области видимости

        Returns:
            Значение выражения (None для неизвестных переменных)

        Raises:
            EvaluationError: При неизвестном операторе или типе выражения
        """
        expr_type = expr.get_type()

        if expr_type == ExpressionType.LITERAL:
            return cast(LiteralExpression, expr).value
        elif expr_type == ExpressionType.IDENTIFIER:
            return self._evaluate_identifier(cast(IdentifierExpression, expr), variables)
        elif expr_type == ExpressionType.BINARY:
            return self._evaluate_binary(cast(BinaryExpression, expr), variables)
        elif expr_type == ExpressionType.UNARY:
            return self._evaluate_unary(cast(UnaryExpression, expr), variables)
        elif expr_type == ExpressionType.FILTER:
            return self._evaluate_filter(cast(FilterExpression, expr), variables)
        elif expr_type == ExpressionType.GROUP:
            return self.evaluate(cast(GroupExpression, expr).expression, variables)
        elif expr_type == ExpressionType.MEMBER:
            return self._evaluate_member(cast(MemberExpression, expr), variables)
        else:
            raise EvaluationError(f"Unknown expression type: {expr_type}")

    def _evaluate_identifier(self, expr: IdentifierExpression, variables: Dict[str, Any]) -> Any:
        name = expr.name

        if name.startswith(("selector:", "selectorHtml:")):
            if self.context.resolver is not None:
                return self.context.resolver(name, self.context)
            # Плейсхолдер для последующей обработки
            return "{{" + name + "}}"

        if name.startswith("schema:"):
            value = resolve_variable(name, variables)
            if value is None:
                return "{{" + name + "}}"
            return value

        if name.startswith(("prompt:", '"')):
            return "{{" + name + "}}"

        return resolve_variable(name, variables)

    def _evaluate_member(self, expr: MemberExpression, variables: Dict[str, Any]) -> Any:
        obj = self.evaluate(expr.object, variables)
        prop = self.evaluate(expr.property, variables)

        if obj is None or prop is None:
            return None

        if isinstance(obj, (list, tuple)):
            return _index_sequence(obj, prop)

        if isinstance(obj, Mapping):
            if isinstance(prop, float) and prop.is_integer():
                prop = int(prop)
            value = obj.get(prop)
            if value is None and not isinstance(prop, str):
                value = obj.get(str(prop))
            return value

        return None

    def _evaluate_binary(self, expr: BinaryExpression, variables: Dict[str, Any]) -> Any:
        operator = expr.operator
        left = self.evaluate(expr.left, variables)

        # Правая часть ?? вычисляется только при необходимости
        if operator == "??":
            return left if left is not None else self.evaluate(expr.right, variables)

        right = self.evaluate(expr.right, variables)

        if operator == "==":
            return loose_equals(left, right)
        elif operator == "!=":
            return not loose_equals(left, right)
        elif operator in (">", "<", ">=", "<="):
            return _compare(operator, left, right)
        elif operator == "contains":
            return evaluate_contains(left, right)
        elif operator == "and":
            return is_truthy(left) and is_truthy(right)
        elif operator == "or":
            return is_truthy(left) or is_truthy(right)
        else:
            raise EvaluationError(f"Unknown binary operator: {operator}")

    def _evaluate_unary(self, expr: UnaryExpression, variables: Dict[str, Any]) -> Any:
        if expr.operator != "not":
            raise EvaluationError(f"Unknown unary operator: {expr.operator}")
        return not is_truthy(self.evaluate(expr.argument, variables))

    def _evaluate_filter(self, expr: FilterExpression, variables: Dict[str, Any]) -> Any:
        value = self.evaluate(expr.value, variables)
        args = [self.evaluate(arg, variables) for arg in expr.args]

        custom = self.context.filters.get(expr.name)
        if custom is not None:
            return custom(value, *args)

        if self.context.apply_filter is not None:
            return self.context.apply_filter(expr.name, value, args)

        logger.warning(f"Unknown filter '{expr.name}' at line {expr.line}, column {expr.column}; value passed through")
        return value


__all__ = [
    "EvaluationError",
    "RenderContext",
    "ExpressionEvaluator",
    "is_truthy",
    "resolve_variable",
    "loose_equals",
    "evaluate_contains",
    "value_to_string",
]
