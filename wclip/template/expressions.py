"""
Модели выражений шаблонов.

Выражения встречаются внутри {{ ... }} и в условиях/значениях тегов
{% if %}, {% for %}, {% set %}. Каждый вариант хранит позицию
начального токена для диагностики.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union


class ExpressionType(Enum):
    """Типы выражений."""
    LITERAL = "literal"
    IDENTIFIER = "identifier"
    BINARY = "binary"
    UNARY = "unary"
    FILTER = "filter"
    GROUP = "group"
    MEMBER = "member"


LiteralValue = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class Expression:
    """Базовый класс для всех выражений."""

    def get_type(self) -> ExpressionType:
        raise NotImplementedError

    def __str__(self) -> str:
        return self._to_string()

    def _to_string(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class LiteralExpression(Expression):
    """
    Литерал: строка, число, булево значение или null.

    raw хранит исходное написание (для строк - без кавычек).
    """
    value: LiteralValue
    raw: str
    line: int = 0
    column: int = 0

    def get_type(self) -> ExpressionType:
        return ExpressionType.LITERAL

    def _to_string(self) -> str:
        if isinstance(self.value, str):
            # пара "search":"replace" уже записана в кавычках
            if self.raw.startswith('"') and '":"' in self.raw:
                return self.raw
            return f'"{self.raw}"'
        return self.raw


@dataclass(frozen=True)
class IdentifierExpression(Expression):
    """
    Ссылка на переменную.

    Имя может быть путём через точку (author.name) или начинаться
    со специального префикса (schema:, selector:, selectorHtml:, meta:).
    """
    name: str
    line: int = 0
    column: int = 0

    def get_type(self) -> ExpressionType:
        return ExpressionType.IDENTIFIER

    def _to_string(self) -> str:
        return self.name


@dataclass(frozen=True)
class BinaryExpression(Expression):
    """Бинарная операция: сравнение, and/or, contains или ??."""
    operator: str
    left: Expression
    right: Expression
    line: int = 0
    column: int = 0

    def get_type(self) -> ExpressionType:
        return ExpressionType.BINARY

    def _to_string(self) -> str:
        return f"{self.left} {self.operator} {self.right}"


@dataclass(frozen=True)
class UnaryExpression(Expression):
    operator: str
    argument: Expression
    line: int = 0
    column: int = 0

    def get_type(self) -> ExpressionType:
        return ExpressionType.UNARY

    def _to_string(self) -> str:
        return f"{self.operator} {self.argument}"


@dataclass(frozen=True)
class FilterExpression(Expression):
    """
    Применение фильтра: value|name:args

    value - выражение слева от '|', args - позиционные аргументы фильтра.
    """
    value: Expression
    name: str
    args: List[Expression]
    line: int = 0
    column: int = 0

    def get_type(self) -> ExpressionType:
        return ExpressionType.FILTER

    def _to_string(self) -> str:
        if not self.args:
            return f"{self.value}|{self.name}"
        return f"{self.value}|{self.name}:" + ",".join(str(arg) for arg in self.args)


@dataclass(frozen=True)
class GroupExpression(Expression):
    """Явная группировка в скобках."""
    expression: Expression
    line: int = 0
    column: int = 0

    def get_type(self) -> ExpressionType:
        return ExpressionType.GROUP

    def _to_string(self) -> str:
        return f"({self.expression})"


@dataclass(frozen=True)
class MemberExpression(Expression):
    """
    Доступ по индексу или ключу: object[property]

    Только скобочная форма; доступ через точку сворачивается в имя идентификатора.
    """
    object: Expression
    property: Expression
    line: int = 0
    column: int = 0

    @property
    def computed(self) -> bool:
        return True

    def get_type(self) -> ExpressionType:
        return ExpressionType.MEMBER

    def _to_string(self) -> str:
        return f"{self.object}[{self.property}]"


def collect_identifiers(expr: Optional[Expression]) -> List[IdentifierExpression]:
    """
    Собирает все идентификаторы выражения в порядке обхода слева направо.

    Args:
        expr: Выражение (None допускается и даёт пустой список)

    Returns:
        Список узлов IdentifierExpression
    """
    result: List[IdentifierExpression] = []
    _collect(expr, result)
    return result


def _collect(expr: Optional[Expression], result: List[IdentifierExpression]) -> None:
    if expr is None:
        return
    if isinstance(expr, IdentifierExpression):
        result.append(expr)
    elif isinstance(expr, FilterExpression):
        _collect(expr.value, result)
        for arg in expr.args:
            _collect(arg, result)
    elif isinstance(expr, BinaryExpression):
        _collect(expr.left, result)
        _collect(expr.right, result)
    elif isinstance(expr, UnaryExpression):
        _collect(expr.argument, result)
    elif isinstance(expr, MemberExpression):
        _collect(expr.object, result)
        _collect(expr.property, result)
    elif isinstance(expr, GroupExpression):
        _collect(expr.expression, result)


__all__ = [
    "ExpressionType",
    "LiteralValue",
    "Expression",
    "LiteralExpression",
    "IdentifierExpression",
    "BinaryExpression",
    "UnaryExpression",
    "FilterExpression",
    "GroupExpression",
    "MemberExpression",
    "collect_identifiers",
]
