"""
Проверка ссылок на переменные в AST шаблона.

Обход дерева учитывает области видимости: {% set %} добавляет имя в
текущую область, {% for %} создаёт копию области для тела цикла.
Каждая ссылка запоминается вместе со снимком области в точке
использования, проверка выполняется после полного обхода.

Результат носит рекомендательный характер: предупреждения с подсказкой
"Did you mean" и никогда не блокируют рендеринг.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Set

from .expressions import (
    BinaryExpression,
    Expression,
    FilterExpression,
    IdentifierExpression,
    MemberExpression,
    collect_identifiers,
)
from .nodes import ForNode, IfNode, SetNode, TemplateAST, VariableNode
from .parser import ParserError

logger = logging.getLogger(__name__)

# Порядок важен: при равном расстоянии подсказывается первый кандидат
PRESET_VARIABLE_NAMES = (
    "author",
    "content",
    "contentHtml",
    "date",
    "description",
    "domain",
    "favicon",
    "fullHtml",
    "highlights",
    "image",
    "published",
    "selection",
    "selectionHtml",
    "site",
    "title",
    "time",
    "url",
    "words",
)

PRESET_VARIABLES: FrozenSet[str] = frozenset(PRESET_VARIABLE_NAMES)

SPECIAL_PREFIXES = ("schema:", "selector:", "selectorHtml:", "meta:")


@dataclass(frozen=True)
class ScopedReference:
    """Ссылка на переменную со снимком области видимости в точке использования."""
    name: str
    line: int
    column: int
    scope: FrozenSet[str]


def levenshtein_distance(a: str, b: str) -> int:
    """Редакционное расстояние Левенштейна (динамическое программирование O(n*m))."""
    previous = list(range(len(a) + 1))

    for i in range(1, len(b) + 1):
        current = [i] + [0] * len(a)
        for j in range(1, len(a) + 1):
            if b[i - 1] == a[j - 1]:
                current[j] = previous[j - 1]
            else:
                current[j] = min(previous[j - 1], current[j - 1], previous[j]) + 1
        previous = current

    return previous[len(a)]


def find_similar_variable(name: str) -> Optional[str]:
    """
    Ищет ближайшую предустановленную переменную.

    Подсказка выдаётся, только если расстояние меньше половины длины
    более длинной из двух строк.
    """
    best_match: Optional[str] = None
    best_distance = float("inf")

    for preset in PRESET_VARIABLE_NAMES:
        distance = levenshtein_distance(name.lower(), preset.lower())
        if distance < max(len(name), len(preset)) / 2 and distance < best_distance:
            best_distance = distance
            best_match = preset

    return best_match


def is_valid_variable(name: str, scope: Iterable[str]) -> bool:
    """
    Проверяет, что имя ссылается на известную переменную.

    Args:
        name: Имя из IdentifierExpression
        scope: Имена, определённые в точке использования

    Returns:
        True для промптов, специальных префиксов, предустановленных
        переменных, переменных области видимости и их вложенных свойств
    """
    if name.startswith('"'):
        return True

    if name.startswith(SPECIAL_PREFIXES):
        return True

    defined = scope if isinstance(scope, (set, frozenset)) else set(scope)
    if name in PRESET_VARIABLES or name in defined:
        return True

    # Вложенные свойства: author.name, loop.index, items[0]
    base_name = name.split(".")[0].split("[")[0]
    return base_name in PRESET_VARIABLES or base_name in defined or base_name == "loop"


def _subject_identifier(expr: Expression) -> Optional[IdentifierExpression]:
    """Идентификатор, с которого начинается выражение подстановки {{ }}."""
    if isinstance(expr, IdentifierExpression):
        return expr
    if isinstance(expr, FilterExpression):
        return _subject_identifier(expr.value)
    if isinstance(expr, MemberExpression):
        return _subject_identifier(expr.object)
    if isinstance(expr, BinaryExpression) and expr.operator == "??":
        return _subject_identifier(expr.left)
    return None


class _ReferenceCollector:
    """Обходит AST и собирает ссылки со снимками областей видимости."""

    def __init__(self):
        self.references: List[ScopedReference] = []

    def collect(self, nodes: TemplateAST, scope: Set[str]) -> None:
        for node in nodes:
            if isinstance(node, VariableNode):
                subject = _subject_identifier(node.expression)
                if subject is not None:
                    self._add(subject, scope)

            elif isinstance(node, SetNode):
                # Имя видно уже в собственном значении и дальше в текущей области
                scope.add(node.variable)
                self._add_expression(node.value, scope)

            elif isinstance(node, IfNode):
                self._add_expression(node.condition, scope)
                self.collect(node.consequent, scope)
                for branch in node.elseifs:
                    self._add_expression(branch.condition, scope)
                    self.collect(branch.body, scope)
                if node.alternate is not None:
                    self.collect(node.alternate, scope)

            elif isinstance(node, ForNode):
                self._add_expression(node.iterable, scope)
                loop_scope = set(scope)
                loop_scope.add(node.iterator)
                loop_scope.add(f"{node.iterator}_index")
                self.collect(node.body, loop_scope)

    def _add_expression(self, expr: Expression, scope: Set[str]) -> None:
        for identifier in collect_identifiers(expr):
            self._add(identifier, scope)

    def _add(self, identifier: IdentifierExpression, scope: Set[str]) -> None:
        self.references.append(ScopedReference(
            name=identifier.name,
            line=identifier.line,
            column=identifier.column,
            scope=frozenset(scope),
        ))


def validate_variables(ast: TemplateAST, known_variables: Optional[Iterable[str]] = None) -> List[ParserError]:
    """
    Проверяет все ссылки на переменные в AST.

    Args:
        ast: Результат разбора шаблона
        known_variables: Дополнительные имена, считающиеся определёнными
                         (например, из файла переменных)

    Returns:
        Список предупреждений в порядке обхода документа
    """
    extra = frozenset(known_variables or ())
    collector = _ReferenceCollector()
    collector.collect(ast, set())

    warnings: List[ParserError] = []
    for ref in collector.references:
        if is_valid_variable(ref.name, ref.scope | extra):
            continue
        message = f'Unknown variable "{ref.name}"'
        similar = find_similar_variable(ref.name)
        if similar:
            message += f'. Did you mean "{similar}"?'
        warnings.append(ParserError(message, ref.line, ref.column))

    logger.debug(f"Validated {len(collector.references)} variable references ({len(warnings)} warnings)")
    return warnings


__all__ = [
    "PRESET_VARIABLE_NAMES",
    "PRESET_VARIABLES",
    "SPECIAL_PREFIXES",
    "ScopedReference",
    "levenshtein_distance",
    "find_similar_variable",
    "is_valid_variable",
    "validate_variables",
]
