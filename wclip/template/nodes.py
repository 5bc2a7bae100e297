"""
AST-узлы шаблона.

Определяет неизменяемые классы узлов верхнего уровня: текст, подстановки
переменных и управляющие теги if/for/set. Каждый узел хранит позицию
начального токена.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .expressions import Expression


class NodeType(Enum):
    """Типы узлов AST."""
    TEXT = "text"
    VARIABLE = "variable"
    IF = "if"
    FOR = "for"
    SET = "set"


@dataclass(frozen=True)
class TemplateNode:
    """Базовый класс для всех узлов AST шаблона."""

    def get_type(self) -> NodeType:
        raise NotImplementedError


@dataclass(frozen=True)
class TextNode(TemplateNode):
    """
    Обычный текстовый контент в шаблоне.

    Выводится в результат как есть.
    """
    value: str
    line: int = 0
    column: int = 0

    def get_type(self) -> NodeType:
        return NodeType.TEXT


@dataclass(frozen=True)
class VariableNode(TemplateNode):
    """Подстановка {{ expression }}."""
    expression: Expression
    trim_left: bool = False
    trim_right: bool = False
    line: int = 0
    column: int = 0

    def get_type(self) -> NodeType:
        return NodeType.VARIABLE


@dataclass(frozen=True)
class ElseIfBranch:
    """Ветка {% elseif condition %} с телом."""
    condition: Expression
    body: List[TemplateNode] = field(default_factory=list)


@dataclass(frozen=True)
class IfNode(TemplateNode):
    """
    Условный блок {% if %}...{% elseif %}...{% else %}...{% endif %}.

    elseifs хранятся в порядке исходного текста. alternate равен None,
    если ветки else нет (в отличие от пустого списка для пустой ветки).
    """
    condition: Expression
    consequent: List[TemplateNode] = field(default_factory=list)
    elseifs: List[ElseIfBranch] = field(default_factory=list)
    alternate: Optional[List[TemplateNode]] = None
    trim_left: bool = False
    trim_right: bool = False
    line: int = 0
    column: int = 0

    def get_type(self) -> NodeType:
        return NodeType.IF


@dataclass(frozen=True)
class ForNode(TemplateNode):
    """
    Цикл {% for iterator in iterable %}...{% endfor %}.

    Внутри тела доступны iterator и <iterator>_index.
    """
    iterator: str
    iterable: Expression
    body: List[TemplateNode] = field(default_factory=list)
    trim_left: bool = False
    trim_right: bool = False
    line: int = 0
    column: int = 0

    def get_type(self) -> NodeType:
        return NodeType.FOR


@dataclass(frozen=True)
class SetNode(TemplateNode):
    """Присваивание {% set variable = value %}."""
    variable: str
    value: Expression
    trim_left: bool = False
    trim_right: bool = False
    line: int = 0
    column: int = 0

    def get_type(self) -> NodeType:
        return NodeType.SET


# Алиас для списка узлов (AST)
TemplateAST = List[TemplateNode]


def format_ast_tree(ast: TemplateAST, indent: int = 0) -> str:
    """Форматирует AST как дерево для отладки."""
    lines = []
    prefix = "  " * indent

    for node in ast:
        if isinstance(node, TextNode):
            # Показываем только начало текста для читабельности
            text_preview = repr(node.value[:50] + "..." if len(node.value) > 50 else node.value)
            lines.append(f"{prefix}TextNode({text_preview})")
        elif isinstance(node, VariableNode):
            lines.append(f"{prefix}VariableNode({node.expression})")
        elif isinstance(node, IfNode):
            lines.append(f"{prefix}IfNode(condition='{node.condition}')")
            if node.consequent:
                lines.append(f"{prefix}  then:")
                lines.append(format_ast_tree(node.consequent, indent + 2))
            for i, branch in enumerate(node.elseifs):
                lines.append(f"{prefix}  elseif[{i}](condition='{branch.condition}'):")
                if branch.body:
                    lines.append(format_ast_tree(branch.body, indent + 2))
            if node.alternate is not None:
                lines.append(f"{prefix}  else:")
                if node.alternate:
                    lines.append(format_ast_tree(node.alternate, indent + 2))
        elif isinstance(node, ForNode):
            lines.append(f"{prefix}ForNode({node.iterator} in '{node.iterable}')")
            if node.body:
                lines.append(f"{prefix}  body:")
                lines.append(format_ast_tree(node.body, indent + 2))
        elif isinstance(node, SetNode):
            lines.append(f"{prefix}SetNode({node.variable} = '{node.value}')")
        else:
            lines.append(f"{prefix}{type(node).__name__}")

    return "\n".join(lines)


__all__ = [
    "NodeType",
    "TemplateNode",
    "TextNode",
    "VariableNode",
    "ElseIfBranch",
    "IfNode",
    "ForNode",
    "SetNode",
    "TemplateAST",
    "format_ast_tree",
]
