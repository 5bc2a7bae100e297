"""
Сериализация токенов, AST и ошибок в JSON-совместимые словари.

Формат стабилен и используется внешними инструментами (редакторы
шаблонов, живая проверка): теги типов совпадают с TokenType/NodeType/
ExpressionType, флаги обрезки пробелов записываются как trimLeft/trimRight.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

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
from .nodes import ForNode, IfNode, SetNode, TemplateAST, TemplateNode, TextNode, VariableNode
from .tokens import Token


def token_to_dict(token: Token) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "type": token.type.value,
        "value": token.value,
        "line": token.line,
        "column": token.column,
    }
    if token.trim_left is not None:
        data["trimLeft"] = token.trim_left
    if token.trim_right is not None:
        data["trimRight"] = token.trim_right
    return data


def error_to_dict(error: Any) -> Dict[str, Any]:
    """Ошибка лексера, парсера, валидатора или рендерера."""
    return {"message": error.message, "line": error.line, "column": error.column}


def expression_to_dict(expr: Optional[Expression]) -> Optional[Dict[str, Any]]:
    if expr is None:
        return None

    data: Dict[str, Any] = {"type": expr.get_type().value}

    if isinstance(expr, LiteralExpression):
        data.update(value=expr.value, raw=expr.raw)
    elif isinstance(expr, IdentifierExpression):
        data.update(name=expr.name)
    elif isinstance(expr, BinaryExpression):
        data.update(
            operator=expr.operator,
            left=expression_to_dict(expr.left),
            right=expression_to_dict(expr.right),
        )
    elif isinstance(expr, UnaryExpression):
        data.update(operator=expr.operator, argument=expression_to_dict(expr.argument))
    elif isinstance(expr, FilterExpression):
        data.update(
            value=expression_to_dict(expr.value),
            name=expr.name,
            args=[expression_to_dict(arg) for arg in expr.args],
        )
    elif isinstance(expr, GroupExpression):
        data.update(expression=expression_to_dict(expr.expression))
    elif isinstance(expr, MemberExpression):
        data.update(
            object=expression_to_dict(expr.object),
            property=expression_to_dict(expr.property),
            computed=True,
        )

    data.update(line=expr.line, column=expr.column)
    return data


def node_to_dict(node: TemplateNode) -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": node.get_type().value}

    if isinstance(node, TextNode):
        data.update(value=node.value)
    elif isinstance(node, VariableNode):
        data.update(
            expression=expression_to_dict(node.expression),
            trimLeft=node.trim_left,
            trimRight=node.trim_right,
        )
    elif isinstance(node, IfNode):
        data.update(
            condition=expression_to_dict(node.condition),
            consequent=ast_to_list(node.consequent),
            elseifs=[
                {"condition": expression_to_dict(branch.condition), "body": ast_to_list(branch.body)}
                for branch in node.elseifs
            ],
            alternate=ast_to_list(node.alternate) if node.alternate is not None else None,
            trimLeft=node.trim_left,
            trimRight=node.trim_right,
        )
    elif isinstance(node, ForNode):
        data.update(
            iterator=node.iterator,
            iterable=expression_to_dict(node.iterable),
            body=ast_to_list(node.body),
            trimLeft=node.trim_left,
            trimRight=node.trim_right,
        )
    elif isinstance(node, SetNode):
        data.update(
            variable=node.variable,
            value=expression_to_dict(node.value),
            trimLeft=node.trim_left,
            trimRight=node.trim_right,
        )

    data.update(line=node.line, column=node.column)
    return data


def ast_to_list(ast: TemplateAST) -> List[Dict[str, Any]]:
    return [node_to_dict(node) for node in ast]


__all__ = ["token_to_dict", "error_to_dict", "expression_to_dict", "node_to_dict", "ast_to_list"]
