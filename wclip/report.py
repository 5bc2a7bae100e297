"""
Модели отчёта команды `wclip check`.

Отчёт сериализуется через model_dump(mode="json") и печатается CLI как JSON.
"""

from __future__ import annotations

from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field


class Diagnostic(BaseModel):
    """Одна ошибка или предупреждение с позицией в шаблоне."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    message: str
    line: int = Field(ge=0)
    column: int = Field(ge=0)


class CheckReport(BaseModel):
    """
    Результат проверки шаблона.

    ok ложно только при ошибках лексера/парсера; предупреждения
    валидатора переменных на него не влияют.
    """
    model_config = ConfigDict(extra="forbid")

    ok: bool
    errors: List[Diagnostic] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)


def build_check_report(errors: Iterable, warnings: Iterable) -> CheckReport:
    """Строит отчёт из ошибок парсера и предупреждений валидатора."""
    error_items = [Diagnostic(message=e.message, line=e.line, column=e.column) for e in errors]
    warning_items = [Diagnostic(message=w.message, line=w.line, column=w.column) for w in warnings]
    return CheckReport(ok=not error_items, errors=error_items, warnings=warning_items)


__all__ = ["Diagnostic", "CheckReport", "build_check_report"]
