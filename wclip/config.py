"""
Загрузка входных данных CLI: текст шаблона и файл переменных.
Файл переменных читается как JSON (по суффиксу .json) или YAML.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import WclipUserError

_yaml = YAML(typ="safe")

DEBUG_ENV_VAR = "WCLIP_DEBUG"


def debug_enabled() -> bool:
    """Отладочное логирование включается любым непустым значением WCLIP_DEBUG."""
    return bool(os.environ.get(DEBUG_ENV_VAR, "").strip())


def read_template(source: str) -> str:
    """Читает текст шаблона из файла или из stdin, если передан '-'."""
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.is_file():
        raise WclipUserError(f"Template file not found: {path}")
    return path.read_text(encoding="utf-8")


def _read_yaml_map(path: Path) -> dict:
    """Читает YAML файл и возвращает словарь."""
    try:
        raw = _yaml.load(path.read_text(encoding="utf-8")) or {}
    except YAMLError as e:
        raise WclipUserError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise WclipUserError(f"Variables file must be a mapping: {path}")
    return raw


def _read_json_map(path: Path) -> dict:
    try:
        raw = json.loads(path.read_text(encoding="utf-8") or "{}")
    except json.JSONDecodeError as e:
        raise WclipUserError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise WclipUserError(f"Variables file must be a mapping: {path}")
    return raw


def load_variables(path: Path | str) -> Dict[str, Any]:
    """
    Загружает переменные страницы для check/render.

    Args:
        path: Путь к .json, .yaml или .yml файлу

    Returns:
        Словарь переменных (ключи приводятся к строкам)

    Raises:
        WclipUserError: Если файла нет, он не разбирается или не является словарём
    """
    path = Path(path)
    if not path.is_file():
        raise WclipUserError(f"Variables file not found: {path}")

    if path.suffix.lower() == ".json":
        raw = _read_json_map(path)
    else:
        raw = _read_yaml_map(path)

    return {str(key): value for key, value in raw.items()}


__all__ = ["DEBUG_ENV_VAR", "debug_enabled", "read_template", "load_variables"]
