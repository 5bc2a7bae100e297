from __future__ import annotations

from importlib import metadata


def tool_version() -> str:
    """Версия установленного дистрибутива wclip-templates."""
    try:
        return metadata.version("wclip-templates")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["tool_version"]
