from __future__ import annotations

from .template import parse, parse_tokens, render, tokenize, validate_variables

__all__ = ["tokenize", "parse", "parse_tokens", "validate_variables", "render"]
