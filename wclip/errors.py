"""
Base exception for user-facing errors.

Expected problems that the CLI should report as a clean message
(missing template file, malformed variables file) inherit from
WclipUserError. Template problems are never raised: they are returned
as error lists by the tokenizer, parser, validator and renderer.
"""

from __future__ import annotations


class WclipUserError(Exception):
    """Problem the user can fix: bad path, unreadable or malformed input file."""
    pass


__all__ = ["WclipUserError"]
