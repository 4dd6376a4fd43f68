"""
Macro usage checks and repairs (pre-pass before interpolation).

Queries written by hand or by an assistant often misuse the macros.  These
checks operate purely on the SQL text:

  1. ``$__timeFilter(col)`` written as a function call
  2. ``'$__timeFilter'`` wrapped in quotes
  3. ``$ __timeFilter`` with a stray space after ``$``
  4. ``FROM @db`` / ``JOIN @db`` mention syntax left in a table reference
"""
from __future__ import annotations

import re

from querychart.core.logging import get_logger

logger = get_logger(__name__)

# ── Compiled patterns ────────────────────────────────────

_FILTER_CALL = re.compile(r"\$__timeFilter\s*\([^)]*\)")
_FILTER_QUOTED = re.compile(r"[\"']\$__timeFilter[\"']")
_FILTER_SPACED = re.compile(r"\$\s+__timeFilter")

_AT_QUALIFIED = re.compile(r"(\b(?:FROM|JOIN)\s+)@(\w+)", re.IGNORECASE)


def check_macro_usage(sql: str) -> list[str]:
    """Return a list of macro misuse problems (empty list = clean)."""
    errors: list[str] = []

    if _FILTER_CALL.search(sql):
        errors.append("$__timeFilter is a macro, not a function. Use $__timeFilter without parentheses.")
    if _FILTER_QUOTED.search(sql):
        errors.append("$__timeFilter should not be quoted.")
    if _FILTER_SPACED.search(sql):
        errors.append("Found '$ __timeFilter'; the macro must not contain spaces.")
    if _AT_QUALIFIED.search(sql):
        errors.append("Table references should not include @ symbols.")

    if errors:
        logger.warning("Macro usage problems: %s", errors)
    return errors


def fix_time_filter(sql: str) -> str:
    """Rewrite the common ``$__timeFilter`` mistakes to the bare macro."""
    fixed = _FILTER_CALL.sub("$__timeFilter", sql)
    fixed = _FILTER_QUOTED.sub("$__timeFilter", fixed)
    return _FILTER_SPACED.sub("$__timeFilter", fixed)


def strip_at_symbols(sql: str) -> str:
    """``FROM @mydb.table`` → ``FROM mydb.table``."""
    return _AT_QUALIFIED.sub(r"\1\2", sql)


def sanitize(sql: str) -> tuple[str, list[str]]:
    """Check then repair *sql*; returns the repaired text and the problems found."""
    errors = check_macro_usage(sql)
    return strip_at_symbols(fix_time_filter(sql)), errors
