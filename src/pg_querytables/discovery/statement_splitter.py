"""
SQL statement splitter.

Splits a possibly multi-statement SQL string on top-level semicolons, leaving
double-quoted identifiers, single-quoted literals and dollar-quoted bodies intact.
"""

from __future__ import annotations

import logging
import re
from typing import List

logger = logging.getLogger(__name__)


# $$ or $tag$, where a tag follows identifier rules but cannot start with a digit
DOLLAR_QUOTE_PATTERN = re.compile(r"\$(?:[A-Za-z_\u0080-\uffff][A-Za-z0-9_\u0080-\uffff]*)?\$")

STATEMENT_TRIM_CHARS = " \t\r\n\f\v;"


def split_statements(sql: str) -> List[str]:
    """
    Split SQL text into individual statements.

    Never raises: input with unterminated quotes is split on a best-effort basis,
    the unterminated run swallowing the rest of the text.

    Args:
        sql: SQL text, possibly holding several statements

    Returns:
        Non-empty statements, trimmed of whitespace and semicolons
    """
    statements: List[str] = []
    length = len(sql)
    start = 0
    pos = 0

    while pos < length:
        char = sql[pos]

        if char == "'" or char == '"':
            pos = _skip_quoted(sql, pos, char)
        elif char == "$":
            pos = _skip_dollar_quoted(sql, pos)
        elif char == ";":
            _append_statement(statements, sql[start:pos])
            pos += 1
            start = pos
        else:
            pos += 1

    _append_statement(statements, sql[start:])
    return statements


def _append_statement(statements: List[str], text: str) -> None:
    statement = text.strip(STATEMENT_TRIM_CHARS)
    if statement:
        statements.append(statement)


def _skip_quoted(sql: str, pos: int, quote: str) -> int:
    """Return the position right after the quoted run opened at pos."""
    length = len(sql)
    pos += 1
    while True:
        end = sql.find(quote, pos)
        if end == -1:
            logger.debug(f"Unterminated {quote} quote in SQL, consuming the rest of the input")
            return length
        # Doubled quote is an escaped quote character
        if end + 1 < length and sql[end + 1] == quote:
            pos = end + 2
            continue
        return end + 1


def _skip_dollar_quoted(sql: str, pos: int) -> int:
    """Return the position right after the dollar-quoted body opened at pos."""
    # A $ inside an identifier (foo$bar) never opens a quote
    if pos > 0 and (sql[pos - 1].isalnum() or sql[pos - 1] == "_"):
        return pos + 1

    match = DOLLAR_QUOTE_PATTERN.match(sql, pos)
    if not match:
        return pos + 1

    tag = match.group(0)
    end = sql.find(tag, match.end())
    if end == -1:
        logger.debug(f"Unterminated {tag} quote in SQL, consuming the rest of the input")
        return len(sql)
    return end + len(tag)
