"""
Exception hierarchy for query table analysis.
"""

from __future__ import annotations

from typing import Optional

# SQLSTATE codes the analysis tolerates
SYNTAX_ERROR = "42601"
UNDEFINED_TABLE = "42P01"

METADATA_ERROR_PREFIX = "Could not fetch metadata about the affected tables: "


class QueryTablesError(Exception):
    """Base class for all analysis failures."""


class GatewayError(QueryTablesError):
    """A database round trip failed."""

    def __init__(self, message: str, sqlstate: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.sqlstate = sqlstate

    @property
    def is_syntax_error(self) -> bool:
        return self.sqlstate == SYNTAX_ERROR

    @property
    def is_undefined_table(self) -> bool:
        return self.sqlstate == UNDEFINED_TABLE


class MetadataFetchError(QueryTablesError):
    """Fatal failure while resolving the tables a query depends on."""

    def __init__(self, detail: str):
        super().__init__(METADATA_ERROR_PREFIX + detail)
        self.detail = detail


class PlanFormatError(MetadataFetchError):
    """The planner returned something that is not an execution plan."""


class ViewRecursionError(MetadataFetchError):
    """Nested views exceeded the configured resolution depth."""


class InvalidTokenError(ValueError):
    """A substitution value was given for a token that does not exist."""


class InvalidTileError(ValueError):
    """Tile coordinates outside the Web Mercator tile grid."""
