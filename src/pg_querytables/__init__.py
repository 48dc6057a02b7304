"""
pg-querytables - Cache identity of PostgreSQL queries

Determines which physical tables a SQL query reads, as seen by the
PostgreSQL planner, and derives from them the values used to cache and
invalidate query results.

Features:
- Quote-aware splitting of multi-statement SQL
- Table discovery from execution plans, including through views,
  materialized views and foreign tables
- Cache channel, surrogate keys and last modification time per query
- Tile token substitution for map-rendering queries
"""

__version__ = "0.1.0"

from pg_querytables.analyzer import QueryAnalyzer, analyze_query
from pg_querytables.discovery import extract_tables, split_statements
from pg_querytables.errors import (
    GatewayError,
    MetadataFetchError,
    QueryTablesError,
)
from pg_querytables.metadata import MetadataResolver, PostgresGateway
from pg_querytables.models import (
    AnalyzerConfig,
    RelationKind,
    TableMetadata,
    TableRef,
    load_config,
)
from pg_querytables.query_metadata import QueryMetadataModel

__all__ = [
    # Analysis
    "QueryAnalyzer",
    "analyze_query",
    "split_statements",
    "extract_tables",
    "MetadataResolver",
    "PostgresGateway",
    # Models
    "AnalyzerConfig",
    "RelationKind",
    "TableMetadata",
    "TableRef",
    "QueryMetadataModel",
    "load_config",
    # Errors
    "QueryTablesError",
    "GatewayError",
    "MetadataFetchError",
]
