"""
Query analysis pipeline.

Splits SQL text into statements, asks the planner which tables each one
reads, resolves those tables and wraps the result in a QueryMetadataModel.

Usage:
    async with PostgresGateway(dsn) as gateway:
        metadata = await analyze_query(gateway, "SELECT * FROM roads")
        metadata.get_cache_channel()
"""

from __future__ import annotations

import logging
from typing import Optional, Set

from pg_querytables.discovery.plan_extractor import extract_tables
from pg_querytables.discovery.statement_splitter import split_statements
from pg_querytables.metadata.gateway import MetadataGateway
from pg_querytables.metadata.resolver import MetadataResolver
from pg_querytables.models import AnalyzerConfig, TableRef
from pg_querytables.query_metadata import QueryMetadataModel
from pg_querytables.utils.aio import gather_or_cancel

logger = logging.getLogger(__name__)


class QueryAnalyzer:
    """
    Determines the cache identity of SQL queries.

    The SQL must be free of tile substitution tokens; see
    pg_querytables.utils.substitution for making a templated query concrete.
    """

    def __init__(self, gateway: MetadataGateway, config: Optional[AnalyzerConfig] = None):
        """
        Initialize the analyzer.

        Args:
            gateway: Database gateway
            config: Analyzer configuration
        """
        self.gateway = gateway
        self.config = config or AnalyzerConfig()

    async def extract_tables(self, sql: str) -> Set[TableRef]:
        """Get the tables every statement of sql reads, as seen by the planner."""
        statements = split_statements(sql)
        logger.debug(f"Extracting tables from {len(statements)} statements")

        results = await gather_or_cancel(*(
            extract_tables(self.gateway, statement, self.config) for statement in statements
        ))
        return set().union(*results)

    async def analyze(self, sql: str) -> QueryMetadataModel:
        """
        Analyze SQL text.

        Args:
            sql: One or more SQL statements

        Returns:
            QueryMetadataModel over every table the statements depend on

        Raises:
            MetadataFetchError: The tables could not be determined
        """
        refs = await self.extract_tables(sql)
        tables = await MetadataResolver(self.gateway, self.config).resolve(refs)

        logger.info(f"Query depends on {len(tables)} tables")
        return QueryMetadataModel(tables, self.config.derived_table_pattern)


async def analyze_query(
    gateway: MetadataGateway,
    sql: str,
    config: Optional[AnalyzerConfig] = None,
) -> QueryMetadataModel:
    """
    Convenience function to analyze a query.

    Args:
        gateway: Database gateway
        sql: One or more SQL statements, free of substitution tokens
        config: Analyzer configuration

    Returns:
        QueryMetadataModel for the query
    """
    return await QueryAnalyzer(gateway, config).analyze(sql)
