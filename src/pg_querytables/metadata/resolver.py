"""
Table metadata resolver.

Turns planner table references into TableMetadata: canonical identity, the
database that owns the data and the last time it was modified. Views are
resolved through the tables they read, foreign tables through the tracking
table of their remote database.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional, Set, Tuple

from pg_querytables.discovery.plan_extractor import extract_tables
from pg_querytables.discovery.statement_splitter import split_statements
from pg_querytables.errors import GatewayError, MetadataFetchError, ViewRecursionError
from pg_querytables.metadata.gateway import MetadataGateway, Row
from pg_querytables.models import (
    AnalyzerConfig,
    RelationIdentity,
    RelationKind,
    TableMetadata,
    TableRef,
    quote_ident,
)
from pg_querytables.utils.aio import gather_or_cancel

logger = logging.getLogger(__name__)


IDENTITY_QUERY = """
    SELECT DISTINCT ON (c.oid)
        q.id_name,
        c.oid::bigint AS reloid,
        quote_ident(n.nspname::text) AS schema_name,
        quote_ident(c.relname::text) AS table_name,
        c.relkind::text AS relkind,
        current_database()::text AS local_dbname
    FROM unnest($1::text[]) AS q(id_name)
    JOIN pg_catalog.pg_class c ON c.oid = q.id_name::regclass
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    ORDER BY c.oid
"""

LOCAL_UPDATED_AT_QUERY = """
    SELECT updated_at
    FROM {tracking_relation}
    WHERE tabname::oid = $1::oid
    ORDER BY updated_at DESC
    LIMIT 1
"""

FOREIGN_TABLE_QUERY = """
    SELECT
        (SELECT option_value FROM pg_catalog.pg_options_to_table(s.srvoptions)
         WHERE option_name = 'dbname') AS dbname,
        (SELECT option_value FROM pg_catalog.pg_options_to_table(ft.ftoptions)
         WHERE option_name = 'schema_name') AS remote_schema,
        (SELECT option_value FROM pg_catalog.pg_options_to_table(ft.ftoptions)
         WHERE option_name = 'table_name') AS remote_table
    FROM pg_catalog.pg_foreign_table ft
    JOIN pg_catalog.pg_foreign_server s ON s.oid = ft.ftserver
    WHERE ft.ftrelid = $1::oid
"""

# The remote tracking table is imported next to the foreign tables
REMOTE_UPDATED_AT_QUERY = """
    SELECT updated_at
    FROM {schema}.{tracking_table}
    WHERE tabname::text = $1
    ORDER BY updated_at DESC
    LIMIT 1
"""

VIEW_DEFINITION_QUERY = "SELECT pg_catalog.pg_get_viewdef($1::oid) AS definition"


class MetadataResolver:
    """
    Resolves planner table references into ordered TableMetadata.

    Resolution happens in two steps:
    1. One batched catalog query maps every reference to its OID, local
       schema/table names and relation kind, ordered by OID
    2. Each relation gets its owning database and update time, concurrently:
       - tables: local database, local tracking table
       - foreign tables: remote database, remote tracking table (null if the
         remote tracking table does not exist)
       - views and materialized views: their own tracking row if any, else the
         latest update among the tables their definition reads
    """

    def __init__(self, gateway: MetadataGateway, config: Optional[AnalyzerConfig] = None):
        self.gateway = gateway
        self.config = config or AnalyzerConfig()

    async def resolve(self, refs: Iterable[TableRef]) -> List[TableMetadata]:
        """
        Resolve table references.

        Args:
            refs: Table references as reported by the planner

        Returns:
            One TableMetadata per distinct relation, ordered by OID

        Raises:
            MetadataFetchError: A reference could not be resolved or the
                database failed
        """
        return await self._resolve(set(refs), depth=0, ancestors=frozenset())

    async def _resolve(
        self,
        refs: Set[TableRef],
        depth: int,
        ancestors: FrozenSet[int],
    ) -> List[TableMetadata]:
        if not refs:
            return []

        identities = await self._resolve_identities(refs)
        logger.debug(
            f"Resolved {len(refs)} references to {len(identities)} relations (depth {depth})"
        )

        return list(await gather_or_cancel(*(
            self._resolve_relation(identity, depth, ancestors) for identity in identities
        )))

    async def _resolve_identities(self, refs: Set[TableRef]) -> List[RelationIdentity]:
        """Map references to relation identities, ordered by OID."""
        id_names = sorted(ref.id_name for ref in refs)
        rows = await self._execute(IDENTITY_QUERY, [id_names])
        return [RelationIdentity.from_row(row) for row in rows]

    async def _resolve_relation(
        self,
        identity: RelationIdentity,
        depth: int,
        ancestors: FrozenSet[int],
    ) -> TableMetadata:
        if identity.reloid in ancestors:
            logger.warning(
                f"Relation {identity.schema_name}.{identity.table_name} depends on itself, "
                f"ignoring its update time"
            )
            return identity.to_metadata(identity.local_dbname, None)

        if identity.relkind == RelationKind.FOREIGN_TABLE:
            dbname, updated_at = await self._resolve_foreign_table(identity)
            return identity.to_metadata(dbname, updated_at)

        updated_at = await self._local_updated_at(identity)
        if updated_at is None and identity.relkind.is_view:
            updated_at = await self._view_updated_at(identity, depth, ancestors)

        return identity.to_metadata(identity.local_dbname, updated_at)

    async def _local_updated_at(self, identity: RelationIdentity) -> Optional[datetime]:
        query = LOCAL_UPDATED_AT_QUERY.format(tracking_relation=self.config.tracking_relation)
        rows = await self._execute(query, [identity.reloid])
        return rows[0]["updated_at"] if rows else None

    async def _resolve_foreign_table(self, identity: RelationIdentity) -> Tuple[str, Optional[datetime]]:
        """Get the remote database name and remote update time of a foreign table."""
        rows = await self._execute(FOREIGN_TABLE_QUERY, [identity.reloid])
        if not rows:
            raise MetadataFetchError(
                f"foreign table {identity.schema_name}.{identity.table_name} has no server"
            )
        options = rows[0]

        dbname = options["dbname"]
        if not dbname:
            logger.warning(
                f"Foreign server of {identity.schema_name}.{identity.table_name} has no dbname "
                f"option, attributing it to the local database"
            )
            dbname = identity.local_dbname

        remote_name = "{}.{}".format(
            quote_ident(options["remote_schema"] or "public"),
            quote_ident(options["remote_table"] or _unquote_ident(identity.table_name)),
        )
        query = REMOTE_UPDATED_AT_QUERY.format(
            schema=identity.schema_name,
            tracking_table=quote_ident(self.config.tracking_table),
        )

        try:
            remote_rows = await self.gateway.execute(query, [remote_name], read_only=True)
        except GatewayError as e:
            if e.is_undefined_table:
                logger.warning(
                    f"No tracking table in schema {identity.schema_name}, "
                    f"update time of {remote_name} in {dbname} is unknown"
                )
                return dbname, None
            raise MetadataFetchError(e.message) from e

        return dbname, remote_rows[0]["updated_at"] if remote_rows else None

    async def _view_updated_at(
        self,
        identity: RelationIdentity,
        depth: int,
        ancestors: FrozenSet[int],
    ) -> Optional[datetime]:
        """Latest update time among the tables a view reads."""
        if depth >= self.config.max_view_depth:
            raise ViewRecursionError(
                f"view {identity.schema_name}.{identity.table_name} is nested more than "
                f"{self.config.max_view_depth} levels deep"
            )

        rows = await self._execute(VIEW_DEFINITION_QUERY, [identity.reloid])
        definition = rows[0]["definition"] if rows else None
        if not definition:
            return None

        statements = split_statements(definition)
        results = await gather_or_cancel(*(
            extract_tables(self.gateway, statement, self.config) for statement in statements
        ))
        refs: Set[TableRef] = set().union(*results)

        underlying = await self._resolve(refs, depth + 1, ancestors | {identity.reloid})
        timestamps = [table.updated_at for table in underlying if table.updated_at]
        return max(timestamps) if timestamps else None

    async def _execute(self, sql: str, params: list) -> List[Row]:
        """Run a catalog query, treating any database error as fatal."""
        try:
            return await self.gateway.execute(sql, params, read_only=True)
        except GatewayError as e:
            raise MetadataFetchError(e.message) from e


def _unquote_ident(name: str) -> str:
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        return name[1:-1].replace('""', '"')
    return name


async def resolve_tables(
    gateway: MetadataGateway,
    refs: Iterable[TableRef],
    config: Optional[AnalyzerConfig] = None,
) -> List[TableMetadata]:
    """
    Convenience function to resolve table references.

    Args:
        gateway: Database gateway
        refs: Table references as reported by the planner
        config: Analyzer configuration

    Returns:
        Resolved tables ordered by OID
    """
    return await MetadataResolver(gateway, config).resolve(refs)
