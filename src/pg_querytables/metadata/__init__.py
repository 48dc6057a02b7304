"""
Metadata resolution against the PostgreSQL catalog.

Provides the gateway protocol, its asyncpg implementation and the resolver
that turns table references into TableMetadata.
"""

from pg_querytables.metadata.gateway import MetadataGateway
from pg_querytables.metadata.postgres import PostgresGateway
from pg_querytables.metadata.resolver import MetadataResolver, resolve_tables

__all__ = [
    "MetadataGateway",
    "PostgresGateway",
    "MetadataResolver",
    "resolve_tables",
]
