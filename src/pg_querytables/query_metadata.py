"""
Cache identity of an analyzed query.

QueryMetadataModel aggregates the resolved tables a query depends on and
derives the values used to cache and invalidate its results: the cache
channel, per-table surrogate keys and the last modification time.
"""

from __future__ import annotations

import base64
import hashlib
import re
from collections import OrderedDict
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pg_querytables.models import AnalyzerConfig, TableMetadata

KEY_NAMESPACE = "t"
KEY_HASH_LENGTH = 6


def short_hash_key(target: str) -> str:
    """First characters of the URL-safe base64 SHA-256 digest of target."""
    digest = hashlib.sha256(target.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:KEY_HASH_LENGTH]


class QueryMetadataModel:
    """
    Immutable set of tables a query depends on, in resolution order.

    Tables without a known update time can be left out of every derivation with
    skip_unresolved, so that a cache entry is never keyed on a table whose
    changes nobody tracks.
    """

    def __init__(
        self,
        tables: Iterable[TableMetadata],
        derived_table_pattern: Optional[str] = None,
    ):
        self._tables = tuple(tables)
        pattern = derived_table_pattern or AnalyzerConfig.derived_table_pattern
        self._derived_table_re = re.compile(pattern)

    @property
    def tables(self) -> tuple:
        return self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[TableMetadata]:
        return iter(self._tables)

    def __repr__(self) -> str:
        return f"QueryMetadataModel({self.get_cache_channel()!r})"

    def get_tables(
        self,
        skip_unresolved: bool = False,
        skip_derived_tables: bool = False,
    ) -> List[TableMetadata]:
        """
        Get the tables, optionally filtered.

        Args:
            skip_unresolved: Leave out tables without an update time
            skip_derived_tables: Leave out intermediate tables generated by
                cached analyses

        Returns:
            Tables in resolution order
        """
        tables = list(self._tables)
        if skip_unresolved:
            tables = [t for t in tables if t.updated_at]
        if skip_derived_tables:
            tables = [t for t in tables if not self._derived_table_re.search(t.table_name)]
        return tables

    def get_cache_channel(self, skip_unresolved: bool = False) -> str:
        """
        Return the cache channel: tables grouped by owning database.

        Format: db1:schema.table,schema.table;;db2:schema.table
        """
        grouped: "OrderedDict[str, List[str]]" = OrderedDict()
        for table in self.get_tables(skip_unresolved=skip_unresolved):
            grouped.setdefault(table.dbname, []).append(table.full_name)

        return ";;".join(
            f"{dbname}:{','.join(names)}" for dbname, names in grouped.items()
        )

    def get_last_updated_at(self, fallback: Any = 0) -> Any:
        """
        Get the latest update time among all tables.

        Args:
            fallback: Returned when no table has a known update time

        Returns:
            Latest updated_at, or fallback
        """
        known = [t.updated_at for t in self._tables if t.updated_at]
        return max(known) if known else fallback

    def key(self, skip_unresolved: bool = False) -> List[str]:
        """
        Get surrogate keys, one per table, in table order.

        Each key is the namespace followed by a short hash of
        dbname:table_name.schema_name.
        """
        return [
            f"{KEY_NAMESPACE}:{short_hash_key(f'{t.dbname}:{t.table_name}.{t.schema_name}')}"
            for t in self.get_tables(skip_unresolved=skip_unresolved)
        ]

    def to_dict(self, skip_unresolved: bool = False) -> Dict[str, Any]:
        """Summarize the cache identity for serialization."""
        last_updated_at = self.get_last_updated_at(None)
        return {
            "cache_channel": self.get_cache_channel(skip_unresolved),
            "surrogate_keys": self.key(skip_unresolved),
            "last_updated_at": last_updated_at.isoformat() if last_updated_at else None,
            "tables": [t.to_dict() for t in self.get_tables(skip_unresolved)],
        }
