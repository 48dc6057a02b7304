"""
Core data models for the pg_querytables package.

Defines the records that flow through each resolution stage (planner reference,
resolved identity, enriched table metadata) and the analyzer configuration.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

SIMPLE_IDENTIFIER = re.compile(r"[a-z_][a-z0-9_$]*")


def quote_ident(name: str) -> str:
    """Quote an identifier unless it is a plain lowercase name."""
    if SIMPLE_IDENTIFIER.fullmatch(name):
        return name
    return '"' + name.replace('"', '""') + '"'


class RelationKind(str, Enum):
    """Kind of a resolved relation, using pg_class.relkind codes."""
    TABLE = "r"
    VIEW = "v"
    MATERIALIZED_VIEW = "m"
    FOREIGN_TABLE = "f"

    @classmethod
    def from_relkind(cls, relkind: str) -> RelationKind:
        """Map a pg_class.relkind value; partitioned tables count as tables."""
        if relkind == "p":
            return cls.TABLE
        return cls(relkind)

    @property
    def is_view(self) -> bool:
        return self in (RelationKind.VIEW, RelationKind.MATERIALIZED_VIEW)


@dataclass(frozen=True)
class TableRef:
    """A relation as reported by the query planner, before resolution."""
    schema_name: str
    table_name: str

    @property
    def id_name(self) -> str:
        """Quote-escaped qualified name, suitable for a ::regclass cast."""
        return f"{quote_ident(self.schema_name)}.{quote_ident(self.table_name)}"


@dataclass(frozen=True)
class RelationIdentity:
    """Result of identity resolution for a single relation."""
    id_name: str
    reloid: int
    schema_name: str
    table_name: str
    relkind: RelationKind
    local_dbname: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> RelationIdentity:
        return cls(
            id_name=row["id_name"],
            reloid=int(row["reloid"]),
            schema_name=row["schema_name"],
            table_name=row["table_name"],
            relkind=RelationKind.from_relkind(row["relkind"]),
            local_dbname=row["local_dbname"],
        )

    def to_metadata(self, dbname: str, updated_at: Optional[datetime]) -> TableMetadata:
        return TableMetadata(
            dbname=dbname,
            schema_name=self.schema_name,
            table_name=self.table_name,
            updated_at=updated_at,
            relkind=self.relkind,
            reloid=self.reloid,
            id_name=self.id_name,
        )


@dataclass(frozen=True)
class TableMetadata:
    """Fully resolved metadata for a table a query depends on."""
    dbname: str
    schema_name: str
    table_name: str
    updated_at: Optional[datetime] = None
    relkind: RelationKind = RelationKind.TABLE
    reloid: int = 0
    id_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        """Return schema-qualified table name."""
        return f"{self.schema_name}.{self.table_name}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "dbname": self.dbname,
            "schema_name": self.schema_name,
            "table_name": self.table_name,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "relkind": self.relkind.value,
            "reloid": self.reloid,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TableMetadata:
        """Create from dictionary."""
        updated_at = data.get("updated_at")
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return cls(
            dbname=data["dbname"],
            schema_name=data["schema_name"],
            table_name=data["table_name"],
            updated_at=updated_at,
            relkind=RelationKind.from_relkind(data.get("relkind", "r")),
            reloid=data.get("reloid", 0),
            id_name=data.get("id_name"),
        )


@dataclass
class AnalyzerConfig:
    """Settings for table extraction and metadata resolution."""
    # Table holding per-relation modification times
    tracking_schema: str = "cartodb"
    tracking_table: str = "cdb_tablemetadata"

    # Bound on nested view resolution
    max_view_depth: int = 16

    # Intermediate tables generated by cached analyses
    derived_table_pattern: str = r"^analysis_[0-9a-f]{10}_[0-9a-f]{40}$"

    # Alias for the sub-select wrapping an EXPLAINed statement
    plan_alias: str = "_querytables_subquery"

    # Gateway pool sizing
    pool_min_size: int = 1
    pool_max_size: int = 4

    def __post_init__(self):
        if self.max_view_depth < 1:
            raise ValueError(f"max_view_depth must be positive, got {self.max_view_depth}")

    @property
    def tracking_relation(self) -> str:
        return f"{quote_ident(self.tracking_schema)}.{quote_ident(self.tracking_table)}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AnalyzerConfig:
        """Create from dictionary, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        unknown = set(data) - set(known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {sorted(unknown)}")
        return cls(**known)


def load_config(path: Optional[Path] = None) -> AnalyzerConfig:
    """Load analyzer configuration from a YAML file."""
    if path is None:
        return AnalyzerConfig()

    path = Path(path)
    if not path.exists():
        logger.warning(f"Config file not found: {path}")
        return AnalyzerConfig()

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    logger.info(f"Loaded analyzer configuration from {path}")
    return AnalyzerConfig.from_dict(data.get("querytables", data))
