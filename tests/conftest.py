"""
Shared fixtures: an in-memory stand-in for a PostgreSQL catalog.

FakeGateway answers the queries the analyzer issues (EXPLAIN, identity
resolution, tracking tables, foreign table options, view definitions) from
plain Python data, so the whole pipeline runs without a database.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

import pytest

from pg_querytables.errors import SYNTAX_ERROR, UNDEFINED_TABLE, GatewayError
from pg_querytables.metadata.resolver import (
    FOREIGN_TABLE_QUERY,
    IDENTITY_QUERY,
    VIEW_DEFINITION_QUERY,
)
from pg_querytables.models import TableRef, quote_ident

EXPLAIN_PATTERN = re.compile(
    r"^EXPLAIN \(FORMAT JSON, VERBOSE\) SELECT \* FROM \((?P<statement>.*)\) AS \w+$",
    re.DOTALL,
)
# Line comments run to the end of the line, as in the server's lexer
LINE_COMMENT_PATTERN = re.compile(r"--[^\n]*")
REMOTE_TRACKING_PATTERN = re.compile(r"FROM (?P<schema>\S+)\.cdb_tablemetadata\s+WHERE tabname::text")


def ts(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass
class FakeRelation:
    reloid: int
    schema_name: str
    table_name: str
    relkind: str = "r"
    updated_at: Optional[datetime] = None
    # Foreign tables
    server_dbname: Optional[str] = None
    remote_schema: Optional[str] = None
    remote_table: Optional[str] = None
    # Views
    definition: Optional[str] = None


@dataclass
class FakeGateway:
    """Gateway over an in-memory catalog."""
    dbname: str = "localdb"
    relations: Dict[str, FakeRelation] = field(default_factory=dict)
    # statement -> tables the planner reports
    plans: Dict[str, List[TableRef]] = field(default_factory=dict)
    # schema -> {remote qualified name: updated_at}
    remote_tracking: Dict[str, Dict[str, datetime]] = field(default_factory=dict)
    # statements that are not queries (DDL, control)
    non_queries: Set[str] = field(default_factory=set)
    fail_with: Optional[GatewayError] = None
    queries: List[str] = field(default_factory=list)

    def add_relation(self, relation: FakeRelation) -> FakeRelation:
        self.relations[TableRef(relation.schema_name, relation.table_name).id_name] = relation
        return relation

    def add_plan(self, statement: str, *tables: str) -> None:
        self.plans[statement] = [TableRef(*name.split(".")) for name in tables]

    @property
    def explain_count(self) -> int:
        return sum(1 for q in self.queries if q.startswith("EXPLAIN"))

    async def execute(self, sql: str, params: Sequence[Any] = (), read_only: bool = True):
        self.queries.append(sql)
        assert read_only, "analysis queries must be read-only"
        if self.fail_with is not None:
            raise self.fail_with

        if sql.startswith("EXPLAIN"):
            explain = EXPLAIN_PATTERN.match(LINE_COMMENT_PATTERN.sub("", sql))
            if explain is None:
                raise GatewayError("syntax error at end of input", SYNTAX_ERROR)
            return self._explain(explain.group("statement").strip())
        if sql == IDENTITY_QUERY:
            return self._identities(params[0])
        if sql == FOREIGN_TABLE_QUERY:
            return self._foreign_options(params[0])
        if sql == VIEW_DEFINITION_QUERY:
            relation = self._by_oid(params[0])
            return [{"definition": relation.definition}] if relation else []
        if "tabname::oid" in sql:
            relation = self._by_oid(params[0])
            if relation and relation.updated_at:
                return [{"updated_at": relation.updated_at}]
            return []
        remote = REMOTE_TRACKING_PATTERN.search(sql)
        if remote:
            tracking = self.remote_tracking.get(remote.group("schema"))
            if tracking is None:
                raise GatewayError(
                    f'relation "{remote.group("schema")}.cdb_tablemetadata" does not exist',
                    UNDEFINED_TABLE,
                )
            updated_at = tracking.get(params[0])
            return [{"updated_at": updated_at}] if updated_at else []

        raise AssertionError(f"Unexpected query: {sql}")

    def _explain(self, statement: str):
        if statement in self.non_queries or statement not in self.plans:
            raise GatewayError('syntax error at or near "TABLE"', SYNTAX_ERROR)

        # Chain the scans under a single root to exercise nested plans
        node: Dict[str, Any] = {"Node Type": "Result"}
        root = node
        for ref in self.plans[statement]:
            child = {
                "Node Type": "Seq Scan",
                "Schema": ref.schema_name,
                "Relation Name": ref.table_name,
                "Alias": ref.table_name,
            }
            node["Plans"] = [child]
            node = child
        return [{"QUERY PLAN": json.dumps([{"Plan": root}])}]

    def _identities(self, id_names: List[str]):
        rows = []
        for id_name in id_names:
            relation = self.relations.get(id_name)
            if relation is None:
                raise GatewayError(f'relation "{id_name}" does not exist', UNDEFINED_TABLE)
            rows.append({
                "id_name": id_name,
                "reloid": relation.reloid,
                "schema_name": quote_ident(relation.schema_name),
                "table_name": quote_ident(relation.table_name),
                "relkind": relation.relkind,
                "local_dbname": self.dbname,
            })
        unique = {row["reloid"]: row for row in rows}
        return [unique[oid] for oid in sorted(unique)]

    def _foreign_options(self, reloid: int):
        relation = self._by_oid(reloid)
        if relation is None or relation.relkind != "f":
            return []
        return [{
            "dbname": relation.server_dbname,
            "remote_schema": relation.remote_schema,
            "remote_table": relation.remote_table,
        }]

    def _by_oid(self, reloid: int) -> Optional[FakeRelation]:
        for relation in self.relations.values():
            if relation.reloid == reloid:
                return relation
        return None


@pytest.fixture
def gateway():
    """Catalog with two local tables, a foreign table and views over them."""
    gw = FakeGateway(dbname="localdb")
    gw.add_relation(FakeRelation(16390, "public", "t2", updated_at=ts(1234567891)))
    gw.add_relation(FakeRelation(16385, "public", "t1", updated_at=ts(100000)))
    gw.add_relation(FakeRelation(
        16400, "remote_data", "ft", relkind="f",
        server_dbname="remotedb", remote_schema="public", remote_table="source_table",
    ))
    gw.add_relation(FakeRelation(
        16410, "public", "v_local", relkind="v",
        definition=" SELECT t1.a, t2.b\n   FROM t1 JOIN t2 USING (id);",
    ))
    gw.add_relation(FakeRelation(
        16420, "public", "v_nested", relkind="v",
        definition=" SELECT * FROM v_local;",
    ))
    gw.add_relation(FakeRelation(16430, "public", "untracked"))

    gw.add_plan("SELECT t1.a, t2.b\n   FROM t1 JOIN t2 USING (id)", "public.t1", "public.t2")
    gw.add_plan("SELECT * FROM v_local", "public.v_local")
    gw.remote_tracking["remote_data"] = {"public.source_table": ts(1500000000)}
    return gw
