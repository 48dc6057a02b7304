"""
Plan-based table extraction.

Rather than parsing SQL, asks the PostgreSQL planner which relations a statement
reads: the statement is wrapped in a sub-select, EXPLAINed as JSON and the plan
tree is walked for Schema / Relation Name pairs.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from pg_querytables.errors import GatewayError, MetadataFetchError, PlanFormatError
from pg_querytables.models import AnalyzerConfig, TableRef

if TYPE_CHECKING:
    from pg_querytables.metadata.gateway import MetadataGateway

logger = logging.getLogger(__name__)

# Plans nest far less than this; deeper input is not a plan the server produced
MAX_PLAN_DEPTH = 256


def build_explain_query(statement: str, alias: str) -> str:
    """
    Wrap a statement so that only a single read-only query can be planned.

    The closing parenthesis goes on its own line so that a trailing line
    comment in the statement cannot swallow it.
    """
    return f"EXPLAIN (FORMAT JSON, VERBOSE) SELECT * FROM ({statement}\n) AS {alias}"


def tables_from_plan(plan: Dict[str, Any], depth: int = 0) -> Set[TableRef]:
    """
    Collect relation references from a plan node and its children.

    Args:
        plan: A plan node as produced by EXPLAIN (FORMAT JSON)
        depth: Current nesting level

    Returns:
        Set of tables scanned by the node or any of its descendants
    """
    if depth > MAX_PLAN_DEPTH:
        raise PlanFormatError(f"execution plan nested deeper than {MAX_PLAN_DEPTH} levels")
    if not isinstance(plan, dict):
        raise PlanFormatError(f"unexpected plan node: {plan!r}")

    tables: Set[TableRef] = set()
    schema = plan.get("Schema")
    relation = plan.get("Relation Name")
    if schema and relation:
        tables.add(TableRef(schema_name=schema, table_name=relation))

    for child in plan.get("Plans", []):
        tables |= tables_from_plan(child, depth + 1)

    return tables


def parse_explain_output(payload: Any) -> List[Dict[str, Any]]:
    """Return the top-level plans of an EXPLAIN (FORMAT JSON) result value."""
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise PlanFormatError(f"execution plan is not valid JSON: {e}") from e

    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise PlanFormatError(f"unexpected execution plan: {payload!r}")

    plans = []
    for entry in payload:
        if not isinstance(entry, dict) or "Plan" not in entry:
            raise PlanFormatError(f"unexpected execution plan entry: {entry!r}")
        plans.append(entry["Plan"])
    return plans


async def extract_tables(
    gateway: MetadataGateway,
    statement: str,
    config: Optional[AnalyzerConfig] = None,
) -> Set[TableRef]:
    """
    Get the tables a single statement reads, as seen by the planner.

    Statements that cannot be wrapped in a sub-select (DDL, transaction
    control...) fail with a syntax error and yield no tables.

    Args:
        gateway: Database gateway
        statement: One SQL statement, without trailing semicolon
        config: Analyzer configuration

    Returns:
        Set of referenced tables
    """
    config = config or AnalyzerConfig()
    query = build_explain_query(statement, config.plan_alias)

    try:
        rows = await gateway.execute(query, read_only=True)
    except GatewayError as e:
        if e.is_syntax_error:
            logger.debug(f"Statement cannot be planned as a query, skipping: {statement[:80]}")
            return set()
        raise MetadataFetchError(e.message) from e

    tables: Set[TableRef] = set()
    for row in rows:
        # A single column, named "QUERY PLAN"
        for payload in row.values():
            for plan in parse_explain_output(payload):
                tables |= tables_from_plan(plan)

    logger.debug(f"Planner reports {len(tables)} tables for statement")
    return tables
