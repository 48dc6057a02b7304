"""
Discovery of the tables a SQL query reads.

Statements are split on top-level semicolons and each one is handed to the
PostgreSQL planner; the tables come from the resulting execution plan rather
than from parsing SQL.
"""

from pg_querytables.discovery.statement_splitter import split_statements
from pg_querytables.discovery.plan_extractor import extract_tables, tables_from_plan

__all__ = [
    "split_statements",
    "extract_tables",
    "tables_from_plan",
]
