"""
Gateway protocol between the analysis core and the database.

The core only needs to run a statement and read its rows back; every gateway
implementation must raise GatewayError carrying the SQLSTATE of the failure.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Protocol, Sequence


Row = Mapping[str, Any]


class MetadataGateway(Protocol):
    """Executes SQL against the database that owns the analyzed tables."""

    async def execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        read_only: bool = True,
    ) -> List[Row]:
        """
        Run a statement and return its rows.

        Args:
            sql: Statement text, using $1, $2... placeholders
            params: Values bound to the placeholders
            read_only: Run inside a read-only transaction

        Returns:
            Rows as mappings keyed by column name

        Raises:
            GatewayError: The database reported an error
        """
        ...
