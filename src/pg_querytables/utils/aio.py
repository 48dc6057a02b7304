"""
Asyncio helpers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, List

logger = logging.getLogger(__name__)


async def gather_or_cancel(*aws: Awaitable[Any]) -> List[Any]:
    """
    Run awaitables concurrently, cancelling the rest as soon as one fails.

    Unlike a bare asyncio.gather, no sibling is still running or unreaped when
    the first failure propagates.

    Args:
        *aws: Coroutines or futures to run

    Returns:
        Results in the order of aws

    Raises:
        Exception: The first failure among aws, once the rest are cancelled
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug(f"Cancelled {len(pending)} pending lookups after a failure")
        # Retrieve every outcome so none is reported as never retrieved
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
