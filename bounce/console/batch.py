"""BOUNCE Batch Coordinator — sequential multi-item exports with per-item outcomes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from bounce.config import settings
from bounce.console.dispatcher import ItemResult

logger = structlog.get_logger()


async def run_batch(
    item_ids: Sequence[str],
    operation: Callable[[str], Awaitable[Any]],
    delay_s: float | None = None,
    label: str = "batch",
) -> list[ItemResult]:
    """Run ``operation`` for each id in order, pausing between items.

    A failing item is recorded and the batch moves on; completed items are
    never rolled back.
    """
    pause = settings.batch_delay_s if delay_s is None else delay_s
    results: list[ItemResult] = []

    for index, item_id in enumerate(item_ids):
        if index > 0 and pause > 0:
            await asyncio.sleep(pause)
        try:
            result = await operation(item_id)
        except Exception as exc:
            logger.warning(f"{label}_item_failed", item_id=item_id, error=str(exc))
            results.append(ItemResult(id=item_id, success=False, error=str(exc)))
            continue
        results.append(ItemResult(id=item_id, success=True, result=result))

    succeeded = sum(1 for r in results if r.success)
    logger.info(f"{label}_completed", succeeded=succeeded, total=len(results))
    return results
