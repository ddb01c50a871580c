"""
Admission control for batch deal creation.

Batches are executed one file at a time; a PacingPolicy decides how long to
wait between admitted items. FixedPacing reproduces the constant inter-item
delay. Other policies can be swapped in without touching the batch loop.
"""

import asyncio
from typing import Awaitable, Callable

from DSC_Storage.dsc_shared import config


class PacingPolicy:
    """Decides the delay before admitting the next batch item."""

    def delay_before(self, index: int) -> float:
        raise NotImplementedError

    async def admit(self, index: int) -> None:
        delay = self.delay_before(index)
        if delay > 0:
            await asyncio.sleep(delay)


class FixedPacing(PacingPolicy):
    """Constant delay between consecutive items, none before the first."""

    def __init__(self, interval: float = config.BATCH_PACING_SECONDS):
        if interval < 0:
            raise ValueError(f"Negative pacing interval: {interval}")
        self.interval = interval

    def delay_before(self, index: int) -> float:
        return 0.0 if index == 0 else self.interval


class NoPacing(PacingPolicy):
    def delay_before(self, index: int) -> float:
        return 0.0


async def run_paced(
    items: list,
    action: Callable[[object], Awaitable[object]],
    policy: PacingPolicy,
) -> list:
    """Run ``action`` for each item in order, admitting through ``policy``.

    The first failure stops the batch and propagates.
    """
    results = []
    for index, item in enumerate(items):
        await policy.admit(index)
        results.append(await action(item))
    return results
