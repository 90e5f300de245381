"""
Clock — the only place llamadeck waits.

Retry back-off and the status poll cadence both go through a Clock so tests
can drive time by hand instead of sleeping.
"""

from __future__ import annotations

import asyncio


class Clock:
    """Real wall clock backed by asyncio.sleep."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
