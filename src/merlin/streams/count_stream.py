"""Count stream: sums the integers produced by a driver."""

from __future__ import annotations

from contextlib import aclosing

from merlin.streams.base import Stream


class CountStream(Stream):
    """Reduces a sequence of counts to one total.

    Usage:
        total = await User.count({"active": True})
        removed = await User.remove({"active": False}).count()
    """

    async def count(self) -> int:
        total = 0
        async with aclosing(self._claim()) as counts:
            async for value in counts:
                total += int(value or 0)
        return total

    async def _aggregate(self) -> int:
        return await self.count()
