"""Merlin hook system.

Models and the orchestrator are hook hubs. Model lifecycle hook points:
- query: synchronous, receives the raw filter before it is parsed
- beforeFind / afterFind: around driver reads (afterFind once per record)
- beforeInsert / afterInsert: around driver inserts (once per record)
- beforeUpdate / afterUpdate, beforeRemove / afterRemove: around writes
- beforeCount / afterCount: around counts
- index: synchronous, before an index is created

Usage:
    from merlin.hooks import HookHub

    async def stamp(record, opts):
        record["loadedAt"] = time.time()

    User.on("afterFind", stamp)
"""

from merlin.hooks.hub import HookHandler, HookHub

__all__ = [
    "HookHandler",
    "HookHub",
]
