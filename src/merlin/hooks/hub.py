"""Named-event hub used for model, orchestrator and pipeline hooks.

Handlers registered under one name always run one at a time, in
registration order. ``emit`` is the fire-and-forget form; ``trigger`` is
the awaited form that lets handlers be coroutines and stops at the
first failure.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from merlin.errors import HookError

logger = logging.getLogger(__name__)

HookHandler = Callable[..., Any]
HookWorker = Callable[[str, HookHandler], Awaitable[None] | None]


class HookHub:
    """Registry of hook handlers keyed by hook name.

    Example:
        hub = HookHub()
        hub.on("afterFind", lambda record, opts: record.setdefault("seen", True))
        await hub.trigger("afterFind", record, opts)
    """

    def __init__(self) -> None:
        self._hook_handlers: dict[str, list[HookHandler]] = {}

    def on(self, hook_name: str, handler: HookHandler) -> None:
        """Register a handler. The same handler may be added more than once."""
        self._hook_handlers.setdefault(hook_name, []).append(handler)

    def off(self, hook_name: str, handler: HookHandler) -> bool:
        """Remove the first registration of ``handler`` for ``hook_name``.

        The hook name is dropped once its last handler is removed.

        Returns:
            True if a handler was removed
        """
        handlers = self._hook_handlers.get(hook_name)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._hook_handlers[hook_name]
        return True

    def get_hook_handlers(
        self, hook_name: str | None = None
    ) -> list[HookHandler] | dict[str, list[HookHandler]]:
        """Copy of the handlers for one hook, or of the whole registry."""
        if hook_name is None:
            return {name: list(handlers) for name, handlers in self._hook_handlers.items()}
        return list(self._hook_handlers.get(hook_name, []))

    def has_hook_handlers(self, hook_name: str) -> bool:
        return bool(self._hook_handlers.get(hook_name))

    def emit(self, hook_name: str, *args: Any) -> None:
        """Call every handler synchronously.

        Exceptions propagate to the caller and stop the remaining handlers.

        Raises:
            HookError: If a handler returns an awaitable; use trigger()
        """
        for handler in list(self._hook_handlers.get(hook_name, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise HookError(
                    f"Handler for '{hook_name}' returned an awaitable from emit(); "
                    "asynchronous handlers must be run with trigger()"
                )

    async def trigger(self, hook_name: str, *args: Any) -> None:
        """Run handlers in sequence, awaiting asynchronous ones.

        The first handler to raise stops the chain; its exception is
        re-raised unchanged.
        """
        handlers = self._hook_handlers.get(hook_name)
        if not handlers:
            return
        logger.debug("Running %d handler(s) for '%s'", len(handlers), hook_name)
        for handler in list(handlers):
            await _invoke(handler, *args)

    async def for_each_hook_handler(
        self, worker: HookWorker, hook_name: str | None = None
    ) -> None:
        """Call ``worker(name, handler)`` for registered handlers, in sequence.

        Without a hook name every registered hook is visited, in the order
        the names were first registered.
        """
        if hook_name is None:
            names = list(self._hook_handlers)
        else:
            names = [hook_name]
        for name in names:
            for handler in list(self._hook_handlers.get(name, [])):
                await _invoke(worker, name, handler)


async def _invoke(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
