"""Batch-boundary primitives for the reduce-cycle scheduler.

A Store never reduces inline.  It asks its scheduler to run one callback
"after the current synchronous call stack unwinds"; everything invoked
before that callback fires lands in the same reduce cycle.

Two implementations:
    - AsyncioScheduler: the event loop iteration is the tick
      (``loop.call_soon``).  This is the default.
    - ManualScheduler: an explicit work queue drained by ``tick()``, so the
      READY/QUEUED/REDUCING state machine can be driven deterministically.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable, Optional, Protocol

from restate.events.emitter import raise_collected

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class Scheduler(Protocol):
    """Protocol for deferring one callback past the current call stack."""

    def schedule(self, callback: Callback) -> None:
        ...


class AsyncioScheduler:
    """Defer callbacks to the next iteration of an asyncio event loop.

    Args:
        loop: Loop to schedule on.  When omitted, the loop running at
            schedule time is used, so a Store may be created before the
            loop starts.

    Exceptions raised by a callback are reported to the loop's exception
    handler, which is asyncio's own boundary for ``call_soon`` failures.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def schedule(self, callback: Callback) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_soon(callback)


class ManualScheduler:
    """An explicit queue of deferred callbacks, drained on demand.

    Usage:
        scheduler = ManualScheduler()
        store = Store({"count": 0}, scheduler=scheduler)
        store.set_state({"count": 1})
        scheduler.tick()        # runs the reduce cycle
    """

    def __init__(self) -> None:
        self._queue: deque[Callback] = deque()

    def schedule(self, callback: Callback) -> None:
        self._queue.append(callback)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def tick(self) -> int:
        """Run queued callbacks until the queue is empty.

        Callbacks queued while draining run in the same tick.  A failing
        callback does not stop the others; failures are re-raised once the
        queue is empty.

        Returns:
            The number of callbacks that ran.
        """
        ran = 0
        errors: list[Exception] = []
        while self._queue:
            callback = self._queue.popleft()
            ran += 1
            try:
                callback()
            except Exception as exc:
                logger.debug("Scheduled callback raised %r", exc)
                errors.append(exc)
        raise_collected(errors, f"{len(errors)} scheduled callbacks failed")
        return ran
