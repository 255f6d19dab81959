"""Reaction scheduling — the running-reaction slot, the pending set, the flush.

Uses a contextvar to know which reaction is running, so every tracked read
can be attributed to it.

Batching: mutations never run reactions directly. They add the dependent
reactions to a deduplicating pending set and, if no flush is scheduled yet,
schedule exactly one deferred flush. The flush snapshots the pending set and
runs each reaction once; reactions enqueued while it runs wait for the next
flush.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextvars
import functools
import logging
from collections import deque
from typing import TYPE_CHECKING, Callable, Hashable

if TYPE_CHECKING:
    from observa._registry import Registry, _Target
    from observa.reaction import Reaction

logger = logging.getLogger("observa.tracking")

Defer = Callable[[Callable[[], None]], object]

# The currently running reaction. Tracked reads register against it.
current_reaction: contextvars.ContextVar[Reaction | None] = contextvars.ContextVar(
    "current_reaction", default=None
)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Scheduler:
    """Owns the pending set and decides when reactions run."""

    def __init__(self, registry: Registry, defer: Defer | None = None) -> None:
        self._registry = registry
        self._defer = defer
        # Insertion-ordered set of reactions awaiting the next flush.
        self._pending: dict[Reaction, None] = {}
        # The snapshot being flushed right now, if any.
        self._in_flight: dict[Reaction, None] | None = None
        self._flush_scheduled = False
        # Deferred callbacks waiting for tick() when no event loop is running.
        self._ticks: deque[Callable[[], None]] = deque()

    # --- Running ---

    def running(self) -> Reaction | None:
        """The reaction currently running under this scheduler, if any."""
        reaction = current_reaction.get()
        # Tasks spawned during a run copy the context, and outlive the run.
        if reaction is not None and reaction._depth and reaction._runtime.scheduler is self:
            return reaction
        return None

    def track(self, target: _Target, key: Hashable) -> None:
        """Record a read of (target, key) against the running reaction."""
        reaction = self.running()
        if reaction is not None:
            self._registry.register(target, key, reaction)

    def run(self, reaction: Reaction) -> object:
        """Run reaction now, rebuilding its dependency edges from scratch."""
        self._registry.release(reaction)
        token = current_reaction.set(reaction)
        reaction._depth += 1
        try:
            return reaction._fn()
        finally:
            reaction._depth -= 1
            current_reaction.reset(token)

    # --- Queueing ---

    def enqueue(self, target: _Target, *keys: Hashable) -> None:
        """Queue every reaction depending on any of (target, key)."""
        for key in keys:
            self._registry.for_each_dependent(target, key, self._queue)

    def _queue(self, reaction: Reaction) -> None:
        if self._in_flight is not None and reaction in self._in_flight:
            return
        # Re-adding a pending reaction keeps its place.
        self._pending[reaction] = None
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        """Keep exactly one deferred flush outstanding."""
        if not self._flush_scheduled:
            self._flush_scheduled = True
            self.call_soon(self.flush)
        elif self._ticks and self._defer is None:
            # Scheduled before an event loop was running: the loop takes over.
            loop = _running_loop()
            if loop is not None:
                self._hand_over(loop)

    def unqueue(self, reaction: Reaction) -> None:
        """Drop reaction from the next flush, keeping its edges."""
        self._pending.pop(reaction, None)
        if self._in_flight is not None:
            self._in_flight.pop(reaction, None)

    def flush(self) -> None:
        """Run every pending reaction once.

        A failing reaction does not stop the others. One failure is re-raised
        after the pass; several are raised together as an ExceptionGroup.
        """
        self._flush_scheduled = False
        batch, self._pending = self._pending, {}
        if not batch:
            return
        logger.debug("Flushing %d reaction(s)", len(batch))
        errors: list[Exception] = []
        previous, self._in_flight = self._in_flight, batch
        try:
            for reaction in list(batch):
                # Unqueued by an earlier reaction in this pass.
                if reaction not in batch:
                    continue
                del batch[reaction]
                try:
                    self.run(reaction)
                except Exception as exc:
                    logger.debug("%r failed during flush", reaction, exc_info=True)
                    errors.append(exc)
        finally:
            self._in_flight = previous
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise ExceptionGroup("reactions failed during flush", errors)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def reset(self) -> None:
        """Forget pending reactions and queued callbacks. For tests."""
        self._pending.clear()
        self._ticks.clear()
        self._flush_scheduled = False

    # --- Deferral ---

    def set_defer(self, defer: Defer | None) -> None:
        self._defer = defer

    def call_soon(self, callback: Callable[[], None]) -> None:
        """Run callback once, after the current synchronous work.

        Uses the installed deferral primitive, else the running asyncio loop,
        else the tick queue drained by tick(). Callbacks always run in a fresh
        context, so no reaction is current when they start.
        """
        callback = functools.partial(contextvars.Context().run, callback)
        if self._defer is not None:
            self._defer(callback)
            return
        loop = _running_loop()
        if loop is None:
            self._ticks.append(callback)
        else:
            self._hand_over(loop)
            loop.call_soon(callback)

    def _hand_over(self, loop: asyncio.AbstractEventLoop) -> None:
        """Move callbacks parked before the loop started onto it, in order."""
        while self._ticks:
            loop.call_soon(self._ticks.popleft())

    def tick(self) -> int:
        """Run the deferred callbacks queued so far. Returns how many ran.

        Callbacks queued while these run wait for the next tick(). If one
        raises, the rest stay queued.
        """
        ran = 0
        for _ in range(len(self._ticks)):
            # Emptied early if a callback handed the queue to an event loop.
            if not self._ticks:
                break
            self._ticks.popleft()()
            ran += 1
        return ran

    def next_tick(self, fn: Callable[[], object] | None = None):
        """Schedule fn after current synchronous work; return a future of its result."""
        loop = _running_loop()
        if loop is None:
            future = concurrent.futures.Future()
        else:
            future = loop.create_future()

        def _resolve() -> None:
            if future.cancelled():
                return
            try:
                result = fn() if fn is not None else None
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

        self.call_soon(_resolve)
        return future
