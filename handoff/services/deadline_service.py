# handoff/services/deadline_service.py
from __future__ import annotations

import asyncio
import itertools
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Set

from handoff.enums import DeadlineState
from utils.logger import logger as default_logger
from utils.time import as_utc, seconds_until

DeadlineAction = Callable[[], Awaitable[None]]

_seq = itertools.count(1)


class DeadlineHandle:
    """Owning reference to one scheduled action. Only DeadlineService mutates it."""

    __slots__ = ("id", "trade_id", "fire_at", "state", "_timer", "_task")

    def __init__(self, trade_id: str, fire_at: datetime) -> None:
        self.id = next(_seq)
        self.trade_id = trade_id
        self.fire_at = fire_at
        self.state = DeadlineState.ARMED
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self.state is DeadlineState.ARMED

    def __repr__(self) -> str:
        return f"DeadlineHandle(id={self.id}, trade_id={self.trade_id}, fire_at={self.fire_at.isoformat()}, state={self.state.value})"


class DeadlineService:
    """
    Per-trade timers on the running event loop.

    ``arm`` returns a handle the caller stores; ``disarm`` takes that handle
    back. Disarming is idempotent and safe on fired or already disarmed
    handles. Actions run as tasks; their exceptions are logged, never raised.
    """

    def __init__(self, logger=None) -> None:
        self._log = logger or default_logger
        self._armed: Dict[int, DeadlineHandle] = {}
        self._running: Set[asyncio.Task] = set()

    def arm(self, trade_id: str, fire_at: datetime, action: DeadlineAction) -> DeadlineHandle:
        loop = asyncio.get_running_loop()
        fire_at = as_utc(fire_at)
        handle = DeadlineHandle(trade_id, fire_at)
        delay = max(0.0, seconds_until(fire_at))
        handle._timer = loop.call_later(delay, self._fire, handle, action)
        self._armed[handle.id] = handle
        self._log.debug(f"Deadline armed trade={trade_id} fire_at={fire_at.isoformat()} in={delay:.1f}s")
        return handle

    def disarm(self, handle: Optional[DeadlineHandle]) -> bool:
        """Cancel a pending firing. Returns True only if it was still armed."""
        if handle is None or not handle.armed:
            return False
        handle.state = DeadlineState.DISARMED
        if handle._timer is not None:
            handle._timer.cancel()
            handle._timer = None
        self._armed.pop(handle.id, None)
        self._log.debug(f"Deadline disarmed trade={handle.trade_id}")
        return True

    def disarm_all(self) -> int:
        handles = list(self._armed.values())
        return sum(1 for h in handles if self.disarm(h))

    def pending(self) -> int:
        return len(self._armed)

    async def wait_fired(self) -> None:
        """Await actions that already started (tests, shutdown)."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def _fire(self, handle: DeadlineHandle, action: DeadlineAction) -> None:
        if not handle.armed:
            return
        handle.state = DeadlineState.FIRED
        handle._timer = None
        self._armed.pop(handle.id, None)
        self._log.debug(f"Deadline fired trade={handle.trade_id}")
        task = asyncio.get_running_loop().create_task(self._run(handle, action))
        handle._task = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, handle: DeadlineHandle, action: DeadlineAction) -> None:
        try:
            await action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.exception(f"Deadline action for trade {handle.trade_id} failed: {e}")
