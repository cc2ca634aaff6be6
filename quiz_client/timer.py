"""
Countdown timer with single-fire expiry.
"""

import asyncio
import time
from typing import Callable, Optional

from quiz_client.logger import setup_logger

logger = setup_logger(__name__)


class CountdownTimer:
    """
    One-shot countdown that invokes a callback once the deadline passes.

    Remaining time is always derived from the wall-clock deadline, never from
    the number of ticks seen, so a suspended or starved event loop still
    fires as soon as it gets to run again after the true deadline.
    """

    def __init__(
        self,
        tick_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            tick_interval: Upper bound on how long the timer sleeps between
                deadline checks, in seconds.
            clock: Wall-clock source (seconds since epoch).
        """
        self.tick_interval = tick_interval
        self._clock = clock
        self.start_time: Optional[float] = None
        self.duration: float = 0.0
        self._deadline: Optional[float] = None
        self._last_remaining: float = 0.0
        self._on_expire: Optional[Callable[[], None]] = None
        self._task: Optional[asyncio.Task] = None
        self._fired = False

    @property
    def is_armed(self) -> bool:
        return self._deadline is not None

    @property
    def expired(self) -> bool:
        return self._fired

    def arm(self, duration: float, on_expire: Callable[[], None]) -> None:
        """
        Start counting down. Must be called from a running event loop.

        The caller is responsible for cancelling a previous countdown first.
        """
        self.start_time = self._clock()
        self.duration = max(0.0, float(duration))
        self._deadline = self.start_time + self.duration
        self._last_remaining = self.duration
        self._on_expire = on_expire
        self._fired = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"⏱️  Timer armed ({self.duration:.0f}s)")

    def cancel(self) -> None:
        """Stop the countdown. The expiry callback will not be invoked."""
        if self._deadline is not None:
            # Freeze the display value at the moment of cancellation
            self.remaining()
        self._deadline = None
        self._on_expire = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("⏹️  Timer cancelled")
        self._task = None

    def elapsed(self) -> float:
        """Return elapsed seconds since the timer was armed."""
        if self.start_time is None:
            return 0.0
        return max(0.0, self._clock() - self.start_time)

    def remaining(self) -> float:
        """Return seconds left. Never increases while armed."""
        if self._deadline is None:
            return self._last_remaining
        left = max(0.0, self._deadline - self._clock())
        # Clock stepping backwards must not make the countdown grow
        self._last_remaining = min(self._last_remaining, left)
        return self._last_remaining

    async def _run(self) -> None:
        while self._deadline is not None:
            left = self.remaining()
            if left <= 0.0:
                self._fire()
                return
            await asyncio.sleep(min(self.tick_interval, left))

    def _fire(self) -> None:
        callback = self._on_expire
        self._deadline = None
        self._on_expire = None
        self._task = None
        if self._fired or callback is None:
            return
        self._fired = True
        logger.info("⌛ Timer expired")
        callback()
