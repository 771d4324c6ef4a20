"""Cooperative countdown for active recordings."""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RecordingTimer:
    """Counts whole elapsed seconds and fires once when the maximum is reached.

    Ticks are scheduled on an asyncio event loop against absolute deadlines
    (start + n seconds), so a late tick does not push later ones back.
    """

    TICK_SECONDS = 1.0

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None,
                 ending_soon_seconds: int = 5):
        """Initialize timer.

        Args:
            loop: Event loop used for scheduling; defaults to the running loop at start()
            ending_soon_seconds: Remaining time at or below which ``ending_soon`` is true
        """
        self._loop = loop
        self.ending_soon_seconds = ending_soon_seconds

        self.elapsed_seconds = 0
        self.max_seconds = 0
        self._running = False
        self._fired = False
        self._handle: Optional[asyncio.Handle] = None
        self._started_at = 0.0
        self._active_loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_max_reached: Optional[Callable[[], None]] = None
        self._on_tick: Optional[Callable[[int], None]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def remaining_seconds(self) -> int:
        return max(0, self.max_seconds - self.elapsed_seconds)

    @property
    def ending_soon(self) -> bool:
        return self._running and self.remaining_seconds <= self.ending_soon_seconds

    def start(self, max_seconds: int, on_max_reached: Callable[[], None],
              on_tick: Optional[Callable[[int], None]] = None) -> None:
        """Reset the counter to 0 and begin ticking once per second.

        Args:
            max_seconds: Elapsed seconds at which ``on_max_reached`` fires
            on_max_reached: Invoked exactly once when the maximum is reached
            on_tick: Optional callback receiving the elapsed seconds after each tick
        """
        if max_seconds <= 0:
            raise ValueError("max_seconds must be positive")

        self.stop()
        self.elapsed_seconds = 0
        self.max_seconds = max_seconds
        self._fired = False
        self._on_max_reached = on_max_reached
        self._on_tick = on_tick

        self._active_loop = self._loop or asyncio.get_running_loop()
        self._started_at = self._active_loop.time()
        self._running = True
        self._schedule_next()
        logger.debug(f"Recording timer started (max {max_seconds}s)")

    def stop(self) -> None:
        """Cancel the recurring tick. Idempotent."""
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def tick(self) -> None:
        """Advance one second; fires the max-reached callback at most once."""
        self._handle = None
        if not self._running:
            return

        self.elapsed_seconds += 1
        if self._on_tick:
            self._on_tick(self.elapsed_seconds)
        # on_tick may have stopped the timer (e.g. a device error)
        if not self._running:
            return

        if self.elapsed_seconds >= self.max_seconds:
            self._running = False
            if not self._fired:
                self._fired = True
                logger.info(f"Maximum recording time reached ({self.max_seconds}s)")
                self._on_max_reached()
            return

        self._schedule_next()

    def _schedule_next(self) -> None:
        deadline = self._started_at + (self.elapsed_seconds + 1) * self.TICK_SECONDS
        self._handle = self._active_loop.call_at(deadline, self.tick)
