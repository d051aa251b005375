from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

from .clock import TimeClock
from .timeutil import utc_now

WARN_DELAY_SECONDS = 150.0
KICK_DELAY_SECONDS = 300.0

WARNING_MESSAGE = (
    "You left voice while clocked in. Rejoin within 2.5 minutes or you will be clocked out."
)
FORCED_MESSAGE = "You were automatically clocked out for staying out of voice."

Notifier = Callable[[str, str], Awaitable[None]]

PRESENCE_LOST = "lost"
PRESENCE_RESTORED = "restored"


def in_tracked_channel(channel_id: int | None, tracked_id: int | None) -> bool:
    """No tracked channel configured means any voice channel counts."""
    if channel_id is None:
        return False
    return tracked_id is None or channel_id == tracked_id


def voice_transition(before_id: int | None, after_id: int | None, tracked_id: int | None) -> str | None:
    was_present = in_tracked_channel(before_id, tracked_id)
    is_present = in_tracked_channel(after_id, tracked_id)
    if was_present and not is_present:
        return PRESENCE_LOST
    if is_present and not was_present:
        return PRESENCE_RESTORED
    return None


class PresenceMonitor:
    """Clocks out members who stay away from voice while clocked in.

    Every armed guard lives in one registry keyed by user id, so a repeated
    departure replaces the running guard instead of stacking a second one.
    """

    def __init__(
        self,
        clock: TimeClock,
        is_present: Callable[[str], bool],
        notify: Notifier,
        *,
        warn_delay: float = WARN_DELAY_SECONDS,
        kick_delay: float = KICK_DELAY_SECONDS,
        now_fn: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        if not 0 <= warn_delay <= kick_delay:
            raise ValueError("warn_delay must be between 0 and kick_delay")

        self.clock = clock
        self.is_present = is_present
        self.notify = notify
        self.warn_delay = warn_delay
        self.kick_delay = kick_delay
        self.now_fn = now_fn
        self.logger = logger or logging.getLogger(__name__)
        self._timers: dict[str, asyncio.Task] = {}
        self._departed_at: dict[str, datetime] = {}

    def pending(self) -> set[str]:
        return set(self._timers)

    def departed_at(self, user_id: str) -> datetime | None:
        return self._departed_at.get(user_id)

    def on_presence_lost(self, user_id: str, now: datetime | None = None) -> bool:
        if not self.clock.is_clocked_in(user_id):
            return False

        self.cancel(user_id)
        lost_at = now or self.now_fn()
        self._departed_at[user_id] = lost_at
        task = asyncio.get_running_loop().create_task(self._guard(user_id))
        self._timers[user_id] = task
        self.logger.info("Presence lost: user=%s at=%s", user_id, lost_at.isoformat())
        return True

    def handle_voice_move(
        self,
        user_id: str,
        before_id: int | None,
        after_id: int | None,
        tracked_id: int | None,
        now: datetime | None = None,
    ) -> str | None:
        transition = voice_transition(before_id, after_id, tracked_id)
        if transition == PRESENCE_LOST:
            self.on_presence_lost(user_id, now)
        elif transition == PRESENCE_RESTORED:
            self.on_presence_restored(user_id)
        return transition

    def on_presence_restored(self, user_id: str) -> bool:
        cancelled = self.cancel(user_id)
        if cancelled:
            self.logger.info("Presence restored: user=%s", user_id)
        return cancelled

    def cancel(self, user_id: str) -> bool:
        self._departed_at.pop(user_id, None)
        task = self._timers.pop(user_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for user_id in list(self._timers):
            self.cancel(user_id)

    async def _guard(self, user_id: str) -> None:
        task = asyncio.current_task()
        try:
            await asyncio.sleep(self.warn_delay)
            await self._send(user_id, WARNING_MESSAGE)

            await asyncio.sleep(self.kick_delay - self.warn_delay)

            # The member may have rejoined and left again since the first event.
            if self.is_present(user_id):
                self.logger.info("Forced clock-out skipped, user=%s is present", user_id)
                return

            try:
                log = self.clock.force_clock_out(user_id, self.now_fn(), reason="left voice")
            except Exception:
                self.logger.exception("Forced clock-out failed for user=%s", user_id)
                return

            if log is not None:
                await self._send(user_id, FORCED_MESSAGE)
        finally:
            if self._timers.get(user_id) is task:
                self._timers.pop(user_id, None)
                self._departed_at.pop(user_id, None)

    async def _send(self, user_id: str, message: str) -> None:
        try:
            await self.notify(user_id, message)
        except Exception:
            # Closed DMs are common; the guard must keep running.
            self.logger.warning("Could not notify user=%s", user_id, exc_info=True)
