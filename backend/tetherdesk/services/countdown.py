from __future__ import annotations

import asyncio
import math
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional

TICK_SECONDS = 1.0


def as_naive_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes, Postgres aware ones; compare everything as naive UTC."""

    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def payment_window(now: datetime, minutes: int) -> tuple[datetime, datetime]:
    started = as_naive_utc(now)
    return started, started + timedelta(minutes=int(minutes))


def remaining_seconds(expires_at: datetime, now: datetime | None = None) -> int:
    """Whole seconds left before `expires_at`, never negative."""

    now = as_naive_utc(now or datetime.utcnow())
    delta = (as_naive_utc(expires_at) - now).total_seconds()
    if delta <= 0:
        return 0
    return int(math.floor(delta))


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    now = as_naive_utc(now or datetime.utcnow())
    return now >= as_naive_utc(expires_at)


def format_remaining(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class PaymentCountdown:
    """Per-order expiry clock.

    Holds nothing but `expires_at`, so a fresh instance built from the persisted
    `timer_expires_at` reports the same remaining time as the one it replaces. The expiry
    callback fires once, on the first tick at which remaining reaches zero.
    """

    def __init__(
        self,
        expires_at: datetime,
        on_expire: Optional[Callable[[], None]] = None,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.expires_at = as_naive_utc(expires_at)
        self._on_expire = on_expire
        self._clock = clock
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def remaining(self, now: datetime | None = None) -> int:
        return remaining_seconds(self.expires_at, now or self._clock())

    def tick(self, now: datetime | None = None) -> int:
        left = self.remaining(now)
        if left == 0 and not self._fired:
            self._fired = True
            if self._on_expire is not None:
                self._on_expire()
        return left

    async def run(
        self,
        *,
        tick_seconds: float = TICK_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> AsyncIterator[int]:
        """Yield remaining seconds once per tick until expiry.

        Cancelling the consuming task (e.g. the client went away) stops the loop; nothing is
        left scheduled.
        """

        while True:
            left = self.tick()
            yield left
            if left == 0:
                return
            await sleep(tick_seconds)
