import asyncio
from datetime import datetime, timedelta, timezone

from tetherdesk.services.countdown import (
    PaymentCountdown,
    format_remaining,
    is_expired,
    payment_window,
    remaining_seconds,
)

T0 = datetime(2026, 1, 1, 12, 0, 0)


def test_payment_window_is_five_minutes():
    start, end = payment_window(T0, 5)
    assert start == T0
    assert end - start == timedelta(minutes=5)


def test_remaining_seconds_floors_and_never_goes_negative():
    expires = T0 + timedelta(seconds=300)
    assert remaining_seconds(expires, T0) == 300
    assert remaining_seconds(expires, T0 + timedelta(seconds=0.4)) == 299
    assert remaining_seconds(expires, T0 + timedelta(seconds=300)) == 0
    assert remaining_seconds(expires, T0 + timedelta(hours=1)) == 0


def test_aware_and_naive_datetimes_compare_as_utc():
    aware = (T0 + timedelta(seconds=60)).replace(tzinfo=timezone.utc)
    assert remaining_seconds(aware, T0) == 60
    assert not is_expired(aware, T0)
    assert is_expired(aware, T0 + timedelta(seconds=60))


def test_format_remaining():
    assert format_remaining(300) == "05:00"
    assert format_remaining(61) == "01:01"
    assert format_remaining(-3) == "00:00"


def test_ticks_strictly_decrease_and_callback_fires_once():
    fired = []
    countdown = PaymentCountdown(T0 + timedelta(seconds=300), on_expire=lambda: fired.append(1))

    seen = [countdown.tick(T0 + timedelta(seconds=i)) for i in range(0, 303)]

    live = seen[:301]
    assert all(a > b for a, b in zip(live, live[1:]))
    assert seen[300] == 0
    assert seen[299] == 1
    assert fired == [1]
    assert countdown.fired


def test_countdown_is_rederivable_from_expiry():
    expires = T0 + timedelta(seconds=300)
    now = T0 + timedelta(seconds=120)
    first = PaymentCountdown(expires)
    second = PaymentCountdown(expires)
    assert first.remaining(now) == second.remaining(now) == 180


def test_run_yields_until_zero_using_injected_clock_and_sleep():
    clock = {"now": T0}

    async def fake_sleep(seconds):
        clock["now"] = clock["now"] + timedelta(seconds=seconds)

    fired = []
    countdown = PaymentCountdown(
        T0 + timedelta(seconds=3), on_expire=lambda: fired.append(1), clock=lambda: clock["now"]
    )

    async def collect():
        return [left async for left in countdown.run(sleep=fake_sleep)]

    assert asyncio.run(collect()) == [3, 2, 1, 0]
    assert fired == [1]
