import asyncio

import pytest

from automod.moderation.rate_tracker import RateTracker

GUILD = 1
USER = 2


async def send_burst(tracker, times, threshold=5, interval_ms=5000, user=USER):
    return [await tracker.record_and_check(GUILD, user, t, threshold, interval_ms) for t in times]


@pytest.mark.asyncio
async def test_alert_on_threshold_then_debounced():
    tracker = RateTracker()

    results = await send_burst(tracker, [0, 1000, 2000, 3000, 4000, 5000])

    assert results == [False, False, False, False, True, False]


@pytest.mark.asyncio
async def test_new_burst_after_debounce_alerts_again():
    tracker = RateTracker()
    await send_burst(tracker, [0, 1000, 2000, 3000, 4000])

    results = await send_burst(tracker, [15000, 15001, 15002, 15003, 15004])

    assert results[-1] is True


@pytest.mark.asyncio
async def test_suppressed_burst_does_not_move_debounce_window():
    tracker = RateTracker()
    await send_burst(tracker, [0, 1, 2, 3, 4])

    # Still bursting inside 2x interval: suppressed
    assert await send_burst(tracker, [9000, 9001, 9002, 9003, 9004]) == [False] * 5
    # Debounce measured from the alert at t=4, not from the suppressed burst
    assert await tracker.record_and_check(GUILD, USER, 10005, 5, 5000) is True


@pytest.mark.asyncio
async def test_old_entries_expire_from_window():
    tracker = RateTracker()

    await send_burst(tracker, [0, 1000, 2000, 3000])
    assert await tracker.record_and_check(GUILD, USER, 5000, 5, 5000) is False
    # t=0 dropped since 5000 - 0 >= 5000
    assert tracker.window_size(GUILD, USER) == 4


@pytest.mark.asyncio
async def test_authors_are_tracked_separately():
    tracker = RateTracker()

    await send_burst(tracker, [0, 1, 2, 3], user=10)
    assert await tracker.record_and_check(GUILD, 11, 4, 5, 5000) is False
    assert await tracker.record_and_check(GUILD, 10, 4, 5, 5000) is True


@pytest.mark.asyncio
async def test_disabled_threshold_records_nothing():
    tracker = RateTracker()

    assert await tracker.record_and_check(GUILD, USER, 0, 0, 5000) is False
    assert len(tracker) == 0


@pytest.mark.asyncio
async def test_cleanup_evicts_idle_windows_and_empty_guilds():
    tracker = RateTracker()
    await tracker.record_and_check(GUILD, USER, 0, 5, 5000)
    await tracker.record_and_check(GUILD, 3, 50_000, 5, 5000)

    evicted = await tracker.cleanup(now=70_000, max_idle_ms=60_000)

    assert evicted == 1
    assert tracker.window_size(GUILD, USER) == 0
    assert tracker.window_size(GUILD, 3) == 1

    assert await tracker.cleanup(now=200_000, max_idle_ms=60_000) == 1
    assert tracker.windows == {}


@pytest.mark.asyncio
async def test_concurrent_records_are_all_counted():
    tracker = RateTracker()

    results = await asyncio.gather(*(
        tracker.record_and_check(GUILD, USER, 100 + i, 5, 5000) for i in range(5)
    ))

    assert results.count(True) == 1
    assert tracker.window_size(GUILD, USER) == 5


@pytest.mark.asyncio
async def test_start_and_stop_cleanup_task():
    tracker = RateTracker(cleanup_interval=0.01)

    tracker.start()
    assert tracker.running
    await asyncio.sleep(0.03)
    await tracker.stop()

    assert not tracker.running
    await tracker.stop()
