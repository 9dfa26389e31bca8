"""Tests for the daily scheduler."""

import asyncio
from datetime import datetime

import pytest
from unittest.mock import AsyncMock, patch

from wagate.scheduler import (
    DailyScheduler,
    next_occurrence,
    parse_time_of_day,
    seconds_until_next,
)


class TestTimeOfDay:

    def test_parse_valid(self):
        assert parse_time_of_day("03:00") == (3, 0)
        assert parse_time_of_day(" 23:59 ") == (23, 59)

    @pytest.mark.parametrize("value", ["", "3", "24:00", "12:60", "ab:cd", "-1:10"])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            parse_time_of_day(value)


class TestNextOccurrence:

    def test_later_today(self):
        now = datetime(2026, 3, 1, 1, 30)
        assert next_occurrence("03:00", now) == datetime(2026, 3, 1, 3, 0)

    def test_already_passed_rolls_to_tomorrow(self):
        now = datetime(2026, 3, 1, 4, 0)
        assert next_occurrence("03:00", now) == datetime(2026, 3, 2, 3, 0)

    def test_exactly_now_is_tomorrow(self):
        now = datetime(2026, 3, 1, 3, 0)
        assert next_occurrence("03:00", now) == datetime(2026, 3, 2, 3, 0)

    def test_month_rollover(self):
        now = datetime(2026, 1, 31, 23, 0)
        assert next_occurrence("03:00", now) == datetime(2026, 2, 1, 3, 0)

    def test_seconds_until_next(self):
        now = datetime(2026, 3, 1, 2, 0)
        assert seconds_until_next("03:00", now) == 3600
        later = datetime(2026, 3, 1, 3, 30)
        assert seconds_until_next("03:00", later) == 23.5 * 3600


class TestDailyScheduler:

    def test_rejects_bad_time(self):
        with pytest.raises(ValueError):
            DailyScheduler("25:00", AsyncMock())

    @pytest.mark.asyncio
    async def test_start_stop(self):
        scheduler = DailyScheduler("03:00", AsyncMock(), name="test job")
        await scheduler.start()
        assert scheduler.running
        await scheduler.start()  # second start is ignored
        await scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_fires_then_every_day(self):
        callback = AsyncMock()
        scheduler = DailyScheduler("03:00", callback)
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(seconds):
            delays.append(seconds)
            if len(delays) >= 3:
                scheduler._running = False
            await real_sleep(0)

        with patch("wagate.scheduler.seconds_until_next", return_value=42.0), \
             patch("wagate.scheduler.asyncio.sleep", new=fake_sleep):
            scheduler._running = True
            await scheduler._run_loop()

        assert delays == [42.0, 86400, 86400]
        assert callback.await_count == 2

    @pytest.mark.asyncio
    async def test_callback_errors_logged_not_raised(self):
        callback = AsyncMock(side_effect=RuntimeError("sweep failed"))
        scheduler = DailyScheduler("03:00", callback)
        await scheduler._execute()
        callback.assert_awaited_once()
