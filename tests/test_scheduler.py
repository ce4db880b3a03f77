# icsReminder - Discord iCalendar Reminder Bot
# Copyright (c) 2025-2026 Slash Daemon slashdaemon@protonmail.com
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, version 3 of the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.
#
# Commercial licensing: [slashdaemon@protonmail.com]

"""Tests for the reminder scheduler."""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from conftest import DAILY_STANDUP, make_calendar
from reminders.ics import CalendarEvent
from reminders.models import MessageKind
from reminders.scheduler import ReminderScheduler

UTC = timezone.utc
ROOM = 111
STANDUP_TIME = datetime(2026, 1, 5, 9, 0, 0, tzinfo=UTC)


@pytest.fixture
def send():
    return AsyncMock()


@pytest.fixture
def scheduler(registry, send):
    return ReminderScheduler(MagicMock(), registry, send, "UTC")


class TestDue:
    """Test which reminders fire on a tick."""

    @pytest.mark.asyncio
    async def test_fires_on_exact_second(self, scheduler, registry):
        record = await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        assert scheduler.due(STANDUP_TIME) == [record]

    @pytest.mark.asyncio
    async def test_silent_one_second_either_side(self, scheduler, registry):
        await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        assert scheduler.due(STANDUP_TIME - timedelta(seconds=1)) == []
        assert scheduler.due(STANDUP_TIME + timedelta(seconds=1)) == []

    @pytest.mark.asyncio
    async def test_subsecond_now_is_truncated(self, scheduler, registry):
        await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        assert len(scheduler.due(STANDUP_TIME.replace(microsecond=400000))) == 1

    @pytest.mark.asyncio
    async def test_deleted_never_fires(self, scheduler, registry):
        record = await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        await registry.delete(record.uid, ROOM)
        assert scheduler.due(STANDUP_TIME) == []

    @pytest.mark.asyncio
    async def test_expired_never_fires(self, scheduler, registry):
        event = CalendarEvent.parse(
            make_calendar("DTSTART:20260105T090000Z", "RRULE:FREQ=DAILY;COUNT=1")
        )
        await registry.create(event, ROOM)
        assert scheduler.due(STANDUP_TIME + timedelta(days=1)) == []

    @pytest.mark.asyncio
    async def test_evaluation_error_skips_only_that_reminder(self, scheduler, registry):
        good = await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        bad = await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        bad.event = MagicMock()
        bad.event.next_occurrence_at_or_after.side_effect = RuntimeError("boom")

        assert scheduler.due(STANDUP_TIME) == [good]


class TestTick:
    """Test delivery on a tick."""

    @pytest.mark.asyncio
    async def test_trigger_message(self, scheduler, registry, send):
        record = await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)

        tasks = scheduler.tick(STANDUP_TIME)
        assert len(tasks) == 1
        await asyncio.gather(*tasks)

        send.assert_awaited_once()
        room_id, message = send.call_args[0]
        assert room_id == ROOM
        assert message.kind == MessageKind.TRIGGER
        assert message.uid == record.uid
        assert message.body == "Standup"
        assert message.formatted_body == "Standup"
        assert message.vevent == record.raw_event
        assert message.next_occurrence == datetime(2026, 1, 6, 9, 0, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_edited_text_is_sent(self, scheduler, registry, send):
        record = await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        await registry.edit(record.uid, ROOM, "Daily sync", "<b>Daily sync</b>")

        await asyncio.gather(*scheduler.tick(STANDUP_TIME))
        message = send.call_args[0][1]
        assert message.body == "Daily sync"
        assert message.formatted_body == "<b>Daily sync</b>"

    @pytest.mark.asyncio
    async def test_last_occurrence_has_no_next(self, scheduler, registry, send):
        event = CalendarEvent.parse(make_calendar("DTSTART:20260105T090000Z", "SUMMARY:Once"))
        await registry.create(event, ROOM)

        await asyncio.gather(*scheduler.tick(STANDUP_TIME))
        message = send.call_args[0][1]
        assert message.next_occurrence is None
        assert message.next_timestamp is None

    @pytest.mark.asyncio
    async def test_delivery_failure_is_isolated(self, registry):
        first = await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        await registry.create(CalendarEvent.parse(DAILY_STANDUP), 222)

        delivered = []

        async def flaky_send(room_id, message):
            if message.uid == first.uid:
                raise RuntimeError("channel gone")
            delivered.append(room_id)

        scheduler = ReminderScheduler(MagicMock(), registry, flaky_send, "UTC")
        await asyncio.gather(*scheduler.tick(STANDUP_TIME))
        assert delivered == [222]

        # Still armed for the next day
        assert len(scheduler.due(STANDUP_TIME + timedelta(days=1))) == 2

    @pytest.mark.asyncio
    async def test_nothing_due(self, scheduler, registry, send):
        await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        assert scheduler.tick(STANDUP_TIME + timedelta(minutes=5)) == []
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_default_now(self, scheduler, registry):
        await registry.create(CalendarEvent.parse(DAILY_STANDUP), ROOM)
        assert scheduler.tick() == []
