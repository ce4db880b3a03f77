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

"""Shared fixtures for reminder tests."""

import asyncio
import copy
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reminders import ReminderRegistry, ReminderStore


def make_calendar(*event_lines: str) -> str:
    """Wrap VEVENT property lines in a minimal calendar document."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//icsReminder tests//EN",
        "BEGIN:VEVENT",
        "UID:test-event@example.com",
        "DTSTAMP:20260101T000000Z",
        *event_lines,
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


DAILY_STANDUP = make_calendar(
    "DTSTART:20260105T090000Z",
    "RRULE:FREQ=DAILY",
    "SUMMARY:Standup",
)


class FakeAccountData:
    """Dict-backed stand-in for the room account data table."""

    def __init__(self):
        self.data: dict[tuple[int, str], object] = {}
        self.writes: list[tuple[int, str]] = []

    async def get_or_default(self, event_type, room_id, default):
        await asyncio.sleep(0)
        key = (room_id, event_type)
        if key not in self.data:
            return default
        return copy.deepcopy(self.data[key])

    async def set(self, event_type, room_id, value):
        await asyncio.sleep(0)
        key = (room_id, event_type)
        self.data[key] = copy.deepcopy(value)
        self.writes.append(key)

    async def scopes(self, event_type):
        return sorted(room_id for room_id, key in self.data if key == event_type)


@pytest.fixture
def account_data():
    return FakeAccountData()


@pytest.fixture
def store(account_data):
    return ReminderStore(account_data, "UTC")


@pytest.fixture
def registry(store):
    return ReminderRegistry(store)
