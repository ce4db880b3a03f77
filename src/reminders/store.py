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

"""
Reminder Store Module

Per-room persistence for reminders. Each room holds one index value
(uid -> marker) plus one value per reminder, kept in a room-scoped
key-value table.
"""

import json
import logging
from typing import Any, Optional

import asyncpg

from .models import ReminderRecord

logger = logging.getLogger("icsReminder.reminders.store")

REMINDER_INDEX_EVENT = "ics_reminder.vevents.index"
REMINDER_EVENT_PREFIX = "ics_reminder.vevents.vevent"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS room_account_data (
    room_id BIGINT NOT NULL,
    event_type TEXT NOT NULL,
    content JSONB NOT NULL DEFAULT '{}'::jsonb,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (room_id, event_type)
);

CREATE INDEX IF NOT EXISTS idx_room_account_data_event_type
    ON room_account_data (event_type);
"""


class StorageInconsistency(Exception):
    """Raised when an index entry has no loadable record behind it."""

    pass


def record_event_type(uid: str) -> str:
    return f"{REMINDER_EVENT_PREFIX}.{uid}"


class AccountDataStore:
    """
    Room-scoped key-value storage backed by PostgreSQL.

    Values are JSON objects addressed by (event_type, room_id).
    """

    def __init__(self, db_pool: asyncpg.Pool):
        """
        Initialize the account data store.

        Args:
            db_pool: asyncpg connection pool
        """
        self.db = db_pool

    async def ensure_schema(self) -> None:
        """Create the backing table if it does not exist yet."""
        await self.db.execute(SCHEMA_SQL)

    async def get_or_default(self, event_type: str, room_id: int, default: Any) -> Any:
        """
        Read a room's value for a key.

        Args:
            event_type: Namespaced key
            room_id: Owning room (Discord channel ID)
            default: Returned when nothing is stored

        Returns:
            The decoded value, or default
        """
        row = await self.db.fetchrow(
            """
            SELECT content FROM room_account_data
            WHERE room_id = $1 AND event_type = $2
            """,
            room_id,
            event_type,
        )
        if row is None or row["content"] is None:
            return default

        content = row["content"]
        return json.loads(content) if isinstance(content, str) else content

    async def set(self, event_type: str, room_id: int, value: Any) -> None:
        """Write (upsert) a room's value for a key."""
        await self.db.execute(
            """
            INSERT INTO room_account_data (room_id, event_type, content, updated_at)
            VALUES ($1, $2, $3::jsonb, NOW())
            ON CONFLICT (room_id, event_type)
            DO UPDATE SET content = $3::jsonb, updated_at = NOW()
            """,
            room_id,
            event_type,
            json.dumps(value),
        )

    async def scopes(self, event_type: str) -> list[int]:
        """List the rooms that hold a value for a key."""
        rows = await self.db.fetch(
            """
            SELECT room_id FROM room_account_data
            WHERE event_type = $1
            ORDER BY room_id
            """,
            event_type,
        )
        return [row["room_id"] for row in rows]


class ReminderStore:
    """Reminder index and record persistence on top of account data."""

    def __init__(self, account_data: AccountDataStore, timezone: str = "UTC"):
        """
        Args:
            account_data: Room-scoped key-value collaborator
            timezone: Reference zone handed to the calendar parser on load
        """
        self.account_data = account_data
        self.timezone = timezone

    async def load_index(self, room_id: int) -> dict[str, Any]:
        index = await self.account_data.get_or_default(REMINDER_INDEX_EVENT, room_id, {})
        return dict(index or {})

    async def save_index(self, room_id: int, index: dict[str, Any]) -> None:
        await self.account_data.set(REMINDER_INDEX_EVENT, room_id, index)

    async def load_record(self, room_id: int, uid: str) -> Optional[ReminderRecord]:
        """
        Load one reminder.

        Returns:
            The record, or None if nothing has been written for the uid yet

        Raises:
            ParseError: If the stored event text no longer parses
        """
        content = await self.account_data.get_or_default(record_event_type(uid), room_id, {})
        if not content or not content.get("rawEvent"):
            return None
        return ReminderRecord.from_account_data(room_id, uid, content, self.timezone)

    async def save_record(self, room_id: int, uid: str, record: ReminderRecord) -> None:
        await self.account_data.set(record_event_type(uid), room_id, record.to_account_data())

    async def rooms_with_reminders(self) -> list[int]:
        return await self.account_data.scopes(REMINDER_INDEX_EVENT)
