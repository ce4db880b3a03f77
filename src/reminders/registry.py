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
Reminder Registry Module

The in-memory working set of reminders for every room the bot is in.
Built once at startup from the store, then kept in step with it by
create/edit/delete.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from typing import Iterable, Optional

from .ics import CalendarEvent, ParseError
from .models import ReminderRecord
from .store import ReminderStore, StorageInconsistency

logger = logging.getLogger("icsReminder.reminders.registry")


class ReminderRegistry:
    """
    Active reminders across all rooms.

    Deleted reminders stay in the working set as tombstones so their uids
    are never handed out again; they are skipped by every lookup.
    """

    def __init__(self, store: ReminderStore):
        self.store = store
        self._reminders: dict[tuple[int, str], ReminderRecord] = {}
        # Serializes index read-modify-write per room
        self._index_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load(self, room_ids: Iterable[int]) -> int:
        """
        Populate the working set from storage.

        Args:
            room_ids: Rooms the bot currently occupies

        Returns:
            Number of reminders loaded
        """
        loaded = 0
        for room_id in room_ids:
            try:
                loaded += len(await self.load_room(room_id))
            except Exception as e:
                logger.error(f"Failed to load reminders for room {room_id}: {e}", exc_info=True)
        logger.info(f"Loaded {loaded} reminder(s)")
        return loaded

    async def load_room(self, room_id: int) -> list[ReminderRecord]:
        """Load one room's reminders, skipping index entries that don't resolve."""
        index = await self.store.load_index(room_id)
        records = []

        for uid in index:
            try:
                record = await self._resolve(room_id, uid)
            except StorageInconsistency as e:
                logger.warning(f"Skipping reminder {uid} in room {room_id}: {e}")
                continue
            self._reminders[(room_id, uid)] = record
            records.append(record)

        return records

    async def _resolve(self, room_id: int, uid: str) -> ReminderRecord:
        try:
            record = await self.store.load_record(room_id, uid)
        except ParseError as e:
            raise StorageInconsistency(f"stored event does not parse: {e}")
        except (KeyError, TypeError, AttributeError) as e:
            raise StorageInconsistency(f"stored record is malformed: {e}")

        if record is None:
            raise StorageInconsistency("indexed but no record stored")
        return record

    async def create(self, event: CalendarEvent, room_id: int) -> ReminderRecord:
        """
        Create and persist a reminder for a room.

        The record is written before its index entry, and the reminder is
        visible to lookups and the scheduler once this returns.
        """
        record = ReminderRecord.new(event, room_id)
        while (room_id, record.uid) in self._reminders:
            record = ReminderRecord.new(event, room_id)

        await self.store.save_record(room_id, record.uid, record)
        async with self._index_locks[room_id]:
            index = await self.store.load_index(room_id)
            index[record.uid] = {}
            await self.store.save_index(room_id, index)

        self._reminders[(room_id, record.uid)] = record
        logger.info(f"Created reminder {record.uid} in room {room_id}")
        return record

    async def edit(
        self, uid: str, room_id: int, summary_plain: str, summary_html: str
    ) -> Optional[ReminderRecord]:
        """
        Replace a reminder's display text and persist it.

        The in-memory record only changes once the write has succeeded.

        Returns:
            The updated record, or None if it is unknown or deleted
        """
        record = self.find(room_id, uid)
        if record is None:
            return None

        updated = replace(record, summary_plain=summary_plain, summary_html=summary_html)
        await self.store.save_record(room_id, uid, updated)

        record.summary_plain = summary_plain
        record.summary_html = summary_html
        logger.info(f"Edited reminder {uid} in room {room_id}")
        return record

    async def delete(self, uid: str, room_id: int) -> bool:
        """
        Drop a reminder from the room's index, then tombstone it.

        The stored record itself is left in place. If the index write fails
        the reminder stays live.

        Returns:
            True if a live reminder was deleted, False otherwise
        """
        record = self.find(room_id, uid)
        if record is None:
            return False

        async with self._index_locks[room_id]:
            index = await self.store.load_index(room_id)
            index.pop(uid, None)
            await self.store.save_index(room_id, index)
        record.deleted = True

        logger.info(f"Deleted reminder {uid} in room {room_id}")
        return True

    def find(self, room_id: int, uid: str) -> Optional[ReminderRecord]:
        record = self._reminders.get((room_id, uid))
        if record is None or record.deleted:
            return None
        return record

    def list_active(self, room_id: int) -> list[ReminderRecord]:
        return [
            record
            for (record_room, _), record in self._reminders.items()
            if record_room == room_id and not record.deleted
        ]

    def active(self) -> list[ReminderRecord]:
        """Every non-deleted reminder, across all rooms."""
        return [record for record in self._reminders.values() if not record.deleted]

    def all_records(self) -> list[ReminderRecord]:
        """Every reminder including tombstones."""
        return list(self._reminders.values())

    def __len__(self) -> int:
        return len(self.active())
