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
Reminder Scheduler Module

Background task loop that fires calendar reminders.
Uses discord.ext.tasks for the one-second tick.

A reminder fires on a tick when its next occurrence at or after the
current second is exactly that second. Nothing is stored about past
deliveries; the next tick's query simply lands on a later occurrence.
"""

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from discord.ext import tasks

from .ics import current_instant
from .models import ReminderMessage, ReminderRecord
from .registry import ReminderRegistry

if TYPE_CHECKING:
    from discord.ext import commands

logger = logging.getLogger("icsReminder.reminders.scheduler")

TICK_SECONDS = 1

SendFunc = Callable[[int, ReminderMessage], Awaitable[object]]


class ReminderScheduler:
    """
    Background scheduler for delivering calendar reminders.

    Checks every active reminder once per second. Deliveries for one tick
    run as independent tasks so a slow send never holds up the next tick.
    """

    def __init__(
        self,
        bot: "commands.Bot",
        registry: ReminderRegistry,
        send: SendFunc,
        timezone: str = "UTC",
    ):
        """
        Initialize the reminder scheduler.

        Args:
            bot: Discord bot instance
            registry: Working set of reminders
            send: Coroutine function posting a message into a room
            timezone: Reference zone for "now"
        """
        self.bot = bot
        self.registry = registry
        self.send = send
        self.timezone = timezone
        self._started = False
        self._deliveries: set[asyncio.Task] = set()

    def start(self) -> None:
        """Start the scheduler loop."""
        if not self._started:
            self._check_reminders.start()
            self._started = True
            logger.info("Reminder scheduler started")

    def stop(self) -> None:
        """Stop the scheduler loop. In-flight deliveries are left to finish."""
        if self._started:
            self._check_reminders.cancel()
            self._started = False
            logger.info("Reminder scheduler stopped")

    @tasks.loop(seconds=TICK_SECONDS)
    async def _check_reminders(self) -> None:
        """Run one tick against the current second."""
        try:
            self.tick()
        except Exception as e:
            logger.error(f"Error in reminder scheduler loop: {e}", exc_info=True)

    @_check_reminders.before_loop
    async def _before_check(self) -> None:
        """Wait for the bot to be ready before starting the loop."""
        await self.bot.wait_until_ready()
        logger.info("Reminder scheduler ready, starting loop")

    def is_due(self, record: ReminderRecord, now: datetime) -> bool:
        """True if one of the reminder's occurrences falls exactly on now."""
        if record.deleted:
            return False
        next_occurrence = record.event.next_occurrence_at_or_after(now)
        return next_occurrence is not None and next_occurrence == now

    def due(self, now: datetime) -> list[ReminderRecord]:
        """
        Reminders that fire at the given second.

        A reminder that fails to evaluate is logged and skipped.
        """
        now = now.replace(microsecond=0)
        due = []
        for record in self.registry.all_records():
            if record.deleted:
                continue
            try:
                if self.is_due(record, now):
                    due.append(record)
            except Exception as e:
                logger.error(
                    f"Failed to evaluate reminder {record.uid} in room {record.room_id}: {e}",
                    exc_info=True,
                )
        return due

    def tick(self, now: Optional[datetime] = None) -> list[asyncio.Task]:
        """
        Evaluate every reminder and start deliveries for the due ones.

        Args:
            now: Instant to evaluate (defaults to the current second)

        Returns:
            The delivery tasks started on this tick
        """
        if now is None:
            now = current_instant(self.timezone)
        now = now.replace(microsecond=0)

        started = []
        for record in self.due(now):
            task = asyncio.create_task(self._deliver(record, now))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)
            started.append(task)
        return started

    async def _deliver(self, record: ReminderRecord, now: datetime) -> None:
        """
        Deliver a single trigger message.

        Failures are logged; the reminder stays armed for its next occurrence.
        """
        try:
            next_occurrence = record.event.next_occurrence_after(now)
            await self.send(record.room_id, ReminderMessage.trigger(record, next_occurrence))
            logger.info(
                f"Delivered reminder {record.uid} to room {record.room_id}, next={next_occurrence}"
            )
        except Exception as e:
            logger.error(
                f"Failed to deliver reminder {record.uid} to room {record.room_id}: {e}",
                exc_info=True,
            )
