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
Calendar Reminders Package

Turns uploaded iCalendar files into recurring room reminders.
"""

from .config import ReminderConfig, validate_timezone
from .delivery import DeliveryFailure, ReminderMessenger, render_message
from .ics import CalendarEvent, ParseError, current_instant
from .models import MessageKind, ReminderMessage, ReminderRecord
from .registry import ReminderRegistry
from .scheduler import ReminderScheduler
from .store import AccountDataStore, ReminderStore, StorageInconsistency

__all__ = [
    "ReminderConfig",
    "validate_timezone",
    "DeliveryFailure",
    "ReminderMessenger",
    "render_message",
    "CalendarEvent",
    "ParseError",
    "current_instant",
    "MessageKind",
    "ReminderMessage",
    "ReminderRecord",
    "ReminderRegistry",
    "ReminderScheduler",
    "AccountDataStore",
    "ReminderStore",
    "StorageInconsistency",
]
