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
Reminder Configuration

Settings for the reminder bot. Values can be overridden via environment
variables.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import discord
import pytz

logger = logging.getLogger("icsReminder.reminders.config")

DEFAULT_PERMISSION = "manage_messages"


def validate_timezone(tz_name: str) -> bool:
    """
    Validate that a timezone name is valid.

    Args:
        tz_name: IANA timezone name (e.g., "America/Los_Angeles")

    Returns:
        True if valid, False otherwise
    """
    try:
        pytz.timezone(tz_name)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def validate_permission(name: str) -> bool:
    """Check that name is a Discord channel permission flag."""
    return name in discord.Permissions.VALID_FLAGS


def _parse_ids(raw: str) -> frozenset[int]:
    ids = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            logger.warning(f"Ignoring invalid admin ID '{part}'")
    return frozenset(ids)


@dataclass
class ReminderConfig:
    """Configuration for the reminder bot."""

    # Reference zone for the scheduler and for floating calendar times
    timezone: str = "UTC"

    # Channel permission a user needs to manage reminders
    permission: str = DEFAULT_PERMISSION
    admin_ids: frozenset[int] = field(default_factory=frozenset)

    greet_on_join: bool = True
    max_ics_bytes: int = 1_000_000

    database_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ReminderConfig":
        """Create config from environment variables with defaults."""
        timezone = os.getenv("REMINDER_TIMEZONE", "UTC")
        if not validate_timezone(timezone):
            logger.warning(f"Invalid timezone '{timezone}', falling back to UTC")
            timezone = "UTC"

        permission = os.getenv("REMINDER_PERMISSION", DEFAULT_PERMISSION)
        if not validate_permission(permission):
            logger.warning(
                f"Unknown permission '{permission}', falling back to {DEFAULT_PERMISSION}"
            )
            permission = DEFAULT_PERMISSION

        return cls(
            timezone=timezone,
            permission=permission,
            admin_ids=_parse_ids(os.getenv("REMINDER_ADMINS", "")),
            greet_on_join=os.getenv("REMINDER_GREET_ON_JOIN", "true").lower() == "true",
            max_ics_bytes=int(os.getenv("REMINDER_MAX_ICS_BYTES", "1000000")),
            database_url=os.getenv("DATABASE_URL"),
        )
