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
Reminder Delivery Module

Renders ReminderMessage values for Discord and sends them into a room.
The plain body goes in the message content, the rich body in an embed,
and the serialized event is attached as an .ics file.
"""

import io
import logging
from typing import TYPE_CHECKING, Any

import discord

from .models import MessageKind, ReminderMessage

if TYPE_CHECKING:
    from discord.ext import commands

logger = logging.getLogger("icsReminder.reminders.delivery")

# Discord limits
DISCORD_MAX_LENGTH = 2000
EMBED_MAX_DESCRIPTION = 4096

EMBED_TITLES = {
    MessageKind.CREATE: "Reminder Created",
    MessageKind.PREVIEW: "Reminder Preview",
    MessageKind.TRIGGER: "Reminder",
}

EMBED_COLORS = {
    MessageKind.CREATE: discord.Color.green(),
    MessageKind.PREVIEW: discord.Color.light_grey(),
    MessageKind.TRIGGER: discord.Color.blue(),
}


class DeliveryFailure(Exception):
    """Raised when a reminder message cannot be posted."""

    pass


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def build_embed(message: ReminderMessage) -> discord.Embed:
    """
    Build the embed for a reminder message.

    Args:
        message: Message to render

    Returns:
        Discord embed carrying the rich body, uid and next occurrence
    """
    embed = discord.Embed(
        title=EMBED_TITLES[message.kind],
        description=_truncate(message.formatted_body, EMBED_MAX_DESCRIPTION),
        color=EMBED_COLORS[message.kind],
    )
    embed.add_field(name="ID", value=f"`{message.uid}`", inline=True)

    next_ts = message.next_timestamp
    if next_ts is not None:
        embed.add_field(name="Next", value=f"<t:{next_ts}:F> (<t:{next_ts}:R>)", inline=True)

    embed.set_footer(text=f"ics_reminder.{message.kind.value}")
    return embed


def render_message(message: ReminderMessage) -> dict[str, Any]:
    """Keyword arguments for Messageable.send / followup.send."""
    return {
        "content": _truncate(message.body, DISCORD_MAX_LENGTH) or None,
        "embed": build_embed(message),
        "file": discord.File(
            io.BytesIO(message.vevent.encode("utf-8")),
            filename=f"{message.uid}.ics",
        ),
    }


class ReminderMessenger:
    """Posts reminder messages into Discord channels."""

    def __init__(self, bot: "commands.Bot"):
        self.bot = bot

    async def _get_channel(self, room_id: int) -> discord.abc.Messageable:
        channel = self.bot.get_channel(room_id)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(room_id)
        except discord.NotFound:
            raise DeliveryFailure(f"Channel {room_id} not found (deleted)")
        except discord.Forbidden:
            raise DeliveryFailure(f"No access to channel {room_id}")

    async def send(self, room_id: int, message: ReminderMessage) -> discord.Message:
        """
        Send a reminder message into a room.

        Raises:
            DeliveryFailure: If the channel is unreachable or Discord rejects the send
        """
        channel = await self._get_channel(room_id)
        try:
            sent = await channel.send(**render_message(message))
        except discord.HTTPException as e:
            raise DeliveryFailure(f"Discord rejected {message.kind.value} message: {e}")

        logger.debug(f"Sent {message.kind.value} message for {message.uid} to room {room_id}")
        return sent
