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
Reminder Commands

Upload handling and slash commands for calendar reminders.
Uploading an .ics file into a channel creates a reminder for that channel;
/reminders list, edit and delete manage existing ones.
"""

import html
import logging
from datetime import datetime
from typing import Optional, Union

import discord
from discord import app_commands
from discord.ext import commands

from reminders import (
    CalendarEvent,
    ParseError,
    ReminderConfig,
    ReminderMessage,
    ReminderRecord,
    ReminderRegistry,
    current_instant,
    render_message,
)

logger = logging.getLogger("icsReminder.commands.reminder")

NO_PERMISSION = "Sorry, you don't have permission to use reminders."
INVALID_CALENDAR = "Sorry, that does not look like a valid iCalendar file."
NOT_FOUND = "Reminder not found. Try `/reminders help` for more information."
COMMAND_ERROR = "There was an error processing your command."

HELP_TEXT = (
    "**Calendar reminders**\n"
    "Upload an iCalendar (`.ics`) file to a channel to create a reminder there.\n\n"
    "- `/reminders list [channel]` - List reminders\n"
    "- `/reminders edit <reminder_id> <text> [html] [channel]` - Change the reminder text\n"
    "- `/reminders delete <reminder_id> [channel]` - Delete a reminder"
)

GREETING = (
    "Hello! To create a new reminder for a channel, upload an iCalendar (.ics) "
    "file there. To see current reminders, use `/reminders list`."
)

# Embed field limit
MAX_LISTED = 25


def has_reminder_permission(
    user: Union[discord.Member, discord.User],
    channel: discord.abc.GuildChannel,
    config: ReminderConfig,
) -> bool:
    """
    Decide whether a user may manage reminders in a channel.

    Configured admins always may; everyone else needs the configured
    channel permission.
    """
    if user.id in config.admin_ids:
        return True
    if not isinstance(user, discord.Member):
        return False
    permissions = channel.permissions_for(user)
    return bool(getattr(permissions, config.permission, False))


def is_calendar_attachment(attachment: discord.Attachment) -> bool:
    return bool(attachment.filename) and attachment.filename.lower().endswith(".ics")


def describe_next(event: CalendarEvent, now: datetime) -> tuple[str, str]:
    """
    Describe an event's next occurrence.

    Returns:
        Tuple of (plain text, Discord markdown)
    """
    next_occurrence = event.next_occurrence_at_or_after(now)
    if next_occurrence is None:
        return "never", "never"
    ts = int(next_occurrence.timestamp())
    return next_occurrence.strftime("%Y-%m-%d %H:%M %Z").strip(), f"<t:{ts}:R>"


class ReminderCommands(commands.Cog):
    """
    Calendar reminder management.

    Commands:
    - /reminders list - List a channel's reminders
    - /reminders edit - Change a reminder's text
    - /reminders delete - Delete a reminder
    - /reminders help - Usage
    """

    reminders_group = app_commands.Group(
        name="reminders",
        description="Manage calendar reminders",
    )

    def __init__(
        self,
        bot: commands.Bot,
        registry: ReminderRegistry,
        config: ReminderConfig,
    ):
        self.bot = bot
        self.registry = registry
        self.config = config

    # =========================================================================
    # Calendar uploads
    # =========================================================================

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        """Create reminders from .ics attachments."""
        if message.author.bot or message.guild is None:
            return

        attachments = [a for a in message.attachments if is_calendar_attachment(a)]
        if not attachments:
            return

        if not has_reminder_permission(message.author, message.channel, self.config):
            await message.reply(NO_PERMISSION)
            return

        for attachment in attachments:
            await self._create_from_attachment(message, attachment)

    async def _create_from_attachment(
        self, message: discord.Message, attachment: discord.Attachment
    ) -> Optional[ReminderRecord]:
        if attachment.size > self.config.max_ics_bytes:
            await message.reply(
                f"Sorry, {attachment.filename} is too large ({attachment.size} bytes)."
            )
            return None

        try:
            data = await attachment.read()
            event = CalendarEvent.parse(data, self.config.timezone)
        except (ParseError, discord.HTTPException) as e:
            logger.warning(f"Error parsing possible iCalendar file {attachment.filename}: {e}")
            await message.reply(INVALID_CALENDAR)
            return None

        room_id = message.channel.id
        try:
            record = await self.registry.create(event, room_id)
        except Exception as e:
            logger.error(f"Error creating reminder in room {room_id}: {e}", exc_info=True)
            await message.reply(COMMAND_ERROR)
            return None

        next_plain, next_rich = describe_next(event, current_instant(self.config.timezone))
        body = (
            f"Created reminder with ID {record.uid} occurring next: {next_plain}\n\n"
            f"To edit the text, use /reminders edit {record.uid} <new text>\n\n"
            f"Preview: {record.summary_plain}"
        )
        formatted = (
            f"Created reminder with ID `{record.uid}` occurring next: {next_rich}\n\n"
            f"To edit the text, use `/reminders edit {record.uid} <new text>`\n\n"
            f"Preview: {record.summary_html}"
        )
        await message.reply(**render_message(ReminderMessage.create(record, body, formatted)))
        return record

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild):
        """Explain usage when added to a server."""
        if not self.config.greet_on_join or guild.system_channel is None:
            return
        try:
            await guild.system_channel.send(GREETING)
        except discord.HTTPException as e:
            logger.warning(f"Failed to greet guild {guild.id}: {e}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _check_permission(
        self, interaction: discord.Interaction, channel: discord.abc.GuildChannel
    ) -> bool:
        user = interaction.user
        if not isinstance(user, discord.Member) or user.guild.id != channel.guild.id:
            user = channel.guild.get_member(user.id) or user
        if has_reminder_permission(user, channel, self.config):
            return True
        await interaction.followup.send(NO_PERMISSION, ephemeral=True)
        return False

    def _target(
        self, interaction: discord.Interaction, channel: Optional[discord.TextChannel]
    ) -> Optional[discord.abc.GuildChannel]:
        if channel is not None:
            return channel
        if isinstance(interaction.channel, discord.abc.GuildChannel):
            return interaction.channel
        return None

    # =========================================================================
    # /reminders list
    # =========================================================================

    @reminders_group.command(name="list")
    @app_commands.describe(channel="Channel to list (defaults to this one)")
    async def list_reminders(
        self,
        interaction: discord.Interaction,
        channel: Optional[discord.TextChannel] = None,
    ):
        """List a channel's reminders."""
        await interaction.response.defer(ephemeral=True)

        target = self._target(interaction, channel)
        if target is None:
            await interaction.followup.send("Please pick a channel.", ephemeral=True)
            return
        if not await self._check_permission(interaction, target):
            return

        try:
            reminders = self.registry.list_active(target.id)
            if not reminders:
                await interaction.followup.send("No reminders.", ephemeral=True)
                return

            now = current_instant(self.config.timezone)
            embed = discord.Embed(
                title=f"Reminders in #{target.name}",
                description=f"{len(reminders)} reminders",
                color=discord.Color.blue(),
            )
            for record in reminders[:MAX_LISTED]:
                _, next_rich = describe_next(record.event, now)
                preview = record.summary_plain
                if len(preview) > 100:
                    preview = preview[:97] + "..."
                embed.add_field(
                    name=record.uid,
                    value=f"Next: {next_rich}\n{preview or '(no text)'}",
                    inline=False,
                )
            if len(reminders) > MAX_LISTED:
                embed.set_footer(text=f"Showing {MAX_LISTED} of {len(reminders)}")

            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            logger.error(f"Error listing reminders: {e}", exc_info=True)
            await interaction.followup.send(COMMAND_ERROR, ephemeral=True)

    # =========================================================================
    # /reminders edit
    # =========================================================================

    @reminders_group.command(name="edit")
    @app_commands.describe(
        reminder_id="The reminder ID to edit",
        text="New reminder text",
        html_text="Optional rich text (defaults to the escaped plain text)",
        channel="Channel the reminder belongs to (defaults to this one)",
    )
    @app_commands.rename(html_text="html")
    async def edit_reminder(
        self,
        interaction: discord.Interaction,
        reminder_id: str,
        text: str,
        html_text: Optional[str] = None,
        channel: Optional[discord.TextChannel] = None,
    ):
        """Change a reminder's text."""
        await interaction.response.defer(ephemeral=True)

        target = self._target(interaction, channel)
        if target is None:
            await interaction.followup.send("Please pick a channel.", ephemeral=True)
            return
        if not await self._check_permission(interaction, target):
            return

        try:
            text = text.strip()
            rich = html_text.strip() if html_text else html.escape(text)
            record = await self.registry.edit(reminder_id.strip(), target.id, text, rich)
            if record is None:
                await interaction.followup.send(NOT_FOUND, ephemeral=True)
                return

            await interaction.followup.send("Reminder updated. Preview follows:", ephemeral=True)
            await interaction.followup.send(
                ephemeral=True, **render_message(ReminderMessage.preview(record))
            )
        except Exception as e:
            logger.error(f"Error editing reminder {reminder_id}: {e}", exc_info=True)
            await interaction.followup.send(COMMAND_ERROR, ephemeral=True)

    # =========================================================================
    # /reminders delete
    # =========================================================================

    @reminders_group.command(name="delete")
    @app_commands.describe(
        reminder_id="The reminder ID to delete",
        channel="Channel the reminder belongs to (defaults to this one)",
    )
    async def delete_reminder(
        self,
        interaction: discord.Interaction,
        reminder_id: str,
        channel: Optional[discord.TextChannel] = None,
    ):
        """Delete a reminder."""
        await interaction.response.defer(ephemeral=True)

        target = self._target(interaction, channel)
        if target is None:
            await interaction.followup.send("Please pick a channel.", ephemeral=True)
            return
        if not await self._check_permission(interaction, target):
            return

        try:
            deleted = await self.registry.delete(reminder_id.strip(), target.id)
            if deleted:
                await interaction.followup.send("Reminder deleted.", ephemeral=True)
            else:
                await interaction.followup.send(NOT_FOUND, ephemeral=True)
        except Exception as e:
            logger.error(f"Error deleting reminder {reminder_id}: {e}", exc_info=True)
            await interaction.followup.send(COMMAND_ERROR, ephemeral=True)

    # =========================================================================
    # /reminders help
    # =========================================================================

    @reminders_group.command(name="help")
    async def show_help(self, interaction: discord.Interaction):
        """Show reminder usage."""
        await interaction.response.send_message(HELP_TEXT, ephemeral=True)


async def setup(bot: commands.Bot, registry: ReminderRegistry, config: ReminderConfig):
    """Register the reminder commands cog."""
    await bot.add_cog(ReminderCommands(bot, registry, config))
