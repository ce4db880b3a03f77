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

"""Tests for rendering and sending reminder messages."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from conftest import DAILY_STANDUP
from reminders.delivery import (
    DISCORD_MAX_LENGTH,
    DeliveryFailure,
    ReminderMessenger,
    build_embed,
    render_message,
)
from reminders.ics import CalendarEvent
from reminders.models import MessageKind, ReminderMessage, ReminderRecord

ROOM = 111


@pytest.fixture
def record():
    return ReminderRecord.new(CalendarEvent.parse(DAILY_STANDUP), ROOM)


def mock_response(status: int, reason: str):
    response = MagicMock()
    response.status = status
    response.reason = reason
    return response


class TestRender:
    """Test the Discord rendering of messages."""

    def test_trigger_embed(self, record):
        next_occurrence = datetime(2026, 1, 6, 9, tzinfo=timezone.utc)
        embed = build_embed(ReminderMessage.trigger(record, next_occurrence))

        assert embed.title == "Reminder"
        assert embed.description == "Standup"
        assert embed.footer.text == "ics_reminder.trigger"
        fields = {field.name: field.value for field in embed.fields}
        assert fields["ID"] == f"`{record.uid}`"
        ts = int(next_occurrence.timestamp())
        assert fields["Next"] == f"<t:{ts}:F> (<t:{ts}:R>)"

    def test_preview_has_no_next(self, record):
        embed = build_embed(ReminderMessage.preview(record))
        assert embed.footer.text == "ics_reminder.preview"
        assert "Next" not in [field.name for field in embed.fields]

    def test_create_message(self, record):
        message = ReminderMessage.create(record, "plain body", "**rich** body")
        assert message.kind == MessageKind.CREATE

        rendered = render_message(message)
        assert rendered["content"] == "plain body"
        assert rendered["embed"].description == "**rich** body"
        assert rendered["file"].filename == f"{record.uid}.ics"
        assert rendered["file"].fp.read().decode("utf-8") == record.raw_event

    def test_long_body_truncated(self, record):
        record.summary_plain = "x" * (DISCORD_MAX_LENGTH + 50)
        rendered = render_message(ReminderMessage.preview(record))
        assert len(rendered["content"]) == DISCORD_MAX_LENGTH
        assert rendered["content"].endswith("...")


class TestMessenger:
    """Test sending into channels."""

    @pytest.mark.asyncio
    async def test_send_to_cached_channel(self, record):
        channel = MagicMock()
        channel.send = AsyncMock(return_value="sent")
        bot = MagicMock()
        bot.get_channel.return_value = channel

        result = await ReminderMessenger(bot).send(ROOM, ReminderMessage.preview(record))

        assert result == "sent"
        bot.get_channel.assert_called_once_with(ROOM)
        kwargs = channel.send.call_args.kwargs
        assert kwargs["content"] == "Standup"
        assert isinstance(kwargs["embed"], discord.Embed)

    @pytest.mark.asyncio
    async def test_fetches_uncached_channel(self, record):
        channel = MagicMock()
        channel.send = AsyncMock()
        bot = MagicMock()
        bot.get_channel.return_value = None
        bot.fetch_channel = AsyncMock(return_value=channel)

        await ReminderMessenger(bot).send(ROOM, ReminderMessage.preview(record))
        bot.fetch_channel.assert_awaited_once_with(ROOM)
        channel.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_channel(self, record):
        bot = MagicMock()
        bot.get_channel.return_value = None
        bot.fetch_channel = AsyncMock(
            side_effect=discord.NotFound(mock_response(404, "Not Found"), "Unknown Channel")
        )

        with pytest.raises(DeliveryFailure):
            await ReminderMessenger(bot).send(ROOM, ReminderMessage.preview(record))

    @pytest.mark.asyncio
    async def test_rejected_send(self, record):
        channel = MagicMock()
        channel.send = AsyncMock(
            side_effect=discord.Forbidden(mock_response(403, "Forbidden"), "Missing Access")
        )
        bot = MagicMock()
        bot.get_channel.return_value = channel

        with pytest.raises(DeliveryFailure):
            await ReminderMessenger(bot).send(ROOM, ReminderMessage.preview(record))
