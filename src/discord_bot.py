"""
icsReminder Discord Bot

Maintains the Discord connection, loads stored calendar reminders for the
channels the bot can see, and runs the reminder scheduler.
"""

import asyncio
import logging
import os
from typing import Optional

import asyncpg
import discord
from discord.ext import commands
from dotenv import load_dotenv

from commands import reminder_commands
from reminders import (
    AccountDataStore,
    ReminderConfig,
    ReminderMessenger,
    ReminderRegistry,
    ReminderScheduler,
    ReminderStore,
)

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("icsReminder")


class ReminderBot(commands.Bot):
    """Discord bot that turns uploaded calendars into channel reminders."""

    def __init__(self, config: Optional[ReminderConfig] = None):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.messages = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config or ReminderConfig.from_env()
        self.db_pool: Optional[asyncpg.Pool] = None
        self.registry: Optional[ReminderRegistry] = None
        self.scheduler: Optional[ReminderScheduler] = None
        self._reminders_loaded = False
        self._ready_event = asyncio.Event()

    async def setup_hook(self):
        """Called when the bot is starting up."""
        logger.info(f"Setup: DATABASE_URL={'set' if self.config.database_url else 'missing'}")
        logger.info(f"Setup: REMINDER_TIMEZONE={self.config.timezone}")
        logger.info(f"Setup: REMINDER_PERMISSION={self.config.permission}")

        if not self.config.database_url:
            raise RuntimeError("DATABASE_URL is required to store reminders")

        self.db_pool = await asyncpg.create_pool(self.config.database_url)
        account_data = AccountDataStore(self.db_pool)
        await account_data.ensure_schema()

        store = ReminderStore(account_data, self.config.timezone)
        self.registry = ReminderRegistry(store)
        messenger = ReminderMessenger(self)
        self.scheduler = ReminderScheduler(
            self, self.registry, messenger.send, self.config.timezone
        )

        await reminder_commands.setup(self, self.registry, self.config)
        synced = await self.tree.sync()
        logger.info(f"Synced {len(synced)} application command(s)")

    async def on_ready(self):
        """Called when the bot has connected to Discord."""
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        # on_ready fires again after reconnects
        if not self._reminders_loaded:
            self._reminders_loaded = True
            await self._load_reminders()
            self.scheduler.start()

        self._ready_event.set()

    async def _load_reminders(self):
        """Load reminders for every stored room the bot can still see."""
        try:
            stored_rooms = await self.registry.store.rooms_with_reminders()
        except Exception as e:
            logger.error(f"Failed to list rooms with reminders: {e}", exc_info=True)
            return

        visible = [room_id for room_id in stored_rooms if self.get_channel(room_id) is not None]
        skipped = len(stored_rooms) - len(visible)
        if skipped:
            logger.info(f"Skipping {skipped} room(s) the bot can no longer see")
        await self.registry.load(visible)

    def is_ready(self) -> bool:
        """Check if the bot is ready."""
        return self._ready_event.is_set()

    async def wait_until_ready(self):
        """Wait until the bot is ready."""
        await self._ready_event.wait()

    async def close(self):
        """Clean up resources on shutdown."""
        if self.scheduler:
            self.scheduler.stop()
        if self.db_pool:
            await self.db_pool.close()
        await super().close()


async def main():
    """Run the bot."""
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        print("Error: DISCORD_BOT_TOKEN environment variable not set")
        print("Please set it in your .env file")
        return

    bot = ReminderBot()
    async with bot:
        await bot.start(token)


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
