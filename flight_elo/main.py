"""
Flight Elo service host.

The discord.py bot owns the event loop: it wires the store, the runtime
configuration, the live updater and the replay orchestrator together and runs
the hourly replay from a cog.
"""

import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands

from flight_elo.config import Config
from flight_elo.database.database import Database
from flight_elo.services.configuration import ConfigurationService
from flight_elo.services.elo_updater import LiveEloService
from flight_elo.services.replay_orchestrator import ReplayOrchestrator
from flight_elo.utils.elo_exceptions import EloEngineError
from flight_elo.utils.logger import setup_logger

EXTENSIONS = (
    'flight_elo.cogs.elo_maintenance',
)


class EloBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None,
            owner_id=Config.OWNER_DISCORD_ID or None,
        )

        self.logger = setup_logger(__name__)
        self.db: Optional[Database] = None
        self.config_service: Optional[ConfigurationService] = None
        self.elo_service: Optional[LiveEloService] = None
        self.replay_orchestrator: Optional[ReplayOrchestrator] = None

    async def setup_hook(self):
        """Build the rating services before any cog or command can run"""
        self.logger.info("Starting Flight Elo services...")

        self.db = Database()
        await self.db.initialize()

        self.config_service = ConfigurationService(self.db.session_factory)
        await self.config_service.load_all()

        # Settings are read through the config service on every event, so overrides apply live
        self.elo_service = LiveEloService(self.db, self.config_service)
        self.replay_orchestrator = ReplayOrchestrator(self.db, self.elo_service)
        self.logger.info(f"Rating settings: {self.elo_service.settings}")

        for extension in EXTENSIONS:
            try:
                await self.load_extension(extension)
            except commands.ExtensionError as e:
                self.logger.error(f"Could not load {extension}: {e}", exc_info=True)
            else:
                self.logger.info(f"Loaded extension {extension}")

    async def on_ready(self):
        self.logger.info(f"Flight Elo connected as {self.user}")

    async def on_command_error(self, ctx: commands.Context, error: Exception):
        if isinstance(error, commands.CommandNotFound):
            return

        if isinstance(error, (commands.NotOwner, commands.CheckFailure)):
            await ctx.send("❌ Only the bot owner can manage ratings.")
            return

        original = getattr(error, 'original', error)
        if isinstance(original, (commands.MissingRequiredArgument, commands.BadArgument)):
            await ctx.send(f"❌ {original}")
            return

        if isinstance(original, EloEngineError):
            self.logger.warning(f"Command {ctx.command} failed: {original}")
            await ctx.send(original.user_message)
            return

        self.logger.error(
            f"Unexpected error in command {ctx.command}: {error}\n"
            + "".join(traceback.format_exception(type(original), original, original.__traceback__))
        )
        await ctx.send("❌ Something went wrong while running that command.")

    async def close(self):
        self.logger.info("Stopping Flight Elo...")
        if self.db:
            await self.db.close()
        await super().close()


async def main():
    Config.validate()

    async with EloBot() as bot:
        try:
            await bot.start(Config.DISCORD_TOKEN)
        except discord.LoginFailure:
            logging.error("Discord rejected the token, check DISCORD_TOKEN")


if __name__ == "__main__":
    asyncio.run(main())
