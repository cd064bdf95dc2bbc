"""Main entry point for the Pixelcover bot."""

import asyncio
import logging
import sys

import discord
from discord.ext import commands

from bot.services.catalog import SpotifyCatalog
from bot.services.game_service import GameService
from config import Config
from db.database import Database

logger = logging.getLogger(__name__)

COGS = ["bot.commands.game"]

REQUIRED_SETTINGS = {
    "DISCORD_TOKEN": Config.DISCORD_TOKEN,
    "SPOTIFY_CLIENT_ID": Config.SPOTIFY_CLIENT_ID,
    "SPOTIFY_CLIENT_SECRET": Config.SPOTIFY_CLIENT_SECRET,
}


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class PixelcoverBot(commands.Bot):
    """Bot that owns the score database, the Spotify client and all game sessions."""

    def __init__(self):
        # Slash commands only; no message content needed
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=discord.Intents.default(),
            help_command=None,
        )

        self.db: Database = None
        self.catalog: SpotifyCatalog = None
        self.game_service: GameService = None

    async def setup_hook(self):
        """Open resources and register commands before connecting."""
        self.db = Database(Config.DATABASE_PATH)
        await self.db.connect()
        logger.info(f"Score database ready at {Config.DATABASE_PATH}")

        self.catalog = SpotifyCatalog()
        self.game_service = GameService(self.db, self.catalog)

        for cog in COGS:
            await self.load_extension(cog)
            logger.info(f"Loaded cog: {cog}")

        synced = await self.tree.sync()
        logger.info(f"Synced {len(synced)} slash command(s)")

    async def on_ready(self):
        logger.info(f"Logged in as {self.user} (ID: {self.user.id}) in {len(self.guilds)} guild(s)")
        await self.change_presence(
            activity=discord.Activity(type=discord.ActivityType.playing, name="/pixelcover"),
        )

    async def close(self):
        """Stop every round timer, then release the HTTP client and database."""
        if self.game_service:
            await self.game_service.close_all()
        if self.catalog:
            await self.catalog.close()
        if self.db:
            await self.db.close()
        await super().close()


async def main():
    configure_logging()

    missing = [name for name, value in REQUIRED_SETTINGS.items() if not value]
    if missing:
        logger.error(f"Missing settings: {', '.join(missing)}. Set them in your .env file.")
        sys.exit(1)

    bot = PixelcoverBot()
    try:
        await bot.start(Config.DISCORD_TOKEN)
    except discord.LoginFailure:
        logger.error("Discord rejected the token. Check DISCORD_TOKEN in your .env file.")
        sys.exit(1)
    finally:
        await bot.close()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    run()
