"""Game commands for Pixelcover."""

import contextlib
import io
import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands, ui
from discord.ext import commands

from bot.services.catalog import CatalogError
from bot.services.game_service import GameService, GameSession, GuessResult
from models import CatalogArtist, Difficulty, GameStatus
from utils.formatting import (
    format_artist_choices,
    format_player_stats,
    format_round_message,
    format_round_result,
    format_time_up,
)
from utils.pixelate import pixelate_bytes

if TYPE_CHECKING:
    from bot.main import PixelcoverBot

logger = logging.getLogger(__name__)

DIFFICULTY_CHOICES = [
    app_commands.Choice(name="Easy (top tracks)", value=Difficulty.EASY.value),
    app_commands.Choice(name="Medium", value=Difficulty.MEDIUM.value),
    app_commands.Choice(name="Hard (deep cuts)", value=Difficulty.HARD.value),
]


class ArtistSelect(ui.Select):
    """Dropdown of artist search results."""

    def __init__(self, artists: list[CatalogArtist]):
        options = [
            discord.SelectOption(
                label=artist.name[:100],
                value=artist.id,
                description=", ".join(artist.genres[:3])[:100] or None,
            )
            for artist in artists[:25]
        ]
        super().__init__(placeholder="Choose an artist", options=options)

    async def callback(self, interaction: discord.Interaction):
        view: ArtistSelectView = self.view  # type: ignore[assignment]
        await view.choose(interaction, self.values[0])


class ArtistSelectView(ui.View):
    """Artist picker shown after /search."""

    def __init__(
        self,
        cog: "GameCommands",
        user_id: int,
        session: GameSession,
        artists: list[CatalogArtist],
        difficulty: Difficulty | None,
        timer: bool | None,
    ):
        super().__init__(timeout=120)
        self.cog = cog
        self.user_id = user_id
        self.session = session
        self.artists = {artist.id: artist for artist in artists}
        self.difficulty = difficulty
        self.timer = timer
        self.add_item(ArtistSelect(artists))

    async def choose(self, interaction: discord.Interaction, artist_id: str):
        if interaction.user.id != self.user_id:
            await interaction.response.send_message("This search is not for you.", ephemeral=True)
            return

        artist = self.artists.get(artist_id)
        if artist is None:
            await interaction.response.send_message("That artist is no longer available.", ephemeral=True)
            return

        self.stop()
        await interaction.response.edit_message(content=f"Loading covers by **{artist.name}**...", view=None)
        await self.session.start_specific(artist, self.difficulty, self.timer)
        await self.cog.send_state(interaction, self.session)


class QuitConfirmView(ui.View):
    """Confirmation view for quitting to the menu."""

    def __init__(self, service: GameService, channel_id: str, user_id: int, session: GameSession):
        super().__init__(timeout=60)
        self.service = service
        self.channel_id = channel_id
        self.user_id = user_id
        self.session = session
        self.confirmed = False

    @ui.button(label="Quit", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, button: ui.Button):
        if interaction.user.id != self.user_id:
            await interaction.response.send_message("This confirmation is not for you.", ephemeral=True)
            return

        self.confirmed = True
        self.stop()

        await self.service.quit_session(self.channel_id, str(self.user_id))

        await interaction.response.edit_message(
            content=f"Back to the menu. You keep your **{self.session.score:,}** XP.",
            view=None,
        )

    @ui.button(label="Cancel", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, button: ui.Button):
        if interaction.user.id != self.user_id:
            await interaction.response.send_message("This confirmation is not for you.", ephemeral=True)
            return

        self.stop()
        await interaction.response.edit_message(content="Keep guessing!", view=None)


class GameCommands(commands.Cog):
    """Cog containing all game commands."""

    bot: "PixelcoverBot"

    def __init__(self, bot: "PixelcoverBot"):
        self.bot = bot

    async def _get_session(self, interaction: discord.Interaction) -> GameSession:
        channel_id = str(interaction.channel_id)
        player_id = str(interaction.user.id)
        session = await self.bot.game_service.get_session(channel_id, player_id)

        channel = interaction.channel
        mention = interaction.user.mention

        async def notify_time_up(expired: GameSession) -> None:
            if channel is None or not hasattr(channel, "send"):
                return
            try:
                await channel.send(format_time_up(expired.view(), mention), file=await self._render_cover(expired))
            except discord.HTTPException:
                logger.warning(f"Failed to announce time-up in channel {channel_id}")

        self.bot.game_service.set_timeout_notifier(channel_id, player_id, notify_time_up)
        return session

    async def _render_cover(self, session: GameSession) -> discord.File | None:
        """Pixelate the current cover for upload."""
        target = session.target
        if target is None:
            return None
        try:
            image_bytes = await self.bot.catalog.fetch_image(target.cover_url)
            png = pixelate_bytes(image_bytes, session.pixel_factor)
        except (CatalogError, OSError, ValueError):
            logger.warning(f"Failed to render cover for {target.id}", exc_info=True)
            return None
        return discord.File(io.BytesIO(png), filename="cover.png")

    async def send_state(self, interaction: discord.Interaction, session: GameSession, ephemeral: bool = False):
        """Send the session's current state as a followup."""
        view = session.view()
        if view.status == GameStatus.MENU:
            message = view.notice.message if view.notice else "Back at the menu."
            await interaction.followup.send(f"⚠️ {message}", ephemeral=True)
            return

        if view.status == GameStatus.PLAYING:
            text = format_round_message(view)
        else:
            text = format_round_result(view)

        cover = await self._render_cover(session)
        if cover is not None:
            await interaction.followup.send(text, file=cover, ephemeral=ephemeral)
        else:
            await interaction.followup.send(text, ephemeral=ephemeral)

    @app_commands.command(name="search", description="Search for an artist to play")
    @app_commands.describe(
        query="Artist name",
        difficulty="Which covers to draw from (default: medium)",
        timer="Race the clock for a time bonus",
    )
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def search(
        self,
        interaction: discord.Interaction,
        query: str,
        difficulty: app_commands.Choice[str] | None = None,
        timer: bool | None = None,
    ):
        """Search artists and show a picker."""
        logger.info(f"Search command invoked by {interaction.user}: '{query}'")
        await interaction.response.defer(ephemeral=True)

        session = await self._get_session(interaction)
        if session.status != GameStatus.MENU:
            await interaction.followup.send("You're already playing! Use `/quit` first.", ephemeral=True)
            return

        artists = await session.search(query)
        if not artists:
            message = session.notice.message if session.notice else "No artists found"
            await interaction.followup.send(f"⚠️ {message}", ephemeral=True)
            return

        picker = ArtistSelectView(
            self,
            interaction.user.id,
            session,
            artists,
            Difficulty(difficulty.value) if difficulty else None,
            timer,
        )
        await interaction.followup.send(format_artist_choices(artists), view=picker, ephemeral=True)

    @app_commands.command(name="random", description="Play covers by a random artist")
    @app_commands.describe(
        difficulty="Which covers to draw from (default: medium)",
        timer="Race the clock for a time bonus",
    )
    @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
    async def random(
        self,
        interaction: discord.Interaction,
        difficulty: app_commands.Choice[str] | None = None,
        timer: bool | None = None,
    ):
        """Start a round with a random artist."""
        logger.info(f"Random command invoked by {interaction.user}")
        await interaction.response.defer()

        session = await self._get_session(interaction)
        if session.status != GameStatus.MENU:
            await interaction.followup.send("You're already playing! Use `/quit` first.", ephemeral=True)
            return
        if session.loading:
            await interaction.followup.send("Still loading, hang on!", ephemeral=True)
            return

        await session.start_random(Difficulty(difficulty.value) if difficulty else None, timer)
        await self.send_state(interaction, session)

    @app_commands.command(name="guess", description="Guess the title of the cover")
    @app_commands.describe(title="The album or track title")
    async def guess(self, interaction: discord.Interaction, title: str):
        """Submit a guess for the current round."""
        logger.info(f"Guess command invoked by {interaction.user}: '{title}'")
        await interaction.response.defer()

        session = await self._get_session(interaction)
        if session.status != GameStatus.PLAYING:
            await interaction.followup.send("No active round! Start one with `/search` or `/random`", ephemeral=True)
            return

        result = await session.submit_guess(title)
        if result == GuessResult.IGNORED:
            await interaction.followup.send("Type a title to guess.", ephemeral=True)
            return

        await self.send_state(interaction, session)

    @app_commands.command(name="hint", description="Spend XP to reveal part of the title")
    async def hint(self, interaction: discord.Interaction):
        """Buy the next hint level."""
        await interaction.response.defer(ephemeral=True)

        session = await self._get_session(interaction)
        success, message = await session.request_hint()
        if not success:
            await interaction.followup.send(f"⚠️ {message}", ephemeral=True)
            return

        view = session.view()
        extra = f"\n➕ {view.hint_extra}" if view.hint_extra else ""
        await interaction.followup.send(
            f"💡 `{message}`{extra}\n-{session.rules.hint_cost} XP · {view.score:,} left", ephemeral=True
        )

    @app_commands.command(name="skip", description="Spend XP to give up on this cover")
    async def skip(self, interaction: discord.Interaction):
        """Skip the current round."""
        logger.info(f"Skip command invoked by {interaction.user}")
        await interaction.response.defer()

        session = await self._get_session(interaction)
        success, message = await session.skip()
        if not success:
            await interaction.followup.send(f"⚠️ {message}", ephemeral=True)
            return

        await self.send_state(interaction, session)

    @app_commands.command(name="next", description="Play the next round")
    async def next(self, interaction: discord.Interaction):
        """Load the next round."""
        await interaction.response.defer()

        session = await self._get_session(interaction)
        if session.loading:
            await interaction.followup.send("Still loading, hang on!", ephemeral=True)
            return
        if not await session.next_round() and session.status == GameStatus.PLAYING:
            await interaction.followup.send("Finish this round first!", ephemeral=True)
            return

        await self.send_state(interaction, session)

    @app_commands.command(name="quit", description="Quit to the menu (your XP is kept)")
    async def quit(self, interaction: discord.Interaction):
        """Quit the current game with confirmation."""
        session = await self._get_session(interaction)
        if session.status == GameStatus.MENU:
            await interaction.response.send_message("You're not in a game.", ephemeral=True)
            return

        view = QuitConfirmView(
            self.bot.game_service, str(interaction.channel_id), interaction.user.id, session
        )
        await interaction.response.send_message("**Quit game?** You'll keep your XP.", view=view, ephemeral=True)

        # Handle timeout
        await view.wait()
        if not view.confirmed and not interaction.is_expired():
            with contextlib.suppress(discord.NotFound):
                await interaction.edit_original_response(content="Quit timed out.", view=None)

    @app_commands.command(name="score", description="Show your XP and stats")
    async def score(self, interaction: discord.Interaction):
        """Show the player's XP and round stats."""
        await interaction.response.defer(ephemeral=True)

        ledger = await self.bot.game_service.get_ledger(str(interaction.user.id))
        stats = await self.bot.db.get_player_score(ledger.key)
        await interaction.followup.send(
            format_player_stats(stats, interaction.user.display_name, ledger.score), ephemeral=True
        )

    @app_commands.command(name="pixelcover", description="Show help for Pixelcover")
    async def help(self, interaction: discord.Interaction):
        """Show help information."""
        rules = self.bot.game_service.rules
        help_text = f"""
**Pixelcover**

Guess the album or track from its pixelated cover!

**How to Play:**
1. Use `/search` to pick an artist, or `/random` for a surprise
2. You'll see a pixelated cover
3. Use `/guess` to name it; every miss sharpens the image
4. You have {rules.max_guesses} guesses per cover

**Scoring:**
- Up to {rules.max_award} XP for a first-try guess, less for each miss
- Medium pays x1.5, Hard pays x2
- With the timer on, seconds left add a bonus

**Commands:**
- `/search <artist> [difficulty] [timer]` - Pick an artist
- `/random [difficulty] [timer]` - Random artist
- `/guess <title>` - Submit your guess
- `/hint` - Reveal part of the title ({rules.hint_cost} XP)
- `/skip` - Give up on this cover ({rules.skip_cost} XP)
- `/next` - Next round
- `/quit` - Back to the menu
- `/score` - Your XP and stats
"""
        await interaction.response.send_message(help_text, ephemeral=True)


async def setup(bot: "PixelcoverBot"):
    """Load the cog."""
    await bot.add_cog(GameCommands(bot))
