"""Message formatting utilities for the game display."""

import re
from collections.abc import Sequence

from models import CatalogArtist, GameStatus, GameView, LossReason, PlayerScore

# URL pattern for detecting links
URL_PATTERN = re.compile(r"https?://\S+")

LOSS_MESSAGES = {
    LossReason.OUT_OF_GUESSES: "Out of guesses!",
    LossReason.TIME_UP: "Time's up!",
    LossReason.SKIPPED: "Skipped.",
}


def suppress_url_embeds(text: str) -> str:
    """Wrap URLs in angle brackets to suppress Discord embeds."""
    return URL_PATTERN.sub(r"<\g<0>>", text)


def format_guess_bar(guesses_used: int, max_guesses: int) -> str:
    """One square per attempt: spent ones dark, remaining ones lit."""
    used = min(guesses_used, max_guesses)
    return "⬛" * used + "🟪" * (max_guesses - used)


def format_timer(time_remaining: int, time_allotment: int, width: int = 10) -> str:
    """Countdown progress bar, e.g. `▰▰▰▱▱ 3s`."""
    filled = round(width * time_remaining / time_allotment) if time_allotment > 0 else 0
    filled = max(0, min(width, filled))
    return f"`{'▰' * filled}{'▱' * (width - filled)}` {time_remaining}s"


def format_artist_choices(artists: Sequence[CatalogArtist], limit: int = 10) -> str:
    """List search results for the artist picker."""
    if not artists:
        return "*No artists found*"

    lines = ["**Pick an artist:**"]
    for i, artist in enumerate(artists[:limit], 1):
        genres = f" · {', '.join(artist.genres[:2])}" if artist.genres else ""
        lines.append(f"{i}. {artist.name}{genres}")
    return "\n".join(lines)


def format_round_message(view: GameView) -> str:
    """Format the in-round display shown alongside the pixelated cover."""
    if view.target is None:
        return format_round_result(view)

    lines = [
        f"# {view.target.artist_name.upper()}",
        f"Guess the **{view.target.kind.value}** · {view.difficulty.value.title()}",
        "",
        f"{format_guess_bar(view.guesses_used, view.max_guesses)}  ({view.max_guesses - view.guesses_used} left)",
    ]

    if view.timer_enabled and view.time_remaining is not None and view.time_allotment:
        lines.append(f"⏱️ {format_timer(view.time_remaining, view.time_allotment)}")

    if view.hint_text:
        lines.append(f"💡 `{view.hint_text}`")
    if view.hint_extra:
        lines.append(f"➕ {view.hint_extra}")

    if view.last_wrong_guess:
        lines.append(f"❌ Incorrect: *{view.last_wrong_guess}*")

    if view.notice:
        lines.append(f"⚠️ {view.notice.message}")

    lines.extend(
        [
            "",
            f"⚡ **{view.score:,}** XP · `/guess` `/hint` `/skip`",
        ]
    )
    return "\n".join(lines)


def format_round_result(view: GameView) -> str:
    """Format the end-of-round reveal."""
    if view.status == GameStatus.ALL_CLEARED:
        artist = view.artist_name or "this artist"
        return (
            f"# 🏁 All cleared!\n\nYou've guessed everything by **{artist}** on "
            f"{view.difficulty.value.title()}. Use `/next` to play them again or `/quit` to pick someone else."
        )

    if view.target is None:
        return "*No round in progress.* Use `/search` or `/random` to start."

    if view.status == GameStatus.WON:
        header = f"# ✅ CORRECT! +{view.last_award or 0:,} XP"
    elif view.status == GameStatus.LOST:
        reason = LOSS_MESSAGES.get(view.loss_reason, "") if view.loss_reason else ""
        header = f"# ❌ GAME OVER · {reason}" if reason else "# ❌ GAME OVER"
    else:
        return format_round_message(view)

    lines = [
        header,
        "",
        f"**{view.target.name}**",
        f"{view.target.artist_name} · {view.target.release_year}",
    ]
    if view.target.external_url:
        lines.append(f"🎧 {suppress_url_embeds(view.target.external_url)}")
    lines.extend(
        [
            "",
            f"⚡ **{view.score:,}** XP · `/next` for another round",
        ]
    )
    return "\n".join(lines)


def format_player_stats(stats: PlayerScore | None, display_name: str, score: int) -> str:
    """Format a player's XP and round stats."""
    if not stats or stats.rounds_played == 0:
        return f"**{display_name}** has **{score:,}** XP and hasn't finished a round yet!"

    win_rate = stats.rounds_won / stats.rounds_played * 100
    lines = [
        f"## 📊 Stats for {display_name}",
        "",
        f"**XP:** {score:,}",
        f"**Rounds Played:** {stats.rounds_played}",
        f"**Rounds Won:** {stats.rounds_won} ({win_rate:.0f}%)",
    ]
    return "\n".join(lines)


def format_time_up(view: GameView, mention: str) -> str:
    """Announcement posted when a player's countdown runs out."""
    return f"⏰ {mention} time's up!\n\n{format_round_result(view)}"
