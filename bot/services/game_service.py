"""Game service for managing pixelated-cover rounds."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Optional

from bot.services.catalog import CatalogError, CatalogGateway
from bot.services.score_ledger import ScoreLedger
from bot.services.scoring_service import calculate_award, next_pixel_factor, timer_allotment
from db.database import Database
from models import (
    CatalogArtist,
    CatalogItem,
    Difficulty,
    ErrorKind,
    GameMode,
    GameRules,
    GameStatus,
    GameView,
    HintLevel,
    LossReason,
    Notice,
    TargetItem,
    TargetView,
)
from utils.hints import extract_extra_hint, render_hint
from utils.normalizer import is_blank, is_match, normalize

logger = logging.getLogger(__name__)

SessionCallback = Callable[["GameSession"], Awaitable[None]]


class GuessResult(str, Enum):
    IGNORED = "IGNORED"
    WRONG = "WRONG"
    CORRECT = "CORRECT"
    LOST = "LOST"


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class GameSession:
    """Round state machine for a single player.

    All state changes go through the action methods below. Each action
    finishes mutating state before it awaits anything, so a handler never
    observes a half-applied transition.
    """

    def __init__(
        self,
        catalog: CatalogGateway,
        ledger: ScoreLedger,
        rules: GameRules | None = None,
        *,
        tick_seconds: float = 1.0,
        on_score_change: SessionCallback | None = None,
        on_round_end: SessionCallback | None = None,
    ):
        self.catalog = catalog
        self.ledger = ledger
        self.rules = rules or GameRules.from_config()
        self.tick_seconds = tick_seconds
        self.on_score_change = on_score_change
        self.on_round_end = on_round_end

        self._status = GameStatus.MENU
        self._mode = GameMode.SPECIFIC
        self._difficulty = Difficulty.MEDIUM
        self._timer_enabled = False
        self._artist: CatalogArtist | None = None
        self._search_results: list[CatalogArtist] = []
        self._played_ids: set[str] = set()
        self._target: TargetItem | None = None
        self._notice: Notice | None = None
        self._loading = False
        self._generation = 0
        self._timer_task: asyncio.Task | None = None
        self._reset_progress()

    def _reset_progress(self) -> None:
        self._guesses_used = 0
        self._pixel_factor = self.rules.starting_pixelation
        self._last_wrong_guess: str | None = None
        self._hint_level = HintLevel.NONE
        self._time_remaining: int | None = None
        self._loss_reason: LossReason | None = None
        self._last_award: int | None = None

    # Read-only state

    @property
    def status(self) -> GameStatus:
        return self._status

    @property
    def mode(self) -> GameMode:
        return self._mode

    @property
    def difficulty(self) -> Difficulty:
        return self._difficulty

    @property
    def timer_enabled(self) -> bool:
        return self._timer_enabled

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def artist(self) -> CatalogArtist | None:
        return self._artist

    @property
    def search_results(self) -> list[CatalogArtist]:
        return list(self._search_results)

    @property
    def played_ids(self) -> frozenset[str]:
        return frozenset(self._played_ids)

    @property
    def target(self) -> TargetItem | None:
        return self._target

    @property
    def guesses_used(self) -> int:
        return self._guesses_used

    @property
    def pixel_factor(self) -> int:
        return self._pixel_factor

    @property
    def hint_level(self) -> HintLevel:
        return self._hint_level

    @property
    def time_remaining(self) -> int | None:
        return self._time_remaining

    @property
    def loss_reason(self) -> LossReason | None:
        return self._loss_reason

    @property
    def notice(self) -> Notice | None:
        return self._notice

    @property
    def score(self) -> int:
        return self.ledger.score

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def view(self) -> GameView:
        """Snapshot of everything the presentation layer needs."""
        target_view = None
        hint_text = None
        hint_extra = None
        if self._target:
            target_view = TargetView(
                name=self._target.name,
                artist_name=self._target.artist_name,
                cover_url=self._target.cover_url,
                release_year=self._target.release_year,
                external_url=self._target.external_url,
                kind=self._target.kind,
            )
            hint_text = render_hint(self._target.name, self._hint_level)
            if self._hint_level != HintLevel.NONE:
                hint_extra = extract_extra_hint(self._target.name)

        return GameView(
            status=self._status,
            mode=self._mode,
            difficulty=self._difficulty,
            artist_name=self._artist.name if self._artist else None,
            target=target_view,
            guesses_used=self._guesses_used,
            max_guesses=self.rules.max_guesses,
            pixel_factor=self._pixel_factor,
            hint_level=self._hint_level,
            hint_text=hint_text,
            hint_extra=hint_extra,
            timer_enabled=self._timer_enabled,
            time_remaining=self._time_remaining,
            time_allotment=timer_allotment(self._difficulty, self.rules) if self._timer_enabled else None,
            score=self.ledger.score,
            loss_reason=self._loss_reason,
            last_wrong_guess=self._last_wrong_guess,
            last_award=self._last_award,
            notice=self._notice,
            loading=self._loading,
        )

    # Menu actions

    async def search(self, query: str) -> list[CatalogArtist]:
        """Search artists to pick from. Only available from the menu."""
        if self._status != GameStatus.MENU or self._loading or is_blank(query):
            return []

        self._loading = True
        self._search_results = []
        self._notice = None
        generation = self._generation
        try:
            results = await self.catalog.search_artists(query.strip())
        except CatalogError as e:
            logger.warning(f"Artist search for '{query}' failed: {e}")
            self._notice = Notice(kind=ErrorKind.SEARCH_FAILED, message="Error searching artists")
            return []
        finally:
            if generation == self._generation:
                self._loading = False

        if generation != self._generation:
            return []
        self._search_results = results
        if not results:
            self._notice = Notice(kind=ErrorKind.NO_ARTISTS_FOUND, message="No artists found")
        return list(results)

    async def start_specific(
        self,
        artist: CatalogArtist,
        difficulty: Difficulty | None = None,
        timer_enabled: bool | None = None,
    ) -> bool:
        """Start playing covers by a chosen artist."""
        if self._status != GameStatus.MENU or self._loading:
            return False

        self._configure(GameMode.SPECIFIC, difficulty, timer_enabled)
        self._artist = artist
        self._played_ids.clear()
        self._search_results = []
        return await self._run_load(self._load_round)

    async def start_random(self, difficulty: Difficulty | None = None, timer_enabled: bool | None = None) -> bool:
        """Start playing covers by an artist the catalog picks."""
        if self._status != GameStatus.MENU or self._loading:
            return False

        self._configure(GameMode.RANDOM, difficulty, timer_enabled)
        self._played_ids.clear()
        self._search_results = []
        return await self._run_load(self._load_random_artist_round)

    def _configure(self, mode: GameMode, difficulty: Difficulty | None, timer_enabled: bool | None) -> None:
        self._mode = mode
        if difficulty is not None:
            self._difficulty = difficulty
        if timer_enabled is not None:
            self._timer_enabled = timer_enabled

    # Round loading

    async def _run_load(self, loader: Callable[[int], Awaitable[bool]]) -> bool:
        """Run a round load with the loading flag set.

        Loads are single-flight. A load whose generation is no longer
        current (the player quit meanwhile) applies nothing.
        """
        self._loading = True
        self._notice = None
        generation = self._generation
        try:
            return await loader(generation)
        finally:
            if generation == self._generation:
                self._loading = False

    async def _load_random_artist_round(self, generation: int) -> bool:
        try:
            name = await self.catalog.get_random_artist_name()
            candidates = await self.catalog.search_artists(name)
        except CatalogError as e:
            if generation != self._generation:
                return False
            logger.warning(f"Failed to fetch random artist: {e}")
            self._fail_round_load("Failed to fetch random artist. Try again.")
            return False

        if generation != self._generation:
            return False
        if not candidates:
            logger.warning(f"Random artist '{name}' not found in catalog")
            self._fail_round_load("Failed to fetch random artist. Try again.")
            return False

        # Played ids carry over between random artists
        logger.info(f"Random artist selected: {candidates[0].name}")
        self._artist = candidates[0]
        return await self._load_round(generation)

    async def _load_round(self, generation: int) -> bool:
        """Pick an unplayed item for the current artist and start a round."""
        artist = self._artist
        if artist is None:
            self._fail_round_load("No artist selected")
            return False

        try:
            item = await self.catalog.get_random_album_for_artist(artist.id, self._difficulty, set(self._played_ids))
            if generation != self._generation:
                return False

            if item is None and self._played_ids:
                if self._mode == GameMode.SPECIFIC:
                    logger.info(f"All items played for {artist.name} ({self._difficulty.value})")
                    self._enter_all_cleared()
                    return False

                logger.info(f"Pool exhausted for {artist.name}, resetting played items")
                self._played_ids.clear()
                item = await self.catalog.get_random_album_for_artist(artist.id, self._difficulty, set())
                if generation != self._generation:
                    return False
        except CatalogError as e:
            if generation != self._generation:
                return False
            logger.warning(f"Failed to load round for {artist.name}: {e}")
            self._fail_round_load("Could not load round")
            return False

        if item is None or not item.images or not item.images[0].url:
            self._fail_round_load("No music found for this artist")
            return False

        self._begin_round(artist, item)
        return True

    def _begin_round(self, artist: CatalogArtist, item: CatalogItem) -> None:
        self._cancel_timer()
        self._target = TargetItem(
            id=item.id,
            name=item.name,
            artist_name=artist.name,
            cover_url=item.images[0].url,
            release_date=item.release_date,
            external_url=item.external_urls.primary,
            kind=item.type,
        )
        self._played_ids.add(item.id)
        self._reset_progress()
        self._notice = None
        self._status = GameStatus.PLAYING
        logger.info(f"Round started: {artist.name} ({self._difficulty.value}, {len(self._played_ids)} played)")
        self._restart_timer()

    def _fail_round_load(self, message: str) -> None:
        self._cancel_timer()
        self._clear_session()
        self._notice = Notice(kind=ErrorKind.ROUND_LOAD_FAILED, message=message)

    def _enter_all_cleared(self) -> None:
        self._cancel_timer()
        self._target = None
        self._reset_progress()
        self._status = GameStatus.ALL_CLEARED

    def _clear_session(self) -> None:
        self._status = GameStatus.MENU
        self._artist = None
        self._search_results = []
        self._played_ids.clear()
        self._target = None
        self._notice = None
        self._reset_progress()

    # Round actions

    async def submit_guess(self, text: str) -> GuessResult:
        """Check a guess against the target title.

        Blank guesses, and guesses that normalize to nothing against a title
        that doesn't, are ignored without using up an attempt.
        """
        if self._status != GameStatus.PLAYING or self._target is None or is_blank(text):
            return GuessResult.IGNORED
        if not normalize(text) and normalize(self._target.name):
            return GuessResult.IGNORED

        if is_match(text, self._target.name):
            self._win()
            await self._fire(self.on_score_change)
            await self._fire(self.on_round_end)
            return GuessResult.CORRECT

        self._guesses_used += 1
        self._last_wrong_guess = text
        if self._guesses_used >= self.rules.max_guesses:
            self._lose(LossReason.OUT_OF_GUESSES)
            await self._fire(self.on_round_end)
            return GuessResult.LOST

        self._pixel_factor = next_pixel_factor(self._pixel_factor, self.rules)
        self._restart_timer()
        return GuessResult.WRONG

    async def request_hint(self) -> tuple[bool, str]:
        """Pay for the next hint level.

        Returns (success, message) tuple.
        """
        if self._status != GameStatus.PLAYING or self._target is None:
            return (False, "No active round!")
        if self._hint_level == HintLevel.FIRST_WORD:
            return (False, "No more hints for this round.")

        cost = self.rules.hint_cost
        if not self.ledger.spend(cost):
            self._notice = Notice(
                kind=ErrorKind.INSUFFICIENT_SCORE,
                message=f"Not enough points for a hint (costs {cost}).",
            )
            return (False, self._notice.message)

        self._hint_level = HintLevel(self._hint_level + 1)
        self._notice = None
        await self._fire(self.on_score_change)
        return (True, render_hint(self._target.name, self._hint_level) or "")

    async def skip(self) -> tuple[bool, str]:
        """Give up on the round for a fee.

        Returns (success, message) tuple.
        """
        if self._status != GameStatus.PLAYING:
            return (False, "No active round to skip!")

        cost = self.rules.skip_cost
        if not self.ledger.spend(cost):
            self._notice = Notice(
                kind=ErrorKind.INSUFFICIENT_SCORE,
                message=f"Not enough points to skip (costs {cost}).",
            )
            return (False, self._notice.message)

        self._lose(LossReason.SKIPPED)
        await self._fire(self.on_score_change)
        await self._fire(self.on_round_end)
        return (True, "Round skipped!")

    async def next_round(self) -> bool:
        """Move on after a finished round."""
        if self._loading or self._status not in (GameStatus.WON, GameStatus.LOST, GameStatus.ALL_CLEARED):
            return False

        if self._mode == GameMode.RANDOM:
            return await self._run_load(self._load_random_artist_round)

        if self._artist is None:
            self._clear_session()
            return False

        if self._status == GameStatus.ALL_CLEARED:
            self._played_ids.clear()
        return await self._run_load(self._load_round)

    async def quit(self) -> bool:
        """Return to the menu. The score is kept."""
        if self._status == GameStatus.MENU:
            return False

        self._generation += 1
        self._cancel_timer()
        self._clear_session()
        self._loading = False
        logger.info("Session returned to menu")
        return True

    async def close(self) -> None:
        """Stop the timer and drop any in-flight loads."""
        self._generation += 1
        self._cancel_timer()

    # Terminal transitions

    def _win(self) -> None:
        self._cancel_timer()
        time_left = self._time_remaining if self._timer_enabled else None
        award = calculate_award(self._guesses_used, self._difficulty, self.rules, time_left)
        self.ledger.award(award)
        self._last_award = award
        self._pixel_factor = 1
        self._status = GameStatus.WON
        logger.info(f"Round won after {self._guesses_used} wrong guess(es), +{award} points")

    def _lose(self, reason: LossReason) -> None:
        self._cancel_timer()
        self._loss_reason = reason
        self._pixel_factor = 1
        self._status = GameStatus.LOST
        logger.info(f"Round lost ({reason.value})")

    # Timer

    def tick(self) -> bool:
        """Advance the countdown by one second.

        Returns True if this tick ended the round.
        """
        if self._status != GameStatus.PLAYING or not self._timer_enabled or self._time_remaining is None:
            return False

        self._time_remaining = max(0, self._time_remaining - 1)
        if self._time_remaining == 0:
            self._lose(LossReason.TIME_UP)
            return True
        return False

    async def _run_timer(self) -> None:
        while self._status == GameStatus.PLAYING:
            await asyncio.sleep(self.tick_seconds)
            if self.tick():
                await self._fire(self.on_round_end)
                return

    def _restart_timer(self) -> None:
        """Start a fresh countdown at the full allotment, if the timer is on."""
        if not self._timer_enabled:
            return
        self._cancel_timer()
        self._time_remaining = timer_allotment(self._difficulty, self.rules)
        self._timer_task = asyncio.create_task(self._run_timer())

    def _cancel_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        # The timer task ends the round itself; it must not cancel itself
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _fire(self, callback: SessionCallback | None) -> None:
        if callback is None:
            return
        try:
            await callback(self)
        except Exception:
            logger.exception("Error in session callback")


class GameService:
    """Keeps one game session per player per channel and persists scores."""

    def __init__(
        self,
        db: Database,
        catalog: CatalogGateway,
        rules: GameRules | None = None,
        tick_seconds: float = 1.0,
    ):
        self.db = db
        self.catalog = catalog
        self.rules = rules or GameRules.from_config()
        self.tick_seconds = tick_seconds
        self._sessions: dict[str, GameSession] = {}
        self._ledgers: dict[str, ScoreLedger] = {}
        self._timeout_notifiers: dict[str, SessionCallback] = {}

    @staticmethod
    def session_key(channel_id: str, player_id: str) -> str:
        return f"{channel_id}:{player_id}"

    async def get_ledger(self, player_id: str) -> ScoreLedger:
        """Load a player's ledger, shared by all their sessions."""
        ledger = self._ledgers.get(player_id)
        if ledger is None:
            record = await self.db.get_player_score(player_id)
            # Another command may have loaded it while we waited
            ledger = self._ledgers.setdefault(player_id, ScoreLedger(player_id, record.score if record else 0))
        return ledger

    async def get_session(self, channel_id: str, player_id: str) -> GameSession:
        """Get or create the session for a player in a channel."""
        key = self.session_key(channel_id, player_id)
        session = self._sessions.get(key)
        if session is None:
            ledger = await self.get_ledger(player_id)
            session = self._sessions.get(key)
            if session is not None:
                return session
            session = GameSession(
                self.catalog,
                ledger,
                self.rules,
                tick_seconds=self.tick_seconds,
                on_score_change=self._save_score,
                on_round_end=self._make_round_end_handler(key),
            )
            self._sessions[key] = session
            logger.info(f"Created session {key} (score {ledger.score})")
        return session

    def set_timeout_notifier(self, channel_id: str, player_id: str, notifier: SessionCallback) -> None:
        """Register how to tell a player their time ran out."""
        self._timeout_notifiers[self.session_key(channel_id, player_id)] = notifier

    async def _save_score(self, session: GameSession) -> None:
        await self.db.set_player_score(session.ledger.key, session.ledger.score)

    def _make_round_end_handler(self, key: str) -> SessionCallback:
        async def on_round_end(session: GameSession) -> None:
            await self.db.record_round(session.ledger.key, won=session.status == GameStatus.WON)
            if session.loss_reason == LossReason.TIME_UP:
                notifier = self._timeout_notifiers.get(key)
                if notifier:
                    await notifier(session)

        return on_round_end

    async def quit_session(self, channel_id: str, player_id: str) -> bool:
        """Send a player back to the menu and drop their session in this channel.

        The score lives on in the player's ledger.
        """
        session = self._sessions.get(self.session_key(channel_id, player_id))
        if session is None:
            return False
        quit_round = await session.quit()
        await self.end_session(channel_id, player_id)
        return quit_round

    async def end_session(self, channel_id: str, player_id: str) -> bool:
        """Close and forget a player's session in a channel."""
        key = self.session_key(channel_id, player_id)
        session = self._sessions.pop(key, None)
        self._timeout_notifiers.pop(key, None)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> int:
        """Close every session. Returns the number closed."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._timeout_notifiers.clear()
        for session in sessions:
            await session.close()
        if sessions:
            logger.info(f"Closed {len(sessions)} session(s)")
        return len(sessions)
