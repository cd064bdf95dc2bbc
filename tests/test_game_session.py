"""Tests for the round state machine."""

import asyncio

import pytest

from bot.services.catalog import CatalogError
from bot.services.game_service import GameSession, GuessResult
from bot.services.score_ledger import ScoreLedger
from conftest import FakeCatalog, make_item
from models import (
    CatalogArtist,
    Difficulty,
    ErrorKind,
    GameMode,
    GameRules,
    GameStatus,
    HintLevel,
    LossReason,
)


@pytest.fixture
def session(catalog, ledger, rules):
    return GameSession(catalog, ledger, rules)


async def start(session: GameSession, artist: CatalogArtist, **kwargs) -> GameSession:
    kwargs.setdefault("difficulty", Difficulty.MEDIUM)
    kwargs.setdefault("timer_enabled", False)
    assert await session.start_specific(artist, **kwargs)
    return session


class TestStartRound:
    @pytest.mark.asyncio
    async def test_starts_in_menu(self, session):
        assert session.status == GameStatus.MENU
        assert session.target is None
        assert session.view().target is None

    @pytest.mark.asyncio
    async def test_start_specific(self, session, beatles):
        await start(session, beatles)

        assert session.status == GameStatus.PLAYING
        assert session.mode == GameMode.SPECIFIC
        assert session.target.name == "Abbey Road"
        assert session.target.artist_name == "The Beatles"
        assert session.target.release_year == "1969"
        assert session.guesses_used == 0
        assert session.pixel_factor == 35
        assert session.hint_level == HintLevel.NONE
        assert session.time_remaining is None
        assert session.played_ids == {"abbey"}
        assert not session.loading

    @pytest.mark.asyncio
    async def test_start_with_timer(self, session, beatles):
        await start(session, beatles, difficulty=Difficulty.HARD, timer_enabled=True)

        assert session.time_remaining == 5
        assert session.timer_running
        view = session.view()
        assert view.time_allotment == 5
        await session.close()
        assert not session.timer_running

    @pytest.mark.asyncio
    async def test_cannot_start_while_playing(self, session, beatles):
        await start(session, beatles)
        assert await session.start_specific(beatles) is False
        assert await session.start_random() is False

    @pytest.mark.asyncio
    async def test_gateway_error_returns_to_menu(self, session, catalog, beatles):
        catalog.error = CatalogError("boom")

        assert await session.start_specific(beatles) is False

        assert session.status == GameStatus.MENU
        assert session.target is None
        assert session.artist is None
        assert session.played_ids == frozenset()
        assert session.notice.kind == ErrorKind.ROUND_LOAD_FAILED
        assert not session.loading

    @pytest.mark.asyncio
    async def test_missing_cover_fails_round(self, ledger, rules, beatles):
        catalog = FakeCatalog(items={"beatles": [make_item("x", "No Cover", cover=False)]})
        session = GameSession(catalog, ledger, rules)

        assert await session.start_specific(beatles) is False

        assert session.status == GameStatus.MENU
        assert session.target is None
        assert session.notice.kind == ErrorKind.ROUND_LOAD_FAILED

    @pytest.mark.asyncio
    async def test_artist_with_no_items_fails_round(self, ledger, rules):
        session = GameSession(FakeCatalog(), ledger, rules)

        assert await session.start_specific(CatalogArtist(id="nobody", name="Nobody")) is False

        assert session.status == GameStatus.MENU
        assert session.notice.message == "No music found for this artist"


class TestGuessing:
    @pytest.mark.asyncio
    async def test_first_try_win_medium(self, session, beatles):
        await start(session, beatles)

        result = await session.submit_guess("abbey road")

        assert result == GuessResult.CORRECT
        assert session.status == GameStatus.WON
        assert session.guesses_used == 0
        assert session.pixel_factor == 1
        assert session.score == 1500
        assert session.view().last_award == 1500

    @pytest.mark.asyncio
    async def test_blank_guess_is_ignored(self, session, beatles):
        await start(session, beatles)

        assert await session.submit_guess("") == GuessResult.IGNORED
        assert await session.submit_guess("   ") == GuessResult.IGNORED
        assert session.guesses_used == 0
        assert session.status == GameStatus.PLAYING

    @pytest.mark.asyncio
    async def test_guess_without_letters_is_ignored(self, session, beatles):
        await start(session, beatles)

        assert await session.submit_guess("(?!)") == GuessResult.IGNORED
        assert session.guesses_used == 0

    @pytest.mark.asyncio
    async def test_wrong_guess(self, session, beatles):
        await start(session, beatles)

        result = await session.submit_guess("Let It Be")

        assert result == GuessResult.WRONG
        assert session.guesses_used == 1
        assert session.pixel_factor == 26
        assert session.view().last_wrong_guess == "Let It Be"
        assert session.status == GameStatus.PLAYING

    @pytest.mark.asyncio
    async def test_award_drops_after_wrong_guesses(self, session, beatles):
        await start(session, beatles)
        await session.submit_guess("Revolver")
        await session.submit_guess("Rubber Soul")

        await session.submit_guess("ABBEY-ROAD")  # dash cuts to "abbey"
        assert session.status == GameStatus.PLAYING

        await session.submit_guess("Abbey Road (Remastered)")
        assert session.status == GameStatus.WON
        # 3 wrong guesses: max(100, 1000 - 600) * 1.5
        assert session.score == 600

    @pytest.mark.asyncio
    async def test_out_of_guesses(self, catalog, ledger, beatles):
        session = GameSession(catalog, ledger, GameRules(max_guesses=4))
        await start(session, beatles, timer_enabled=True)

        factors = [session.pixel_factor]
        results = []
        for guess in ["one", "two", "three", "four"]:
            results.append(await session.submit_guess(guess))
            factors.append(session.pixel_factor)

        assert results == [GuessResult.WRONG, GuessResult.WRONG, GuessResult.WRONG, GuessResult.LOST]
        assert session.status == GameStatus.LOST
        assert session.loss_reason == LossReason.OUT_OF_GUESSES
        assert session.pixel_factor == 1
        assert factors == sorted(factors, reverse=True)
        assert all(f > 1 for f in factors[:-1])
        assert not session.timer_running

    @pytest.mark.asyncio
    async def test_guess_after_round_is_ignored(self, session, beatles):
        await start(session, beatles)
        await session.submit_guess("abbey road")

        assert await session.submit_guess("abbey road") == GuessResult.IGNORED
        assert session.score == 1500

    @pytest.mark.asyncio
    async def test_guess_in_menu_is_ignored(self, session):
        assert await session.submit_guess("anything") == GuessResult.IGNORED


class TestTimer:
    @pytest.mark.asyncio
    async def test_time_up(self, session, beatles):
        await start(session, beatles, difficulty=Difficulty.HARD, timer_enabled=True)

        ended = [session.tick() for _ in range(5)]

        assert ended == [False, False, False, False, True]
        assert session.status == GameStatus.LOST
        assert session.loss_reason == LossReason.TIME_UP
        assert session.pixel_factor == 1
        assert session.time_remaining == 0

    @pytest.mark.asyncio
    async def test_tick_without_timer_is_noop(self, session, beatles):
        await start(session, beatles)
        assert session.tick() is False
        assert session.status == GameStatus.PLAYING

    @pytest.mark.asyncio
    async def test_wrong_guess_resets_timer(self, session, beatles):
        await start(session, beatles, difficulty=Difficulty.MEDIUM, timer_enabled=True)
        session.tick()
        session.tick()
        assert session.time_remaining == 8

        await session.submit_guess("Revolver")

        assert session.time_remaining == 10
        await session.close()

    @pytest.mark.asyncio
    async def test_wrong_guess_restarts_countdown_task(self, session, beatles):
        await start(session, beatles, timer_enabled=True)
        old_task = session._timer_task

        await session.submit_guess("Revolver")
        await asyncio.gather(old_task, return_exceptions=True)

        assert old_task.cancelled()
        assert session.timer_running
        assert session._timer_task is not old_task
        await session.close()

    @pytest.mark.asyncio
    async def test_time_bonus_on_win(self, session, beatles):
        await start(session, beatles, difficulty=Difficulty.HARD, timer_enabled=True)
        session.tick()
        session.tick()

        await session.submit_guess("abbey road")

        # 1000 * 2.0 + 3s * 10
        assert session.score == 2030
        assert not session.timer_running

    @pytest.mark.asyncio
    async def test_timer_task_ends_round(self, catalog, ledger, rules, beatles):
        ended = asyncio.Event()

        async def on_round_end(s: GameSession) -> None:
            ended.set()

        session = GameSession(catalog, ledger, rules, tick_seconds=0.01, on_round_end=on_round_end)
        await start(session, beatles, difficulty=Difficulty.HARD, timer_enabled=True)

        await asyncio.wait_for(ended.wait(), timeout=2)

        assert session.status == GameStatus.LOST
        assert session.loss_reason == LossReason.TIME_UP
        assert not session.timer_running

    @pytest.mark.asyncio
    async def test_timer_cancelled_on_quit(self, session, beatles):
        await start(session, beatles, timer_enabled=True)
        task = session._timer_task

        await session.quit()
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert session.time_remaining is None


class TestHints:
    @pytest.mark.asyncio
    async def test_hint_levels_advance_and_cost(self, catalog, beatles):
        session = GameSession(catalog, ScoreLedger("p", 100), GameRules())
        await start(session, beatles)

        ok, text = await session.request_hint()
        assert ok
        assert text == "_____ ____"
        assert session.hint_level == HintLevel.MASKED
        assert session.score == 70

        ok, text = await session.request_hint()
        assert ok
        assert text == "Abbey ____"
        assert session.hint_level == HintLevel.FIRST_WORD
        assert session.score == 40

        ok, _ = await session.request_hint()
        assert not ok
        assert session.hint_level == HintLevel.FIRST_WORD
        assert session.score == 40

    @pytest.mark.asyncio
    async def test_hint_rejected_without_points(self, session, beatles):
        await start(session, beatles)

        ok, message = await session.request_hint()

        assert not ok
        assert "Not enough points" in message
        assert session.hint_level == HintLevel.NONE
        assert session.notice.kind == ErrorKind.INSUFFICIENT_SCORE
        assert session.score == 0

    @pytest.mark.asyncio
    async def test_hint_text_in_view(self, rules, beatles):
        catalog = FakeCatalog(items={"beatles": [make_item("f", "Something (feat. Billy Preston)")]})
        session = GameSession(catalog, ScoreLedger("p", 100), rules)
        await start(session, beatles)

        assert session.view().hint_extra is None
        await session.request_hint()

        view = session.view()
        assert view.hint_text == "_________"
        assert view.hint_extra == "Featuring Billy Preston"

    @pytest.mark.asyncio
    async def test_hint_resets_next_round(self, catalog, beatles):
        session = GameSession(catalog, ScoreLedger("p", 100), GameRules())
        await start(session, beatles)
        await session.request_hint()
        await session.submit_guess("abbey road")

        await session.next_round()

        assert session.hint_level == HintLevel.NONE
        assert session.view().hint_text is None

    @pytest.mark.asyncio
    async def test_hint_outside_round(self, session):
        ok, _ = await session.request_hint()
        assert not ok


class TestSkip:
    @pytest.mark.asyncio
    async def test_skip_rejected_without_points(self, catalog, beatles):
        session = GameSession(catalog, ScoreLedger("p", 40), GameRules())
        await start(session, beatles)

        ok, _ = await session.skip()

        assert not ok
        assert session.score == 40
        assert session.status == GameStatus.PLAYING
        assert session.notice.kind == ErrorKind.INSUFFICIENT_SCORE

    @pytest.mark.asyncio
    async def test_skip(self, catalog, beatles):
        session = GameSession(catalog, ScoreLedger("p", 100), GameRules())
        await start(session, beatles, timer_enabled=True)

        ok, _ = await session.skip()

        assert ok
        assert session.score == 50
        assert session.status == GameStatus.LOST
        assert session.loss_reason == LossReason.SKIPPED
        assert session.pixel_factor == 1
        assert not session.timer_running


class TestNextRound:
    @pytest.mark.asyncio
    async def test_specific_carries_exclusions(self, session, catalog, beatles):
        await start(session, beatles)
        await session.submit_guess("abbey road")

        assert await session.next_round()

        assert session.status == GameStatus.PLAYING
        assert session.target.id == "help"
        assert session.played_ids == {"abbey", "help"}
        assert catalog.album_calls[-1][2] == {"abbey"}

    @pytest.mark.asyncio
    async def test_specific_exhausted_is_all_cleared(self, session, beatles):
        await start(session, beatles)
        await session.submit_guess("abbey road")
        await session.next_round()
        await session.submit_guess("help")

        assert await session.next_round() is False

        assert session.status == GameStatus.ALL_CLEARED
        assert session.target is None
        assert session.view().target is None

    @pytest.mark.asyncio
    async def test_replay_after_all_cleared(self, session, beatles):
        await start(session, beatles)
        await session.submit_guess("abbey road")
        await session.next_round()
        await session.submit_guess("help")
        await session.next_round()

        assert await session.next_round()

        assert session.status == GameStatus.PLAYING
        assert session.played_ids == {"abbey"}

    @pytest.mark.asyncio
    async def test_next_round_requires_finished_round(self, session, beatles):
        await start(session, beatles)
        assert await session.next_round() is False
        assert session.status == GameStatus.PLAYING

    @pytest.mark.asyncio
    async def test_next_round_failure_returns_to_menu(self, session, catalog, beatles):
        await start(session, beatles)
        await session.submit_guess("abbey road")
        catalog.error = CatalogError("down")

        assert await session.next_round() is False

        assert session.status == GameStatus.MENU
        assert session.target is None
        assert session.score == 1500


class TestRandomMode:
    @pytest.mark.asyncio
    async def test_start_random(self, session, catalog):
        assert await session.start_random(Difficulty.EASY)

        assert session.mode == GameMode.RANDOM
        assert session.difficulty == Difficulty.EASY
        assert session.artist.name == "The Beatles"
        assert catalog.search_calls == ["The Beatles"]
        assert session.status == GameStatus.PLAYING

    @pytest.mark.asyncio
    async def test_random_artist_not_found(self, ledger, rules):
        session = GameSession(FakeCatalog(), ledger, rules)

        assert await session.start_random() is False

        assert session.status == GameStatus.MENU
        assert session.notice.kind == ErrorKind.ROUND_LOAD_FAILED

    @pytest.mark.asyncio
    async def test_next_round_picks_new_random_artist(self, session, catalog):
        await session.start_random()
        await session.submit_guess("abbey road")

        assert await session.next_round()

        assert len(catalog.search_calls) == 2
        assert session.target.id == "help"

    @pytest.mark.asyncio
    async def test_exhausted_pool_resets_once(self, ledger, rules, beatles):
        catalog = FakeCatalog(items={"beatles": [make_item("only", "Only One")]}, artists=[beatles])
        session = GameSession(catalog, ledger, rules)
        await session.start_random()
        await session.submit_guess("only one")

        assert await session.next_round()

        assert session.status == GameStatus.PLAYING
        assert session.target.id == "only"
        assert session.played_ids == {"only"}
        assert [call[2] for call in catalog.album_calls] == [set(), {"only"}, set()]


class TestSearch:
    @pytest.mark.asyncio
    async def test_search(self, session, beatles):
        results = await session.search("beatles")
        assert results == [beatles]
        assert session.search_results == [beatles]
        assert session.notice is None

    @pytest.mark.asyncio
    async def test_blank_search_is_noop(self, session, catalog):
        assert await session.search("  ") == []
        assert catalog.search_calls == []

    @pytest.mark.asyncio
    async def test_no_artists_found(self, ledger, rules):
        session = GameSession(FakeCatalog(), ledger, rules)

        assert await session.search("zzzz") == []

        assert session.notice.kind == ErrorKind.NO_ARTISTS_FOUND
        assert session.status == GameStatus.MENU

    @pytest.mark.asyncio
    async def test_search_failed(self, session, catalog):
        catalog.error = CatalogError("down")

        assert await session.search("beatles") == []

        assert session.notice.kind == ErrorKind.SEARCH_FAILED
        assert session.status == GameStatus.MENU
        assert not session.loading


class TestQuit:
    @pytest.mark.asyncio
    async def test_quit_keeps_score(self, session, beatles):
        await start(session, beatles)
        await session.submit_guess("abbey road")

        assert await session.quit()

        assert session.status == GameStatus.MENU
        assert session.target is None
        assert session.artist is None
        assert session.played_ids == frozenset()
        assert session.search_results == []
        assert session.score == 1500

    @pytest.mark.asyncio
    async def test_quit_from_menu_is_noop(self, session):
        assert await session.quit() is False

    @pytest.mark.asyncio
    async def test_late_response_after_quit_is_ignored(self, session, catalog, beatles):
        await start(session, beatles)
        await session.submit_guess("abbey road")

        catalog.gate = asyncio.Event()
        load = asyncio.create_task(session.next_round())
        await asyncio.sleep(0)
        assert session.loading

        await session.quit()
        await session.quit()
        catalog.gate.set()
        assert await load is False

        assert session.status == GameStatus.MENU
        assert session.target is None
        assert not session.loading

    @pytest.mark.asyncio
    async def test_duplicate_load_rejected_while_loading(self, session, catalog, beatles):
        catalog.gate = asyncio.Event()
        first = asyncio.create_task(session.start_specific(beatles))
        await asyncio.sleep(0)

        assert await session.start_specific(beatles) is False
        assert await session.start_random() is False

        catalog.gate.set()
        assert await first is True
        assert len(catalog.album_calls) == 1


class TestView:
    @pytest.mark.asyncio
    async def test_view_restricts_target_fields(self, session, beatles):
        await start(session, beatles)

        view = session.view()

        assert view.status == GameStatus.PLAYING
        assert view.target.name == "Abbey Road"
        assert view.target.release_year == "1969"
        assert view.target.cover_url.endswith("abbey.jpg")
        assert not hasattr(view.target, "id")
        assert view.max_guesses == 5
        assert view.loss_reason is None
        assert view.artist_name == "The Beatles"
