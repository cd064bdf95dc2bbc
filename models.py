"""Pydantic models for game data structures."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from config import Config


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class GameMode(str, Enum):
    SPECIFIC = "SPECIFIC"
    RANDOM = "RANDOM"


class GameStatus(str, Enum):
    MENU = "MENU"
    PLAYING = "PLAYING"
    WON = "WON"
    LOST = "LOST"
    ALL_CLEARED = "ALL_CLEARED"


class LossReason(str, Enum):
    OUT_OF_GUESSES = "OUT_OF_GUESSES"
    TIME_UP = "TIME_UP"
    SKIPPED = "SKIPPED"


class HintLevel(int, Enum):
    """Progressive title reveal. Ordered so levels can be compared."""

    NONE = 0
    MASKED = 1
    FIRST_WORD = 2


class ItemKind(str, Enum):
    ALBUM = "album"
    SINGLE = "single"
    COMPILATION = "compilation"


class ErrorKind(str, Enum):
    SEARCH_FAILED = "SEARCH_FAILED"
    NO_ARTISTS_FOUND = "NO_ARTISTS_FOUND"
    ROUND_LOAD_FAILED = "ROUND_LOAD_FAILED"
    INSUFFICIENT_SCORE = "INSUFFICIENT_SCORE"


class CatalogImage(BaseModel):
    """Cover or artist image as returned by the catalog."""

    url: str
    height: Optional[int] = None
    width: Optional[int] = None


class CatalogArtist(BaseModel):
    """An artist search result."""

    id: str
    name: str
    images: list[CatalogImage] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)


class ExternalUrls(BaseModel):
    primary: str = ""


class CatalogItem(BaseModel):
    """A guessable item (album, single or top track) from the catalog."""

    id: str
    name: str
    images: list[CatalogImage] = Field(default_factory=list)
    release_date: str = ""
    external_urls: ExternalUrls = Field(default_factory=ExternalUrls)
    type: ItemKind = ItemKind.ALBUM


class TargetItem(BaseModel):
    """The item the player is guessing in the current round."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    artist_name: str
    cover_url: str
    release_date: str = ""
    external_url: str = ""
    kind: ItemKind = ItemKind.ALBUM

    @property
    def release_year(self) -> str:
        return self.release_date.split("-")[0]


class Notice(BaseModel):
    """An error or toast message for the player."""

    kind: ErrorKind
    message: str


class TargetView(BaseModel):
    """The part of the target item presentation is allowed to show."""

    name: str
    artist_name: str
    cover_url: str
    release_year: str
    external_url: str
    kind: ItemKind


class GameView(BaseModel):
    """Snapshot of a session handed to the presentation layer."""

    model_config = ConfigDict(frozen=True)

    status: GameStatus
    mode: GameMode
    difficulty: Difficulty
    artist_name: Optional[str] = None
    target: Optional[TargetView] = None
    guesses_used: int = 0
    max_guesses: int
    pixel_factor: int
    hint_level: HintLevel = HintLevel.NONE
    hint_text: Optional[str] = None
    hint_extra: Optional[str] = None
    timer_enabled: bool = False
    time_remaining: Optional[int] = None
    time_allotment: Optional[int] = None
    score: int = 0
    loss_reason: Optional[LossReason] = None
    last_wrong_guess: Optional[str] = None
    last_award: Optional[int] = None
    notice: Optional[Notice] = None
    loading: bool = False


class GameRules(BaseModel):
    """Tunable constants for the round state machine."""

    max_guesses: int = 5
    starting_pixelation: int = 35
    min_pixelation: int = 3
    pixel_step_bonus: int = 2
    timer_seconds: dict[Difficulty, int] = Field(
        default_factory=lambda: {Difficulty.EASY: 20, Difficulty.MEDIUM: 10, Difficulty.HARD: 5}
    )
    difficulty_multipliers: dict[Difficulty, float] = Field(
        default_factory=lambda: {Difficulty.EASY: 1.0, Difficulty.MEDIUM: 1.5, Difficulty.HARD: 2.0}
    )
    max_award: int = 1000
    min_award: int = 100
    award_step: int = 200
    time_bonus_per_second: int = 10
    hint_cost: int = 30
    skip_cost: int = 50

    @classmethod
    def from_config(cls) -> "GameRules":
        """Build rules from the environment-backed Config."""
        return cls(
            max_guesses=Config.MAX_GUESSES,
            starting_pixelation=Config.STARTING_PIXELATION,
            min_pixelation=Config.MIN_PIXELATION,
            pixel_step_bonus=Config.PIXEL_STEP_BONUS,
            timer_seconds={
                Difficulty.EASY: Config.EASY_TIMER_SECONDS,
                Difficulty.MEDIUM: Config.MEDIUM_TIMER_SECONDS,
                Difficulty.HARD: Config.HARD_TIMER_SECONDS,
            },
            max_award=Config.MAX_AWARD,
            min_award=Config.MIN_AWARD,
            award_step=Config.AWARD_STEP,
            time_bonus_per_second=Config.TIME_BONUS_PER_SECOND,
            hint_cost=Config.HINT_COST,
            skip_cost=Config.SKIP_COST,
        )


class PlayerScore(BaseModel):
    """A player's persisted ledger record."""

    ledger_key: str
    score: int = 0
    rounds_played: int = 0
    rounds_won: int = 0
