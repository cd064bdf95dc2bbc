"""Pytest configuration and shared fixtures."""

import asyncio

import pytest
import pytest_asyncio

from bot.services.catalog import CatalogError
from bot.services.score_ledger import ScoreLedger
from db.database import Database
from models import CatalogArtist, CatalogImage, CatalogItem, Difficulty, ExternalUrls, GameRules, ItemKind


def make_item(item_id: str, name: str, cover: bool = True, kind: ItemKind = ItemKind.ALBUM) -> CatalogItem:
    """Build a catalog item with sensible defaults."""
    return CatalogItem(
        id=item_id,
        name=name,
        images=[CatalogImage(url=f"https://img.example/{item_id}.jpg", width=640, height=640)] if cover else [],
        release_date="1969-09-26",
        external_urls=ExternalUrls(primary=f"https://open.spotify.com/album/{item_id}"),
        type=kind,
    )


class FakeCatalog:
    """In-memory catalog that picks the first unplayed item deterministically."""

    def __init__(
        self,
        items: dict[str, list[CatalogItem]] | None = None,
        artists: list[CatalogArtist] | None = None,
        random_name: str = "The Beatles",
    ):
        self.items = items or {}
        self.artists = artists or []
        self.random_name = random_name
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.album_calls: list[tuple[str, Difficulty, set[str]]] = []
        self.search_calls: list[str] = []

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def search_artists(self, query: str) -> list[CatalogArtist]:
        self.search_calls.append(query)
        await self._wait()
        return list(self.artists)

    async def get_random_artist_name(self) -> str:
        await self._wait()
        return self.random_name

    async def get_random_album_for_artist(
        self, artist_id: str, difficulty: Difficulty, exclude_ids: set[str]
    ) -> CatalogItem | None:
        self.album_calls.append((artist_id, difficulty, set(exclude_ids)))
        await self._wait()
        for item in self.items.get(artist_id, []):
            if item.id not in exclude_ids:
                return item
        return None

    async def fetch_image(self, url: str) -> bytes:
        raise CatalogError("no images in tests")


@pytest.fixture
def beatles():
    return CatalogArtist(id="beatles", name="The Beatles", genres=["rock", "pop"])


@pytest.fixture
def catalog(beatles):
    return FakeCatalog(
        items={
            "beatles": [
                make_item("abbey", "Abbey Road"),
                make_item("help", "Help! (Remastered 2009)"),
            ]
        },
        artists=[beatles],
    )


@pytest.fixture
def rules():
    return GameRules()


@pytest.fixture
def ledger():
    return ScoreLedger("player1")


@pytest_asyncio.fixture
async def db():
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    await database.connect()
    yield database
    await database.close()
