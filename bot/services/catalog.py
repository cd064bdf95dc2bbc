"""Spotify catalog client used to pick artists and round targets."""

import asyncio
import logging
import random
import string
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional, Protocol, TypeVar

import httpx
from pydantic import ValidationError

from config import Config
from models import CatalogArtist, CatalogImage, CatalogItem, Difficulty, ExternalUrls, ItemKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOKEN_URL = "https://accounts.spotify.com/api/token"
API_BASE_URL = "https://api.spotify.com/v1"

# Refresh the token this many seconds before Spotify says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60

ARTIST_SEARCH_LIMIT = 20
RANDOM_ARTIST_MAX_OFFSET = 1000


class CatalogError(Exception):
    """The catalog could not be reached or returned an unusable response."""


@dataclass(frozen=True)
class CandidatePool:
    """Where round targets are drawn from for a difficulty."""

    source: str  # "top_tracks" or "albums"
    limit: int


def pool_for_difficulty(difficulty: Difficulty) -> CandidatePool:
    """Select the candidate pool for a difficulty.

    EASY uses the artist's well-known top tracks; MEDIUM and HARD use the
    album and single catalog, HARD with a deeper listing.
    """
    if difficulty == Difficulty.EASY:
        return CandidatePool(source="top_tracks", limit=10)
    if difficulty == Difficulty.MEDIUM:
        return CandidatePool(source="albums", limit=20)
    return CandidatePool(source="albums", limit=50)


def _item_kind(value: str | None) -> ItemKind:
    try:
        return ItemKind(value)
    except ValueError:
        return ItemKind.ALBUM


def _track_to_item(track: dict[str, Any]) -> CatalogItem:
    """Top tracks carry their cover and release date on the parent album."""
    album = track.get("album") or {}
    return CatalogItem(
        id=track["id"],
        name=track["name"],
        images=[CatalogImage.model_validate(img) for img in album.get("images") or []],
        release_date=album.get("release_date") or "",
        external_urls=ExternalUrls(primary=(track.get("external_urls") or {}).get("spotify", "")),
        type=ItemKind.SINGLE,
    )


def _album_to_item(album: dict[str, Any]) -> CatalogItem:
    return CatalogItem(
        id=album["id"],
        name=album["name"],
        images=[CatalogImage.model_validate(img) for img in album.get("images") or []],
        release_date=album.get("release_date") or "",
        external_urls=ExternalUrls(primary=(album.get("external_urls") or {}).get("spotify", "")),
        type=_item_kind(album.get("album_type")),
    )


def _parse_all(raw_items: list[Any], parse: Callable[[Any], T]) -> list[T]:
    try:
        return [parse(raw) for raw in raw_items]
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        raise CatalogError(f"Unexpected catalog response: {e}") from e


class CatalogGateway(Protocol):
    """What the game needs from a music catalog."""

    async def search_artists(self, query: str) -> list[CatalogArtist]: ...

    async def get_random_artist_name(self) -> str: ...

    async def get_random_album_for_artist(
        self, artist_id: str, difficulty: Difficulty, exclude_ids: set[str]
    ) -> Optional[CatalogItem]: ...

    async def fetch_image(self, url: str) -> bytes: ...


class SpotifyCatalog:
    """Async Spotify Web API client using the client-credentials flow."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        market: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ):
        self._client_id = client_id if client_id is not None else Config.SPOTIFY_CLIENT_ID
        self._client_secret = client_secret if client_secret is not None else Config.SPOTIFY_CLIENT_SECRET
        self._market = market or Config.SPOTIFY_MARKET
        self._max_retries = max_retries if max_retries is not None else Config.HTTP_MAX_RETRIES
        if self._max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        self._backoff_base = backoff_base
        self._rng = rng or random.Random()

        self._client = httpx.AsyncClient(
            timeout=timeout if timeout is not None else Config.HTTP_TIMEOUT_SECONDS,
            follow_redirects=True,
            transport=transport,
        )
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "SpotifyCatalog":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Authentication

    async def _get_access_token(self) -> str:
        """Return a cached token, fetching a new one when it is about to expire."""
        async with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expires_at:
                return self._access_token

            if not self._client_id or not self._client_secret:
                raise CatalogError("Spotify credentials are not configured")

            try:
                response = await self._client.post(
                    TOKEN_URL,
                    data={"grant_type": "client_credentials"},
                    auth=(self._client_id, self._client_secret),
                )
                response.raise_for_status()
                data = response.json()
                self._access_token = data["access_token"]
                expires_in = int(data.get("expires_in", 3600))
            except (httpx.HTTPError, ValueError, KeyError) as e:
                raise CatalogError(f"Failed to fetch Spotify access token: {e}") from e

            self._token_expires_at = time.monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
            logger.info(f"Fetched Spotify access token (expires in {expires_in}s)")
            return self._access_token

    def _invalidate_token(self) -> None:
        self._access_token = None
        self._token_expires_at = 0.0

    # Requests

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a catalog endpoint, retrying server errors and rate limits.

        A 401 refreshes the token once. Other 4xx errors fail immediately.
        """
        url = f"{API_BASE_URL}{path}"
        refreshed = False
        attempt = 0

        while True:
            attempt += 1
            token = await self._get_access_token()
            try:
                response = await self._client.get(url, params=params, headers={"Authorization": f"Bearer {token}"})
            except httpx.RequestError as e:
                if attempt <= self._max_retries:
                    logger.warning(f"Request error for {path} (attempt {attempt}/{self._max_retries}): {e}")
                    await self._sleep_backoff(attempt)
                    continue
                raise CatalogError(f"Request to {path} failed: {e}") from e

            status = response.status_code
            if status == 401 and not refreshed:
                logger.info("Spotify token rejected, refreshing")
                self._invalidate_token()
                refreshed = True
                continue

            if (status == 429 or status >= 500) and attempt <= self._max_retries:
                logger.warning(f"Catalog returned {status} for {path} (attempt {attempt}/{self._max_retries})")
                await self._sleep_backoff(attempt, response.headers.get("Retry-After"))
                continue

            if status >= 400:
                raise CatalogError(f"Catalog returned {status} for {path}")

            try:
                return response.json()
            except ValueError as e:
                raise CatalogError(f"Invalid JSON from {path}") from e

    async def _sleep_backoff(self, attempt: int, retry_after: str | None = None) -> None:
        """Sleep before a retry, preferring the server's Retry-After hint."""
        if retry_after is not None:
            try:
                await asyncio.sleep(min(float(retry_after), 30.0))
                return
            except ValueError:
                pass
        delay = min(5.0, self._backoff_base * (2 ** (attempt - 1)))
        await asyncio.sleep(delay + self._rng.uniform(0.0, 0.25 * delay))

    # Catalog operations

    async def search_artists(self, query: str) -> list[CatalogArtist]:
        """Search artists by name. An empty list is a valid result."""
        data = await self._get("/search", {"q": query, "type": "artist", "limit": ARTIST_SEARCH_LIMIT})
        items = (data.get("artists") or {}).get("items") or []
        logger.debug(f"Artist search '{query}' returned {len(items)} result(s)")
        return _parse_all(items, CatalogArtist.model_validate)

    async def get_random_artist_name(self) -> str:
        """Find an arbitrary artist by searching a random letter at a random offset."""
        letter = self._rng.choice(string.ascii_lowercase)
        offset = self._rng.randrange(RANDOM_ARTIST_MAX_OFFSET)
        # Authentication problems are not covered by the fallback
        await self._get_access_token()
        try:
            data = await self._get("/search", {"q": letter, "type": "artist", "limit": 1, "offset": offset})
        except CatalogError as e:
            logger.warning(f"Random artist search failed, using fallback: {e}")
            return Config.FALLBACK_ARTIST_NAME
        items = (data.get("artists") or {}).get("items") or []
        if items and items[0].get("name"):
            return items[0]["name"]
        logger.info(f"No random artist found for '{letter}' at offset {offset}, using fallback")
        return Config.FALLBACK_ARTIST_NAME

    async def get_artist_top_tracks(self, artist_id: str) -> list[CatalogItem]:
        """Top tracks, shaped like catalog items and typed as singles."""
        data = await self._get(f"/artists/{artist_id}/top-tracks", {"market": self._market})
        return _parse_all(data.get("tracks") or [], _track_to_item)

    async def get_artist_albums(self, artist_id: str, limit: int) -> list[CatalogItem]:
        """Albums and singles released by an artist."""
        data = await self._get(
            f"/artists/{artist_id}/albums",
            {"include_groups": "album,single", "limit": limit},
        )
        return _parse_all(data.get("items") or [], _album_to_item)

    async def get_candidates(self, artist_id: str, difficulty: Difficulty) -> list[CatalogItem]:
        """Every item a round could use for this artist and difficulty."""
        pool = pool_for_difficulty(difficulty)
        if pool.source == "top_tracks":
            return (await self.get_artist_top_tracks(artist_id))[: pool.limit]
        return await self.get_artist_albums(artist_id, pool.limit)

    async def get_random_album_for_artist(
        self, artist_id: str, difficulty: Difficulty, exclude_ids: set[str]
    ) -> Optional[CatalogItem]:
        """Pick a random item not in exclude_ids.

        Returns None when the pool is empty or fully excluded.
        """
        items = await self.get_candidates(artist_id, difficulty)
        available = [item for item in items if item.id not in exclude_ids]
        if not available:
            logger.info(
                f"No available items for artist {artist_id} ({difficulty.value}): "
                f"{len(items)} total, {len(exclude_ids)} excluded"
            )
            return None
        return self._rng.choice(available)

    async def fetch_image(self, url: str) -> bytes:
        """Download cover art bytes."""
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CatalogError(f"Failed to download image {url}: {e}") from e
        return response.content
