"""
External metadata enrichment for movies and series.

TMDB provides ratings, genres, runtime and credits; OMDb provides the
awards line. Both are best effort: every failure resolves to None and
the record is returned as it was.
"""
import asyncio
import logging
import re
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aggregator.config import Settings, get_settings
from aggregator.models.channel import Channel
from aggregator.services.ttl_cache import Clock, TTLCache

logger = logging.getLogger(__name__)

OmdbType = Literal["movie", "series"]

LOOKUP_ERRORS = (httpx.HTTPError, ValueError)

TRAILING_YEAR_PATTERN = re.compile(r'\s*\(\d{4}\)\s*$')
YEAR_IN_PARENS_PATTERN = re.compile(r'\((\d{4})\)')
BRACKETS_PATTERN = re.compile(r'\s*\[.*?\]')
FOUR_DIGITS_PATTERN = re.compile(r'\d{4}')

_MISSING = object()


class TMDBModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TMDBGenre(TMDBModel):
    id: Optional[int] = None
    name: str


class TMDBCastMember(TMDBModel):
    name: str
    character: Optional[str] = None
    order: int = 0


class TMDBCrewMember(TMDBModel):
    name: str
    job: Optional[str] = None


class TMDBCredits(TMDBModel):
    cast: list[TMDBCastMember] = Field(default_factory=list)
    crew: list[TMDBCrewMember] = Field(default_factory=list)


class TMDBDetails(TMDBModel):
    """Movie or TV details; both shapes share one model."""
    id: int
    title: Optional[str] = None
    name: Optional[str] = None
    overview: Optional[str] = None
    vote_average: Optional[float] = None
    popularity: Optional[float] = None
    original_language: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    release_date: Optional[str] = None
    first_air_date: Optional[str] = None
    runtime: Optional[int] = None
    episode_run_time: list[int] = Field(default_factory=list)
    genres: list[TMDBGenre] = Field(default_factory=list)
    credits: Optional[TMDBCredits] = None

    # Filled from credits
    cast: Optional[str] = None
    director: Optional[str] = None


class TMDBRecommendation(BaseModel):
    id: int
    title: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    release_date: Optional[str] = None
    vote_average: Optional[float] = None
    overview: Optional[str] = None


def convert_rating(tmdb_rating: float) -> float:
    """TMDB scores out of 10 to a 5-point scale."""
    return tmdb_rating / 2


def format_runtime(minutes: Optional[int]) -> Optional[str]:
    """127 -> "2h7min", 60 -> "1h", 45 -> "45min"."""
    if not minutes:
        return None
    hours, rest = divmod(minutes, 60)
    return f"{f'{hours}h' if hours else ''}{f'{rest}min' if rest else ''}"


def clean_search_title(name: str) -> str:
    """Drop a trailing "(YYYY)" and any "[...]" tags."""
    cleaned = TRAILING_YEAR_PATTERN.sub('', name)
    return BRACKETS_PATTERN.sub('', cleaned).strip()


def extract_year(record: Channel) -> Optional[int]:
    """Year from the release date, else from "(YYYY)" in the title."""
    if record.release_date:
        match = FOUR_DIGITS_PATTERN.search(record.release_date)
        if match:
            return int(match.group(0))
    match = YEAR_IN_PARENS_PATTERN.search(record.name)
    return int(match.group(1)) if match else None


class TMDBClient:
    """The Movie Database v3 client with memoised lookups."""

    def __init__(
        self,
        api_key: str,
        settings: Optional[Settings] = None,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.settings = settings or get_settings()
        self.cache = cache or TTLCache(self.settings.metadata_cache_ttl_seconds)
        self._transport = transport

    async def _get(self, path: str, **params) -> Optional[dict]:
        """GET a TMDB resource; None on any HTTP or decoding failure."""
        query = {"api_key": self.api_key, "language": self.settings.tmdb_language}
        query.update({k: str(v) for k, v in params.items()})
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.metadata_request_timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(f"{self.settings.tmdb_api_base}{path}", params=query)
                response.raise_for_status()
                data = response.json()
        except LOOKUP_ERRORS as e:
            logger.debug(f"TMDB request {path} failed: {e!r}")
            return None
        return data if isinstance(data, dict) else None

    async def _memoised(self, key: str, fetch) -> Any:
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        value = await fetch()
        self.cache.set(key, value)
        return value

    def get_image_url(self, path: Optional[str], size: str = "original") -> Optional[str]:
        if not path:
            return None
        return f"{self.settings.tmdb_image_base}{size}{path}"

    async def _search(self, kind: str, name: str, year: Optional[int]) -> Optional[int]:
        async def fetch() -> Optional[int]:
            params = {"query": name}
            if year:
                params["year" if kind == "movie" else "first_air_date_year"] = year
            data = await self._get(f"/search/{kind}", **params)
            results = (data or {}).get("results") or []
            first = results[0] if results and isinstance(results[0], dict) else {}
            return first.get("id")

        return await self._memoised(f"search-{kind}-{name}-{year or ''}", fetch)

    async def search_movie(self, name: str, year: Optional[int] = None) -> Optional[int]:
        return await self._search("movie", name, year)

    async def search_series(self, name: str, year: Optional[int] = None) -> Optional[int]:
        return await self._search("tv", name, year)

    async def _details(self, kind: str, tmdb_id: int, with_credits: bool) -> Optional[TMDBDetails]:
        async def fetch() -> Optional[TMDBDetails]:
            params = {"append_to_response": "credits"} if with_credits else {}
            data = await self._get(f"/{kind}/{tmdb_id}", **params)
            if data is None:
                return None
            try:
                details = TMDBDetails.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Unexpected TMDB payload for {kind} {tmdb_id}: {e.error_count()} errors")
                return None
            if details.credits:
                cast = sorted(details.credits.cast, key=lambda c: c.order)[:5]
                director = next((c.name for c in details.credits.crew if c.job == "Director"), None)
                details = details.model_copy(update={
                    "cast": ", ".join(c.name for c in cast) or None,
                    "director": director,
                })
            return details

        return await self._memoised(f"details-{kind}-{tmdb_id}-{with_credits}", fetch)

    async def get_movie_details(self, tmdb_id: int, with_credits: bool = False) -> Optional[TMDBDetails]:
        return await self._details("movie", tmdb_id, with_credits)

    async def get_series_details(self, tmdb_id: int, with_credits: bool = False) -> Optional[TMDBDetails]:
        return await self._details("tv", tmdb_id, with_credits)

    async def get_recommendations(self, tmdb_id: int, kind: str = "movie") -> list[TMDBRecommendation]:
        """Top 10 recommendations for a movie (``kind="movie"``) or series (``"tv"``)."""
        data = await self._get(f"/{kind}/{tmdb_id}/recommendations")
        recommendations = []
        for item in ((data or {}).get("results") or [])[:10]:
            if not isinstance(item, dict) or "id" not in item:
                continue
            try:
                recommendations.append(TMDBRecommendation(
                    id=item["id"],
                    title=item.get("title") or item.get("name"),
                    poster_path=self.get_image_url(item.get("poster_path"), "w342"),
                    backdrop_path=self.get_image_url(item.get("backdrop_path"), "w780"),
                    release_date=item.get("release_date") or item.get("first_air_date"),
                    vote_average=item.get("vote_average"),
                    overview=item.get("overview"),
                ))
            except ValidationError as e:
                logger.warning(f"Skipping malformed TMDB recommendation for {kind} {tmdb_id}: {e.error_count()} errors")
        return recommendations


class OMDBClient:
    """OMDb awards lookups, at most ``omdb_concurrency`` requests at a time."""

    def __init__(
        self,
        api_key: str,
        settings: Optional[Settings] = None,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.settings = settings or get_settings()
        self.cache = cache or TTLCache(self.settings.metadata_cache_ttl_seconds)
        self._transport = transport
        self._semaphore = asyncio.Semaphore(self.settings.omdb_concurrency)

    async def get_awards(self, title: str, year: Optional[int] = None, type: OmdbType = "movie") -> Optional[str]:
        """Awards line such as "Won 6 Oscars."; None when absent or "N/A"."""
        key = f"{type}-{title}-{year or ''}"
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        params = {"t": title, "type": type, "apikey": self.api_key}
        if year:
            params["y"] = str(year)

        async with self._semaphore:
            try:
                async with httpx.AsyncClient(
                    timeout=self.settings.metadata_request_timeout,
                    transport=self._transport,
                ) as client:
                    response = await client.get(self.settings.omdb_api_base, params=params)
                    response.raise_for_status()
                    data = response.json()
            except LOOKUP_ERRORS as e:
                logger.debug(f"OMDb lookup for {title} failed: {e!r}")
                data = None

        awards = data.get("Awards") if isinstance(data, dict) else None
        value = str(awards) if awards and awards != "N/A" else None
        self.cache.set(key, value)
        return value


class EnrichmentService:
    """Add TMDB and OMDb fields to movie and series records."""

    def __init__(
        self,
        tmdb: Optional[TMDBClient] = None,
        omdb: Optional[OMDBClient] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.tmdb = tmdb
        self.omdb = omdb
        self.cache: TTLCache[Optional[dict]] = TTLCache(self.settings.metadata_cache_ttl_seconds, clock)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EnrichmentService":
        """Build clients for the API keys that are configured."""
        settings = settings or get_settings()
        tmdb = TMDBClient(settings.tmdb_api_key, settings) if settings.tmdb_api_key else None
        omdb = OMDBClient(settings.omdb_api_key, settings) if settings.omdb_api_key else None
        return cls(tmdb=tmdb, omdb=omdb, settings=settings)

    @property
    def enabled(self) -> bool:
        return self.tmdb is not None

    async def lookup(self, record: Channel) -> Optional[dict]:
        """Enrichment fields for a record, or None when nothing was found."""
        if self.tmdb is None or record.is_live or record.stream_type == "live":
            return None

        key = f"{record.stream_type}-{record.id}"
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        year = extract_year(record)
        title = clean_search_title(record.name)
        is_series = record.stream_type == "series"

        if is_series:
            tmdb_id = await self.tmdb.search_series(title, year)
            details = await self.tmdb.get_series_details(tmdb_id) if tmdb_id else None
        else:
            tmdb_id = await self.tmdb.search_movie(title, year)
            details = await self.tmdb.get_movie_details(tmdb_id) if tmdb_id else None

        if details is None:
            self.cache.set(key, None)
            return None

        fields: dict[str, Any] = {"tmdb_id": details.id}
        if details.vote_average:
            fields["tmdb_rating"] = convert_rating(details.vote_average)
        release = details.release_date or details.first_air_date
        if release:
            fields["tmdb_year"] = release[:4]
        runtime = details.runtime or (details.episode_run_time[0] if details.episode_run_time else None)
        if runtime:
            fields["tmdb_duration"] = format_runtime(runtime)
        if details.genres:
            fields["tmdb_genres"] = [g.name for g in details.genres]
        if details.popularity:
            fields["tmdb_popularity"] = details.popularity
        if details.original_language:
            fields["tmdb_original_language"] = details.original_language

        if self.omdb is not None:
            awards = await self.omdb.get_awards(title, year, "series" if is_series else "movie")
            if awards:
                fields["omdb_awards"] = awards

        self.cache.set(key, fields)
        return fields

    async def enrich(self, record: Channel) -> Channel:
        """Copy of the record with enrichment fields added; never removes fields."""
        fields = await self.lookup(record)
        if not fields:
            return record
        return record.model_copy(update=fields)

    async def enrich_many(self, records: list[Channel]) -> list[Channel]:
        return list(await asyncio.gather(*(self.enrich(r) for r in records)))
