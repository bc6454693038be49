"""
Xtream Codes API client.
Authenticates against a panel and converts its live, VOD and series
listings into Channel records.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from aggregator.config import Settings, get_settings
from aggregator.errors import PlaylistFetchError, XtreamAuthError
from aggregator.models.channel import Channel, Playlist, XtreamCredentials
from aggregator.models.xtream import (
    Episode,
    Season,
    SeriesDetails,
    VodDetails,
    XtreamAuthResponse,
    XtreamCategory,
    XtreamEpgListing,
    XtreamEpisode,
    XtreamLiveStream,
    XtreamSeasonInfo,
    XtreamSeries,
    XtreamVodStream,
    first_backdrop,
)
from aggregator.services.m3u_parser import extract_categories, generate_id

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

UNKNOWN_SERIES_NAME = "Unknown series"

# Errors that only degrade one listing or lookup
RECOVERABLE_ERRORS = (httpx.HTTPError, asyncio.TimeoutError, ValueError)


def normalize_server_url(server_url: str) -> str:
    """Trim, drop the trailing slash and default to http://."""
    url = server_url.strip().rstrip("/")
    if not url.startswith("http"):
        url = f"http://{url}"
    return url


def parse_items(payload: Any, model: type[ModelT]) -> list[ModelT]:
    """Validate a JSON list item by item, skipping malformed entries."""
    if not isinstance(payload, list):
        return []
    items = []
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        try:
            items.append(model.model_validate(raw))
        except ValidationError as e:
            logger.debug(f"Skipping malformed {model.__name__}: {e.error_count()} errors")
    return items


@dataclass
class IngestionResult:
    """Outcome of loading a playlist, including degraded sub-fetches."""
    playlist: Playlist
    counts: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.playlist.channels)

    @property
    def message(self) -> str:
        return f"Imported {self.count} entries into '{self.playlist.name}'"


class XtreamClient:
    """Client for the Xtream Codes player_api.php interface."""

    def __init__(
        self,
        credentials: XtreamCredentials,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.settings = settings or get_settings()
        self.base_url = normalize_server_url(credentials.server_url)
        self._transport = transport
        self.auth_info: Optional[XtreamAuthResponse] = None

    # ==================== HTTP ====================

    async def _get_json(self, action: Optional[str] = None, **params) -> Any:
        """Call player_api.php with the account credentials."""
        query = {
            "username": self.credentials.username,
            "password": self.credentials.password,
        }
        if action:
            query["action"] = action
        query.update({k: str(v) for k, v in params.items()})

        async with httpx.AsyncClient(
            timeout=self.settings.xtream_request_timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            response = await client.get(f"{self.base_url}/player_api.php", params=query)
            response.raise_for_status()
            return response.json()

    def _stream_url(self, kind: str, stream_id: Any, extension: str) -> str:
        username = quote(self.credentials.username, safe="")
        password = quote(self.credentials.password, safe="")
        return f"{self.base_url}/{kind}/{username}/{password}/{stream_id}.{extension}"

    def build_live_stream_url(self, stream_id: Any, extension: str = "m3u8") -> str:
        return self._stream_url("live", stream_id, extension)

    def build_vod_stream_url(self, stream_id: Any, extension: str = "mp4") -> str:
        return self._stream_url("movie", stream_id, extension)

    def build_series_stream_url(self, stream_id: Any, extension: str = "mp4") -> str:
        return self._stream_url("series", stream_id, extension)

    # ==================== AUTH ====================

    async def authenticate(self) -> XtreamAuthResponse:
        """
        Check the credentials against the server.

        Raises:
            XtreamAuthError: the server rejected the account
            PlaylistFetchError: the server could not be reached
        """
        try:
            payload = await self._get_json()
        except RECOVERABLE_ERRORS as e:
            raise PlaylistFetchError(f"Xtream API error: {e}") from e

        try:
            response = XtreamAuthResponse.model_validate(payload if isinstance(payload, dict) else {})
        except ValidationError:
            response = XtreamAuthResponse()

        if not response.user_info or response.user_info.auth != 1:
            raise XtreamAuthError("Authentication failed. Check your credentials.")

        self.auth_info = response
        return response

    def is_authenticated(self) -> bool:
        return self.auth_info is not None

    # ==================== LISTINGS ====================

    async def get_categories(self, action: str) -> dict[str, str]:
        """Category id -> name lookup for one content class."""
        categories = parse_items(await self._get_json(action), XtreamCategory)
        return {
            c.category_id: c.category_name
            for c in categories
            if c.category_id and c.category_name
        }

    async def get_live_streams(self) -> list[XtreamLiveStream]:
        return parse_items(await self._get_json("get_live_streams"), XtreamLiveStream)

    async def get_vod_streams(self) -> list[XtreamVodStream]:
        return parse_items(await self._get_json("get_vod_streams"), XtreamVodStream)

    async def get_series(self) -> list[XtreamSeries]:
        return parse_items(await self._get_json("get_series"), XtreamSeries)

    def live_stream_to_channel(self, stream: XtreamLiveStream, category_name: str) -> Channel:
        return Channel(
            id=f"xtream-live-{stream.stream_id}",
            name=stream.name or f"Channel {stream.stream_id}",
            url=self.build_live_stream_url(stream.stream_id),
            logo=stream.stream_icon,
            group=category_name,
            tvg_id=stream.epg_channel_id,
            is_live=True,
            stream_type="live",
        )

    def vod_stream_to_channel(self, stream: XtreamVodStream, category_name: str) -> Channel:
        return Channel(
            id=f"xtream-vod-{stream.stream_id}",
            name=stream.name or f"Movie {stream.stream_id}",
            url=self.build_vod_stream_url(stream.stream_id, stream.container_extension or "mp4"),
            logo=stream.stream_icon,
            group=category_name,
            is_live=False,
            stream_type="vod",
            rating=stream.rating,
            rating5=stream.rating_5based,
        )

    def series_to_channel(self, series: XtreamSeries, category_name: str) -> Channel:
        # Series have no direct URL; episodes come from get_series_info
        return Channel(
            id=f"xtream-series-{series.series_id}",
            name=series.name or f"Series {series.series_id}",
            url="",
            logo=series.cover,
            group=category_name,
            is_live=False,
            stream_type="series",
            series_id=series.series_id,
            plot=series.plot,
            cast=series.cast,
            director=series.director,
            genre=series.genre,
            release_date=series.release_date,
            rating=series.rating,
            rating5=series.rating_5based,
            duration=series.episode_run_time,
            youtube_trailer=series.youtube_trailer,
            backdrop=series.backdrop_path,
        )

    def episode_to_channel(self, series: Channel, season: Season, episode: Episode) -> Channel:
        """Flatten one episode into a playable series record."""
        return Channel(
            id=f"xtream-episode-{episode.id}",
            name=f"{series.name} S{season.season_number:02d}E{episode.episode_num:02d}",
            url=episode.url,
            logo=episode.thumbnail or series.logo,
            group=series.group,
            is_live=False,
            stream_type="series",
            series_id=series.series_id,
            season_num=season.season_number,
            episode_num=episode.episode_num,
            plot=episode.plot,
            duration=episode.duration,
            release_date=episode.release_date,
        )

    # ==================== DETAILS ====================

    async def get_series_info(self, series_id: int) -> SeriesDetails:
        """
        Seasons and episodes of one series.

        Bounded by the series-info timeout. Any failure yields an empty
        placeholder instead of an error so a single series never breaks
        a listing.
        """
        try:
            data = await asyncio.wait_for(
                self._get_json("get_series_info", series_id=series_id),
                timeout=self.settings.xtream_series_info_timeout,
            )
        except RECOVERABLE_ERRORS as e:
            logger.warning(f"Series info {series_id} unavailable: {e!r}")
            return SeriesDetails(series_id=series_id, name=UNKNOWN_SERIES_NAME)

        if not isinstance(data, dict):
            return SeriesDetails(series_id=series_id, name=UNKNOWN_SERIES_NAME)

        info = data.get("info") if isinstance(data.get("info"), dict) else {}
        name = info.get("name") or UNKNOWN_SERIES_NAME
        episodes_by_season = data.get("episodes")
        if not isinstance(episodes_by_season, dict) or not episodes_by_season:
            return SeriesDetails(series_id=series_id, name=name)

        cover = info.get("cover") or None
        season_infos = parse_items(data.get("seasons"), XtreamSeasonInfo)
        season_names = {s.season_number: s.name for s in season_infos if s.season_number is not None}

        if season_names:
            season_numbers = list(season_names)
        else:
            season_numbers = sorted(int(k) for k in episodes_by_season if str(k).isdigit())

        seasons = []
        for number in season_numbers:
            episodes = [
                self._build_episode(ep, cover)
                for ep in parse_items(episodes_by_season.get(str(number)), XtreamEpisode)
            ]
            seasons.append(Season(
                season_number=number,
                name=season_names.get(number) or f"Season {number}",
                episode_count=len(episodes),
                episodes=episodes,
            ))

        return SeriesDetails(
            series_id=series_id,
            name=name,
            cover=cover,
            backdrop=first_backdrop(info.get("backdrop_path")),
            plot=info.get("plot") or None,
            cast=info.get("cast") or None,
            director=info.get("director") or None,
            genre=info.get("genre") or None,
            release_date=info.get("releaseDate") or None,
            rating5=_as_float(info.get("rating_5based")),
            episode_run_time=_as_str(info.get("episode_run_time")),
            seasons=seasons,
            total_episodes=sum(len(s.episodes) for s in seasons),
        )

    def _build_episode(self, episode: XtreamEpisode, series_cover: Optional[str]) -> Episode:
        info = episode.info
        number = episode.episode_num or 0
        thumbnail = None
        if info:
            thumbnail = info.movie_image or info.cover or info.cover_big
        return Episode(
            id=f"ep-{episode.id}",
            episode_num=number,
            title=episode.title or f"Episode {number}",
            url=self.build_series_stream_url(episode.id, episode.container_extension or "mp4"),
            thumbnail=thumbnail or series_cover,
            plot=info.plot if info else None,
            duration=info.duration if info else None,
            rating=info.rating if info else None,
            release_date=info.releasedate if info else None,
        )

    async def get_vod_info(self, vod_id: int) -> VodDetails:
        """Movie details; a placeholder with an empty name on failure or timeout."""
        try:
            data = await asyncio.wait_for(
                self._get_json("get_vod_info", vod_id=vod_id),
                timeout=self.settings.xtream_vod_info_timeout,
            )
        except RECOVERABLE_ERRORS as e:
            logger.warning(f"VOD info {vod_id} unavailable: {e!r}")
            return VodDetails(stream_id=vod_id, name="")

        if not isinstance(data, dict) or not isinstance(data.get("info"), dict):
            return VodDetails(stream_id=vod_id, name="")

        info = data["info"]
        movie_data = data.get("movie_data") if isinstance(data.get("movie_data"), dict) else {}
        video = info.get("video") if isinstance(info.get("video"), dict) else {}
        audio = info.get("audio") if isinstance(info.get("audio"), dict) else {}

        resolution = None
        if video.get("width") and video.get("height"):
            resolution = f"{video['width']}x{video['height']}"

        return VodDetails(
            stream_id=vod_id,
            name=movie_data.get("name") or "",
            cover=info.get("movie_image") or None,
            backdrop=first_backdrop(info.get("backdrop_path")),
            plot=info.get("plot") or None,
            cast=info.get("cast") or None,
            director=info.get("director") or None,
            genre=info.get("genre") or None,
            release_date=info.get("releasedate") or None,
            rating5=_as_float(info.get("rating_5based")),
            duration=info.get("duration") or None,
            duration_secs=_as_int(info.get("duration_secs")),
            youtube_trailer=info.get("youtube_trailer") or None,
            tmdb_id=_as_int(info.get("tmdb_id")),
            country=info.get("country") or None,
            video_codec=video.get("codec_name"),
            video_resolution=resolution,
            audio_codec=audio.get("codec_name"),
        )

    async def get_short_epg(self, stream_id: int, limit: Optional[int] = None) -> list[XtreamEpgListing]:
        """Raw short EPG listings for one live stream. Raises on HTTP errors."""
        data = await self._get_json(
            "get_short_epg",
            stream_id=stream_id,
            limit=limit or self.settings.epg_listing_limit,
        )
        listings = data.get("epg_listings") if isinstance(data, dict) else None
        return parse_items(listings, XtreamEpgListing)

    # ==================== FULL PLAYLIST ====================

    async def load_full_playlist(
        self,
        include_live: bool = True,
        include_vod: bool = True,
        include_series: bool = True,
        expand_series: bool = False,
    ) -> IngestionResult:
        """
        Load every content class into a single playlist.

        A failing class (categories or stream list) is logged and skipped;
        the other classes still load. With ``expand_series`` each series is
        replaced by its episodes, fetched with bounded concurrency.

        Raises:
            XtreamAuthError / PlaylistFetchError from authentication
        """
        if not self.is_authenticated():
            await self.authenticate()

        channels: list[Channel] = []
        counts: dict[str, int] = {}
        warnings: list[str] = []

        if include_live:
            try:
                categories = await self.get_categories("get_live_categories")
                live = [
                    self.live_stream_to_channel(s, categories.get(s.category_id, "Live TV"))
                    for s in await self.get_live_streams()
                ]
                channels.extend(live)
                counts["live"] = len(live)
            except RECOVERABLE_ERRORS as e:
                warnings.append(f"Live channels unavailable: {e}")
                logger.warning(f"Failed to load live channels: {e!r}")

        if include_vod:
            try:
                categories = await self.get_categories("get_vod_categories")
                movies = [
                    self.vod_stream_to_channel(s, f"📽 {categories.get(s.category_id, 'Movies')}")
                    for s in await self.get_vod_streams()
                ]
                channels.extend(movies)
                counts["vod"] = len(movies)
            except RECOVERABLE_ERRORS as e:
                warnings.append(f"Movies unavailable: {e}")
                logger.warning(f"Failed to load VOD: {e!r}")

        if include_series:
            try:
                categories = await self.get_categories("get_series_categories")
                series = [
                    self.series_to_channel(s, f"📺 {categories.get(s.category_id, 'Series')}")
                    for s in await self.get_series()
                ]
                if expand_series:
                    series = await self._expand_series(series, warnings)
                channels.extend(series)
                counts["series"] = len(series)
            except RECOVERABLE_ERRORS as e:
                warnings.append(f"Series unavailable: {e}")
                logger.warning(f"Failed to load series: {e!r}")

        added_at = datetime.now(timezone.utc)
        playlist = Playlist(
            id=generate_id(self.base_url, self.credentials.username, added_at.isoformat()),
            name=f"Xtream - {self.credentials.username}",
            source="xtream",
            channels=channels,
            categories=extract_categories(channels),
            added_at=added_at,
            xtream=self.credentials,
        )
        logger.info(f"Loaded {len(channels)} entries from {self.base_url} ({counts})")
        return IngestionResult(playlist=playlist, counts=counts, warnings=warnings)

    async def _expand_series(self, series: list[Channel], warnings: list[str]) -> list[Channel]:
        semaphore = asyncio.Semaphore(self.settings.xtream_series_concurrency)

        async def expand(record: Channel) -> list[Channel]:
            async with semaphore:
                details = await self.get_series_info(record.series_id)
            if not details.seasons:
                warnings.append(f"No episodes for series '{record.name}'")
                return [record]
            return [
                self.episode_to_channel(record, season, episode)
                for season in details.seasons
                for episode in season.episodes
            ]

        expanded = await asyncio.gather(*(expand(record) for record in series))
        return [episode for group in expanded for episode in group]


async def check_connection(
    credentials: XtreamCredentials,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Try to authenticate and report the account expiry date."""
    client = XtreamClient(credentials, settings=settings, transport=transport)
    try:
        auth = await client.authenticate()
    except (XtreamAuthError, PlaylistFetchError) as e:
        return {"success": False, "message": e.message}

    expiry = "unlimited"
    exp_date = auth.user_info.exp_date if auth.user_info else None
    if exp_date and exp_date.isdigit():
        expiry = datetime.fromtimestamp(int(exp_date), tz=timezone.utc).date().isoformat()

    return {
        "success": True,
        "message": f"Connected. Account expires: {expiry}",
        "user_info": auth.user_info.model_dump() if auth.user_info else None,
    }


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None
