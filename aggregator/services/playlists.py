"""
Playlist ingestion service.
Imports playlists from M3U text, files, URLs or Xtream accounts and
keeps them in the SQLite store.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx

from aggregator.config import Settings, get_settings
from aggregator.errors import InvalidPlaylistError, PlaylistNotFoundError
from aggregator.models.channel import Playlist, PlaylistSummary, XtreamCredentials
from aggregator.services.cache import CacheService, get_cache
from aggregator.services.m3u_parser import M3UParser, is_valid_m3u, playlist_name_from_url
from aggregator.services.xtream_client import IngestionResult, XtreamClient

logger = logging.getLogger(__name__)


def _stream_counts(playlist: Playlist) -> dict[str, int]:
    counts = {"live": 0, "vod": 0, "series": 0}
    for channel in playlist.channels:
        counts[channel.stream_type] += 1
    return counts


class PlaylistService:
    """Import, store and refresh playlists."""

    def __init__(
        self,
        cache: CacheService,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self.settings = settings or get_settings()
        self._transport = transport
        self.parser = M3UParser(transport=transport)

    def xtream_client(self, credentials: XtreamCredentials) -> XtreamClient:
        return XtreamClient(credentials, settings=self.settings, transport=self._transport)

    async def _save(self, result: IngestionResult) -> IngestionResult:
        await self.cache.store_playlist(result.playlist)
        logger.info(f"{result.message} ({len(result.warnings)} warnings)")
        return result

    # ==================== IMPORT ====================

    async def import_text(self, content: str, name: str = "Playlist") -> IngestionResult:
        """
        Import pasted M3U text.

        Raises:
            InvalidPlaylistError: the text has no M3U header or entries
        """
        if not is_valid_m3u(content):
            raise InvalidPlaylistError("Content is not a valid M3U playlist")
        playlist = self.parser.parse(content, name)
        return await self._save(IngestionResult(playlist=playlist, counts=_stream_counts(playlist)))

    async def import_file(self, path: str | Path, name: Optional[str] = None) -> IngestionResult:
        playlist = await self.parser.parse_file(path, name)
        return await self._save(IngestionResult(playlist=playlist, counts=_stream_counts(playlist)))

    async def import_url(self, url: str, name: Optional[str] = None) -> IngestionResult:
        """Download and import a playlist. Raises PlaylistFetchError."""
        playlist = await self.parser.parse_url(url, name or playlist_name_from_url(url))
        return await self._save(IngestionResult(playlist=playlist, counts=_stream_counts(playlist)))

    async def import_xtream(
        self,
        credentials: XtreamCredentials,
        name: Optional[str] = None,
        include_live: bool = True,
        include_vod: bool = True,
        include_series: bool = True,
        expand_series: bool = False,
    ) -> IngestionResult:
        """Import an Xtream account. Raises XtreamAuthError or PlaylistFetchError."""
        result = await self.xtream_client(credentials).load_full_playlist(
            include_live=include_live,
            include_vod=include_vod,
            include_series=include_series,
            expand_series=expand_series,
        )
        if name:
            result.playlist = result.playlist.model_copy(update={"name": name})
        return await self._save(result)

    # ==================== STORED PLAYLISTS ====================

    async def list_playlists(self) -> list[PlaylistSummary]:
        return await self.cache.list_playlists()

    async def get(self, playlist_id: str) -> Playlist:
        playlist = await self.cache.get_playlist(playlist_id)
        if playlist is None:
            raise PlaylistNotFoundError(f"Playlist {playlist_id} not found")
        return playlist

    async def delete(self, playlist_id: str):
        if not await self.cache.delete_playlist(playlist_id):
            raise PlaylistNotFoundError(f"Playlist {playlist_id} not found")
        logger.info(f"Deleted playlist {playlist_id}")

    async def refresh(self, playlist_id: str) -> IngestionResult:
        """
        Reload a URL or Xtream playlist from its source.

        The playlist keeps its id, name and import date. Playlists imported
        from text or files have no source to reload and are returned as is.
        """
        stored = await self.get(playlist_id)

        if stored.source == "xtream" and stored.xtream:
            result = await self.xtream_client(stored.xtream).load_full_playlist()
        elif stored.source == "url" and stored.source_url:
            playlist = await self.parser.parse_url(stored.source_url, stored.name)
            result = IngestionResult(playlist=playlist, counts=_stream_counts(playlist))
        else:
            return IngestionResult(playlist=stored, counts=_stream_counts(stored))

        result.playlist = result.playlist.model_copy(update={
            "id": stored.id,
            "name": stored.name,
            "added_at": stored.added_at,
            "last_updated": datetime.now(timezone.utc),
        })
        return await self._save(result)


async def get_playlist_service() -> PlaylistService:
    return PlaylistService(await get_cache())
