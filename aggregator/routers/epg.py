"""
EPG and Xtream detail API endpoints.
Program guide sessions exist per Xtream playlist and refresh themselves
every few minutes until closed.
"""
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from aggregator.config import get_settings
from aggregator.errors import AggregatorError, to_http_exception
from aggregator.models.channel import Playlist, XtreamCredentials
from aggregator.models.xtream import SeriesDetails, VodDetails
from aggregator.services.cache import CacheService, get_cache
from aggregator.services.epg_cache import EpgCacheManager, EpgSessions, get_epg_sessions
from aggregator.services.playlists import PlaylistService, get_playlist_service
from aggregator.services.xtream_client import XtreamClient

router = APIRouter(prefix="/api/epg", tags=["epg"])

XtreamFactory = Callable[[XtreamCredentials], XtreamClient]


def get_xtream_factory() -> XtreamFactory:
    """Build Xtream clients for stored credentials."""
    return XtreamClient


class EpgLoadRequest(BaseModel):
    channel_ids: list[str]


async def _xtream_playlist(playlist_id: str, playlists: PlaylistService) -> Playlist:
    try:
        playlist = await playlists.get(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)
    if playlist.xtream is None:
        raise HTTPException(status_code=400, detail="EPG is only available for Xtream playlists")
    return playlist


def _session(playlist: Playlist, sessions: EpgSessions, xtream: XtreamFactory) -> EpgCacheManager:
    client = xtream(playlist.xtream)
    return sessions.open(playlist.id, client.get_short_epg)


@router.post("/{playlist_id}/load")
async def load_epg(
    playlist_id: str,
    request: EpgLoadRequest,
    playlists: PlaylistService = Depends(get_playlist_service),
    sessions: EpgSessions = Depends(get_epg_sessions),
    xtream: XtreamFactory = Depends(get_xtream_factory),
):
    """
    Run a batch pass for the visible channels.

    Returns the current and next program of every requested channel once
    the pass has been committed.
    """
    playlist = await _xtream_playlist(playlist_id, playlists)
    manager = _session(playlist, sessions, xtream)

    wanted = set(request.channel_ids)
    channels = [c for c in playlist.channels if c.id in wanted]
    await manager.load(channels)

    return {
        "channels": [manager.now_playing(c.id) for c in channels],
        "loaded": sum(1 for c in channels if c.id in manager.epg_data),
    }


@router.get("/{playlist_id}/now")
async def get_now_playing(
    playlist_id: str,
    channels: str = Query(..., description="Comma-separated channel IDs"),
    sessions: EpgSessions = Depends(get_epg_sessions),
):
    """Current and next program from committed data, without fetching."""
    channel_ids = [c.strip() for c in channels.split(",") if c.strip()]
    if not channel_ids:
        raise HTTPException(status_code=400, detail="At least one channel ID required")

    manager = sessions.get(playlist_id)
    if manager is None:
        return {"channels": [{"channel_id": cid, "current": None, "next": None} for cid in channel_ids]}
    return {"channels": [manager.now_playing(cid) for cid in channel_ids]}


@router.get("/{playlist_id}/channel/{channel_id}")
async def get_channel_epg(
    playlist_id: str,
    channel_id: str,
    playlists: PlaylistService = Depends(get_playlist_service),
    sessions: EpgSessions = Depends(get_epg_sessions),
    xtream: XtreamFactory = Depends(get_xtream_factory),
):
    """Programs of one channel, served from cache while fresh."""
    playlist = await _xtream_playlist(playlist_id, playlists)
    programs = await _session(playlist, sessions, xtream).get_or_fetch(channel_id)
    return {"channel_id": channel_id, "programs": programs, "count": len(programs)}


@router.post("/{playlist_id}/refresh")
async def refresh_epg(
    playlist_id: str,
    sessions: EpgSessions = Depends(get_epg_sessions),
):
    """Drop cached programs and refetch the last visible channels."""
    manager = sessions.get(playlist_id)
    if manager is None:
        raise HTTPException(status_code=404, detail="No EPG session for this playlist")
    results = await manager.refresh()
    return {"success": True, "refreshed": len(results)}


@router.delete("/{playlist_id}")
async def close_epg(
    playlist_id: str,
    sessions: EpgSessions = Depends(get_epg_sessions),
):
    """Stop the periodic refresh of a playlist's EPG."""
    await sessions.close(playlist_id)
    return {"success": True}


@router.get("/{playlist_id}/series/{series_id}", response_model=SeriesDetails)
async def get_series_details(
    playlist_id: str,
    series_id: int,
    playlists: PlaylistService = Depends(get_playlist_service),
    cache: CacheService = Depends(get_cache),
    xtream: XtreamFactory = Depends(get_xtream_factory),
):
    """Seasons and episodes; an empty placeholder when the server does not answer."""
    playlist = await _xtream_playlist(playlist_id, playlists)
    key = cache.generate_key("series", {"playlist": playlist_id, "series_id": series_id})
    cached = await cache.get(key)
    if cached:
        return SeriesDetails.model_validate(cached)

    details = await xtream(playlist.xtream).get_series_info(series_id)
    if details.seasons:
        await cache.set(key, details.model_dump(mode="json"), get_settings().metadata_cache_ttl_seconds)
    return details


@router.get("/{playlist_id}/vod/{vod_id}", response_model=VodDetails)
async def get_vod_details(
    playlist_id: str,
    vod_id: int,
    playlists: PlaylistService = Depends(get_playlist_service),
    cache: CacheService = Depends(get_cache),
    xtream: XtreamFactory = Depends(get_xtream_factory),
):
    """Movie details; ``name`` is empty when the server does not answer."""
    playlist = await _xtream_playlist(playlist_id, playlists)
    key = cache.generate_key("vod", {"playlist": playlist_id, "vod_id": vod_id})
    cached = await cache.get(key)
    if cached:
        return VodDetails.model_validate(cached)

    details = await xtream(playlist.xtream).get_vod_info(vod_id)
    if details.name:
        await cache.set(key, details.model_dump(mode="json"), get_settings().metadata_cache_ttl_seconds)
    return details
