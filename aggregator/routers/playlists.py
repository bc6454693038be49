"""
Playlist import and management API endpoints.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional

from aggregator.errors import AggregatorError, to_http_exception
from aggregator.models.channel import XtreamCredentials
from aggregator.services.playlists import PlaylistService, get_playlist_service
from aggregator.services.xtream_client import IngestionResult, check_connection

router = APIRouter(prefix="/api/playlists", tags=["playlists"])


class TextImportRequest(BaseModel):
    content: str
    name: str = "Playlist"


class UrlImportRequest(BaseModel):
    url: str
    name: Optional[str] = None


class XtreamImportRequest(XtreamCredentials):
    name: Optional[str] = None
    include_live: bool = True
    include_vod: bool = True
    include_series: bool = True
    expand_series: bool = False


def _import_response(result: IngestionResult) -> dict:
    playlist = result.playlist
    return {
        "success": True,
        "message": result.message,
        "playlist_id": playlist.id,
        "name": playlist.name,
        "count": result.count,
        "counts": result.counts,
        "categories": len(playlist.categories),
        "warnings": result.warnings,
    }


@router.get("")
async def list_playlists(service: PlaylistService = Depends(get_playlist_service)):
    """List imported playlists without their entries."""
    playlists = await service.list_playlists()
    return {"playlists": playlists, "count": len(playlists)}


@router.post("/text")
async def import_text(
    request: TextImportRequest,
    service: PlaylistService = Depends(get_playlist_service),
):
    """Import pasted M3U text."""
    try:
        result = await service.import_text(request.content, request.name)
    except AggregatorError as e:
        raise to_http_exception(e)
    return _import_response(result)


@router.post("/url")
async def import_url(
    request: UrlImportRequest,
    service: PlaylistService = Depends(get_playlist_service),
):
    """Download and import an M3U playlist."""
    try:
        result = await service.import_url(request.url, request.name)
    except AggregatorError as e:
        raise to_http_exception(e)
    return _import_response(result)


@router.post("/xtream")
async def import_xtream(
    request: XtreamImportRequest,
    service: PlaylistService = Depends(get_playlist_service),
):
    """
    Import an Xtream Codes account.

    Content classes that fail to load are reported in ``warnings``;
    rejected credentials fail the whole import with 401.
    """
    credentials = XtreamCredentials(
        server_url=request.server_url,
        username=request.username,
        password=request.password,
    )
    try:
        result = await service.import_xtream(
            credentials,
            name=request.name,
            include_live=request.include_live,
            include_vod=request.include_vod,
            include_series=request.include_series,
            expand_series=request.expand_series,
        )
    except AggregatorError as e:
        raise to_http_exception(e)
    return _import_response(result)


@router.post("/xtream/test")
async def check_xtream_connection(request: XtreamCredentials):
    """Check Xtream credentials without importing anything."""
    return await check_connection(request)


@router.get("/{playlist_id}")
async def get_playlist(
    playlist_id: str,
    service: PlaylistService = Depends(get_playlist_service),
):
    """Get a playlist with all its entries."""
    try:
        playlist = await service.get(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)
    return playlist.model_dump(mode="json", exclude={"xtream"})


@router.delete("/{playlist_id}")
async def delete_playlist(
    playlist_id: str,
    service: PlaylistService = Depends(get_playlist_service),
):
    try:
        await service.delete(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)
    return {"success": True, "playlist_id": playlist_id}


@router.post("/{playlist_id}/refresh")
async def refresh_playlist(
    playlist_id: str,
    service: PlaylistService = Depends(get_playlist_service),
):
    """Reload a URL or Xtream playlist from its source."""
    try:
        result = await service.refresh(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)
    return _import_response(result)
