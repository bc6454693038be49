"""
Catalog API endpoints.
Deduplicated, preference-filtered channels, movies and series of a playlist.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from aggregator.errors import AggregatorError, to_http_exception
from aggregator.models.content import ContentType
from aggregator.services.catalog import build_catalog, catalog_facets
from aggregator.services.deduplicator import count_content
from aggregator.services.enrichment import EnrichmentService
from aggregator.services.playlists import PlaylistService, get_playlist_service
from aggregator.services.preference_filter import PreferencesService, get_preferences_service

router = APIRouter(prefix="/api/catalog", tags=["catalog"])

_enrichment: Optional[EnrichmentService] = None


def get_enrichment_service() -> EnrichmentService:
    """Get or create the enrichment service singleton."""
    global _enrichment
    if _enrichment is None:
        _enrichment = EnrichmentService.from_settings()
    return _enrichment


async def _catalog_page(
    playlist_id: str,
    content_type: ContentType,
    group: Optional[str],
    search: Optional[str],
    page: int,
    per_page: int,
    playlists: PlaylistService,
    preferences: PreferencesService,
) -> dict:
    try:
        playlist = await playlists.get(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)

    items = build_catalog(
        playlist.channels,
        content_type,
        await preferences.get(),
        group=group,
        search=search,
    )
    total = len(items)
    start = (page - 1) * per_page
    return {
        "items": items[start:start + per_page],
        "total": total,
        "page": page,
        "per_page": per_page,
        "has_more": (page * per_page) < total,
    }


@router.get("/{playlist_id}/channels")
async def list_channels(
    playlist_id: str,
    group: Optional[str] = Query(None, description="Exact playlist group"),
    search: Optional[str] = Query(None, description="Search in cleaned names"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(100, ge=1, le=500, description="Results per page"),
    playlists: PlaylistService = Depends(get_playlist_service),
    preferences: PreferencesService = Depends(get_preferences_service),
):
    """
    Live channels grouped by name and country.

    Each item lists every stream variant and the ``best_variant`` for the
    preferred quality.
    """
    return await _catalog_page(playlist_id, "channel", group, search, page, per_page, playlists, preferences)


@router.get("/{playlist_id}/movies")
async def list_movies(
    playlist_id: str,
    group: Optional[str] = Query(None, description="Exact playlist group"),
    search: Optional[str] = Query(None, description="Search in cleaned names"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(100, ge=1, le=500, description="Results per page"),
    playlists: PlaylistService = Depends(get_playlist_service),
    preferences: PreferencesService = Depends(get_preferences_service),
):
    """Movies grouped by name and year."""
    return await _catalog_page(playlist_id, "movie", group, search, page, per_page, playlists, preferences)


@router.get("/{playlist_id}/series")
async def list_series(
    playlist_id: str,
    group: Optional[str] = Query(None, description="Exact playlist group"),
    search: Optional[str] = Query(None, description="Search in cleaned names"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(100, ge=1, le=500, description="Results per page"),
    playlists: PlaylistService = Depends(get_playlist_service),
    preferences: PreferencesService = Depends(get_preferences_service),
):
    """Series grouped by name and season."""
    return await _catalog_page(playlist_id, "series", group, search, page, per_page, playlists, preferences)


@router.get("/{playlist_id}/counts")
async def get_counts(
    playlist_id: str,
    playlists: PlaylistService = Depends(get_playlist_service),
    preferences: PreferencesService = Depends(get_preferences_service),
):
    """Deduplicated item counts per content type."""
    try:
        playlist = await playlists.get(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)
    return count_content(playlist.channels, await preferences.get())


@router.get("/{playlist_id}/facets")
async def get_facets(
    playlist_id: str,
    type: Optional[ContentType] = Query(None, description="Restrict to one content type"),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    """Countries, languages and categories available for filtering."""
    try:
        playlist = await playlists.get(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)
    return catalog_facets(playlist.channels, type)


@router.get("/{playlist_id}/records/{record_id}")
async def get_record(
    playlist_id: str,
    record_id: str,
    playlists: PlaylistService = Depends(get_playlist_service),
    enrichment: EnrichmentService = Depends(get_enrichment_service),
):
    """One playlist entry, with TMDB/OMDb fields when providers are configured."""
    try:
        playlist = await playlists.get(playlist_id)
    except AggregatorError as e:
        raise to_http_exception(e)

    record = next((c for c in playlist.channels if c.id == record_id), None)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Entry {record_id} not found")
    return await enrichment.enrich(record)
