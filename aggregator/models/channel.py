"""
Playlist, Channel and Category data models.
A Channel is one playlist entry: a live channel, a movie or a series.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

StreamType = Literal["live", "vod", "series"]
PlaylistSource = Literal["file", "url", "xtream"]


class Channel(BaseModel):
    """Normalized playlist entry produced by M3U or Xtream ingestion."""
    id: str
    name: str
    url: str
    logo: Optional[str] = None
    group: Optional[str] = None
    is_live: bool = True
    stream_type: StreamType = "live"

    # M3U attributes
    tvg_id: Optional[str] = None
    tvg_name: Optional[str] = None
    tvg_shift: Optional[str] = None
    epg_url: Optional[str] = None
    catchup: Optional[str] = None
    catchup_days: Optional[int] = None
    catchup_source: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None

    # VOD / series metadata
    plot: Optional[str] = None
    cast: Optional[str] = None
    director: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = None
    rating: Optional[str] = None
    rating5: Optional[float] = None
    duration: Optional[str] = None
    youtube_trailer: Optional[str] = None
    backdrop: Optional[str] = None
    series_id: Optional[int] = None
    season_num: Optional[int] = None
    episode_num: Optional[int] = None

    # External metadata enrichment
    tmdb_id: Optional[int] = None
    tmdb_rating: Optional[float] = None
    tmdb_year: Optional[str] = None
    tmdb_duration: Optional[str] = None
    tmdb_genres: Optional[list[str]] = None
    tmdb_popularity: Optional[float] = None
    tmdb_original_language: Optional[str] = None
    omdb_awards: Optional[str] = None


class Category(BaseModel):
    """Playlist group with the number of entries it holds."""
    id: str
    name: str
    channel_count: int = 0


class XtreamCredentials(BaseModel):
    """Login for an Xtream Codes server."""
    server_url: str
    username: str
    password: str


class Playlist(BaseModel):
    """A user playlist with its flat list of entries."""
    id: str
    name: str
    source: PlaylistSource = "file"
    channels: list[Channel] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    added_at: datetime
    last_updated: Optional[datetime] = None

    # Where to reload from on refresh
    source_url: Optional[str] = None
    xtream: Optional[XtreamCredentials] = None
    epg_url: Optional[str] = None
    # Reload interval from the #EXTM3U "refresh" attribute, in seconds
    refresh_interval: Optional[int] = None


class PlaylistSummary(BaseModel):
    """Playlist listing entry without the channel payload."""
    id: str
    name: str
    source: PlaylistSource
    channel_count: int
    added_at: datetime
    last_updated: Optional[datetime] = None
