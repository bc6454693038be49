"""
Xtream Codes API payload models.

Xtream panels are loose about types: ids arrive as strings or ints,
empty strings stand in for missing values and some fields switch
between a string and a list. These models absorb that drift so the
rest of the package only sees typed, optional fields.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class XtreamModel(BaseModel):
    """Base for Xtream payloads: ignore unknown keys, treat "" as absent."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def first_backdrop(value: Any) -> Optional[str]:
    """backdrop_path is either a string or a list of strings."""
    if isinstance(value, list):
        return str(value[0]) if value else None
    if isinstance(value, str) and value:
        return value
    return None


class XtreamUserInfo(XtreamModel):
    username: Optional[str] = None
    message: Optional[str] = None
    auth: Optional[int] = None
    status: Optional[str] = None
    exp_date: Optional[str] = None
    is_trial: Optional[str] = None
    active_cons: Optional[str] = None
    max_connections: Optional[str] = None


class XtreamServerInfo(XtreamModel):
    url: Optional[str] = None
    port: Optional[str] = None
    https_port: Optional[str] = None
    server_protocol: Optional[str] = None
    timezone: Optional[str] = None


class XtreamAuthResponse(XtreamModel):
    user_info: Optional[XtreamUserInfo] = None
    server_info: Optional[XtreamServerInfo] = None


class XtreamCategory(XtreamModel):
    category_id: Optional[str] = None
    category_name: Optional[str] = None


class XtreamLiveStream(XtreamModel):
    stream_id: int
    name: Optional[str] = None
    stream_icon: Optional[str] = None
    epg_channel_id: Optional[str] = None
    category_id: Optional[str] = None


class XtreamVodStream(XtreamModel):
    stream_id: int
    name: Optional[str] = None
    stream_icon: Optional[str] = None
    rating: Optional[str] = None
    rating_5based: Optional[float] = None
    category_id: Optional[str] = None
    container_extension: Optional[str] = None


class XtreamSeries(XtreamModel):
    series_id: int
    name: Optional[str] = None
    cover: Optional[str] = None
    plot: Optional[str] = None
    cast: Optional[str] = None
    director: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = Field(default=None, alias="releaseDate")
    rating: Optional[str] = None
    rating_5based: Optional[float] = None
    backdrop_path: Optional[str] = None
    youtube_trailer: Optional[str] = None
    episode_run_time: Optional[str] = None
    category_id: Optional[str] = None

    @field_validator("backdrop_path", mode="before")
    @classmethod
    def _backdrop(cls, value: Any) -> Optional[str]:
        return first_backdrop(value)


class XtreamEpisodeInfo(XtreamModel):
    movie_image: Optional[str] = None
    cover: Optional[str] = None
    cover_big: Optional[str] = None
    plot: Optional[str] = None
    duration: Optional[str] = None
    rating: Optional[float] = None
    releasedate: Optional[str] = None


class XtreamEpisode(XtreamModel):
    id: str
    episode_num: Optional[int] = None
    title: Optional[str] = None
    container_extension: Optional[str] = None
    info: Optional[XtreamEpisodeInfo] = None

    @field_validator("info", mode="before")
    @classmethod
    def _info(cls, value: Any) -> Any:
        # Some panels send [] instead of {} for an empty info block
        return value if isinstance(value, dict) else None


class XtreamSeasonInfo(XtreamModel):
    season_number: Optional[int] = None
    name: Optional[str] = None


class XtreamEpgListing(XtreamModel):
    id: Optional[str] = None
    epg_id: Optional[str] = None
    title: Optional[str] = None
    lang: Optional[str] = None
    description: Optional[str] = None
    channel_id: Optional[str] = None
    start_timestamp: Optional[int] = None
    stop_timestamp: Optional[int] = None


# Details returned to callers


class Episode(BaseModel):
    id: str
    episode_num: int
    title: str
    url: str
    thumbnail: Optional[str] = None
    plot: Optional[str] = None
    duration: Optional[str] = None
    rating: Optional[float] = None
    release_date: Optional[str] = None


class Season(BaseModel):
    season_number: int
    name: Optional[str] = None
    episode_count: int = 0
    episodes: list[Episode] = Field(default_factory=list)


class SeriesDetails(BaseModel):
    series_id: int
    name: str
    cover: Optional[str] = None
    backdrop: Optional[str] = None
    plot: Optional[str] = None
    cast: Optional[str] = None
    director: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = None
    rating5: Optional[float] = None
    episode_run_time: Optional[str] = None
    seasons: list[Season] = Field(default_factory=list)
    total_episodes: int = 0


class VodDetails(BaseModel):
    stream_id: int
    name: str
    cover: Optional[str] = None
    backdrop: Optional[str] = None
    plot: Optional[str] = None
    cast: Optional[str] = None
    director: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = None
    rating5: Optional[float] = None
    duration: Optional[str] = None
    duration_secs: Optional[int] = None
    youtube_trailer: Optional[str] = None
    tmdb_id: Optional[int] = None
    country: Optional[str] = None
    video_codec: Optional[str] = None
    video_resolution: Optional[str] = None
    audio_codec: Optional[str] = None
