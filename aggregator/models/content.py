"""
Catalog models: metadata extracted from titles and deduplicated content.
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field

Quality = Literal["4K", "FHD", "HD", "SD"]
ContentType = Literal["channel", "movie", "series"]

# Highest to lowest
QUALITY_ORDER: tuple[str, ...] = ("4K", "FHD", "HD", "SD")

LANGUAGES: dict[str, str] = {
    "MULTI": "Multi-language",
    "VF": "French dub",
    "VFF": "French dub (France)",
    "TRUEFRENCH": "True French",
    "VOSTFR": "Original, French subtitles",
    "VO": "Original version",
}


class ContentMetadata(BaseModel):
    """Attributes parsed out of a free-text title."""
    clean_name: str
    country: Optional[str] = None
    language: Optional[str] = None
    quality: Optional[Quality] = None
    year: Optional[int] = None
    season: Optional[int] = None
    episode: Optional[int] = None


class ContentVariant(BaseModel):
    """One physical stream of a canonical content item."""
    id: str
    url: str
    quality: Optional[Quality] = None
    language: Optional[str] = None


class DeduplicatedContent(BaseModel):
    """Canonical item grouping all variants that share a content key."""
    id: str
    name: str
    logo: Optional[str] = None
    group: Optional[str] = None
    type: ContentType
    metadata: ContentMetadata
    variants: list[ContentVariant] = Field(default_factory=list)


class ContentCounts(BaseModel):
    """Number of deduplicated items per content type."""
    channels: int = 0
    movies: int = 0
    series: int = 0


class CatalogItem(DeduplicatedContent):
    """Deduplicated item with the variant chosen for the current preferences."""
    best_variant: ContentVariant


class CatalogFacets(BaseModel):
    """Values available for filtering a playlist's catalog."""
    countries: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
