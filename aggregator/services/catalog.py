"""
Catalog assembly: dedup, preference filtering and variant choice for
one playlist and one content type.
"""
from typing import Optional

from aggregator.models.channel import Channel
from aggregator.models.content import CatalogFacets, CatalogItem, ContentType
from aggregator.models.preferences import UserPreferences
from aggregator.services.deduplicator import group_content, matches_type, select_best_variant
from aggregator.services.metadata_extractor import (
    extract_unique_categories,
    extract_unique_countries,
    extract_unique_languages,
)
from aggregator.services.preference_filter import filter_content_by_preferences


def build_catalog(
    records: list[Channel],
    content_type: ContentType,
    preferences: Optional[UserPreferences] = None,
    group: Optional[str] = None,
    search: Optional[str] = None,
) -> list[CatalogItem]:
    """Grouped, filtered items each annotated with the variant to play."""
    preferences = preferences or UserPreferences()
    content = filter_content_by_preferences(group_content(records, content_type), preferences)

    if group:
        content = [c for c in content if c.group == group]
    if search:
        needle = search.lower()
        content = [c for c in content if needle in c.name.lower()]

    return [
        CatalogItem(**item.model_dump(), best_variant=select_best_variant(item, preferences))
        for item in content
    ]


def catalog_facets(records: list[Channel], content_type: Optional[ContentType] = None) -> CatalogFacets:
    """Countries, languages and categories found in a playlist."""
    if content_type:
        records = [r for r in records if matches_type(r, content_type)]
    names = [r.name for r in records]
    return CatalogFacets(
        countries=extract_unique_countries(names),
        languages=extract_unique_languages(names),
        categories=extract_unique_categories(r.group for r in records),
    )
