"""
Deduplicator.
Groups playlist records that differ only by quality or language tag
into canonical content items and picks the variant to play.
"""
import logging
from typing import Optional

from aggregator.models.channel import Channel
from aggregator.models.content import (
    ContentCounts,
    ContentType,
    ContentVariant,
    DeduplicatedContent,
)
from aggregator.models.preferences import UserPreferences
from aggregator.services.m3u_parser import generate_id
from aggregator.services.metadata_extractor import (
    content_key,
    extract,
    select_best_quality,
)

logger = logging.getLogger(__name__)

# Movies and series fall back to this tier when no language matches
DEFAULT_VOD_QUALITY = "FHD"


def matches_type(record: Channel, content_type: ContentType) -> bool:
    """Whether a record belongs to the requested content type."""
    if content_type == "channel":
        return record.is_live or record.stream_type == "live"
    if content_type == "movie":
        return record.stream_type == "vod"
    return record.stream_type == "series"


def group_content(records: list[Channel], content_type: ContentType) -> list[DeduplicatedContent]:
    """
    Group records of one content type by content key.

    Groups come out in order of first appearance and keep their members in
    encounter order. The first member provides the display fields.
    """
    groups: dict[str, DeduplicatedContent] = {}

    for record in records:
        if not matches_type(record, content_type):
            continue

        metadata = extract(record.name)
        key = content_key(metadata, content_type)
        variant = ContentVariant(
            id=record.id,
            url=record.url,
            quality=metadata.quality,
            language=metadata.language,
        )

        group = groups.get(key)
        if group is None:
            groups[key] = DeduplicatedContent(
                id=generate_id(content_type, key),
                name=metadata.clean_name,
                logo=record.logo,
                group=record.group,
                type=content_type,
                metadata=metadata,
                variants=[variant],
            )
        else:
            group.variants.append(variant)

    logger.debug(f"Grouped {content_type} records into {len(groups)} items")
    return list(groups.values())


def deduplicate_channels(records: list[Channel]) -> list[DeduplicatedContent]:
    return group_content(records, "channel")


def deduplicate_movies(records: list[Channel]) -> list[DeduplicatedContent]:
    return group_content(records, "movie")


def deduplicate_series(records: list[Channel]) -> list[DeduplicatedContent]:
    return group_content(records, "series")


def select_best_variant(
    content: DeduplicatedContent,
    preferences: Optional[UserPreferences] = None,
) -> ContentVariant:
    """
    Variant to play for a content item.

    Channels rank by quality against the preferred tier. Movies and series
    take an exact language match first, then fall back to quality ranking
    against FHD.
    """
    variants = content.variants
    if len(variants) == 1:
        return variants[0]

    preferences = preferences or UserPreferences()

    if content.type == "channel":
        return variants[select_best_quality(variants, preferences.channels.default_quality)]

    section = preferences.movies if content.type == "movie" else preferences.series
    for variant in variants:
        if variant.language == section.preferred_language:
            return variant

    return variants[select_best_quality(variants, DEFAULT_VOD_QUALITY)]


def count_content(
    records: list[Channel],
    preferences: Optional[UserPreferences] = None,
) -> ContentCounts:
    """Deduplicated item counts; channels honour the country preference only."""
    channels = deduplicate_channels(records)
    countries = preferences.channels.countries if preferences else []
    if countries:
        channels = [c for c in channels if c.metadata.country in countries]

    return ContentCounts(
        channels=len(channels),
        movies=len(deduplicate_movies(records)),
        series=len(deduplicate_series(records)),
    )
