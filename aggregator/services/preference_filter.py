"""
Preference filtering and the persisted user preferences.
"""
import logging
from typing import Optional

from aggregator.models.content import DeduplicatedContent
from aggregator.models.preferences import UserPreferences
from aggregator.services.cache import DEFAULT_PROFILE, CacheService, get_cache

logger = logging.getLogger(__name__)

SECTIONS = ("channels", "movies", "series")


def _matches_categories(group: Optional[str], categories: list[str]) -> bool:
    """Case-insensitive substring match of any selected category in the group."""
    if not categories:
        return True
    if not group:
        return False
    group = group.lower()
    return any(category.lower() in group for category in categories)


def filter_content_by_preferences(
    content: list[DeduplicatedContent],
    preferences: UserPreferences,
) -> list[DeduplicatedContent]:
    """
    Keep items matching the user's country and category choices.

    Empty selections mean "everything". Channels are also filtered by
    country; an item without a detected country is excluded once any
    country is selected. Language preferences never exclude movies or
    series, they only steer variant selection.
    """
    filtered = []
    for item in content:
        if item.type == "channel":
            countries = preferences.channels.countries
            if countries and item.metadata.country not in countries:
                continue
            if not _matches_categories(item.group, preferences.channels.categories):
                continue
        elif item.type == "movie":
            if not _matches_categories(item.group, preferences.movies.categories):
                continue
        elif not _matches_categories(item.group, preferences.series.categories):
            continue
        filtered.append(item)
    return filtered


def merge_preferences(current: UserPreferences, updates: dict) -> UserPreferences:
    """
    Apply a partial update section by section.

    ``{"channels": {"countries": ["FR"]}}`` only replaces the channel
    countries; other channel fields and sections are kept.
    """
    data = current.model_dump()
    for key, value in updates.items():
        if key in SECTIONS and isinstance(value, dict):
            data[key] = {**data[key], **value}
        elif key in data:
            data[key] = value
    return UserPreferences.model_validate(data)


class PreferencesService:
    """Load and update preferences for one profile."""

    def __init__(self, cache: CacheService, profile: str = DEFAULT_PROFILE):
        self.cache = cache
        self.profile = profile

    async def get(self) -> UserPreferences:
        stored = await self.cache.get_preferences(self.profile)
        return stored or UserPreferences()

    async def update(self, updates: dict) -> UserPreferences:
        preferences = merge_preferences(await self.get(), updates)
        await self.cache.store_preferences(preferences, self.profile)
        return preferences

    async def update_section(self, section: str, updates: dict) -> UserPreferences:
        if section not in SECTIONS:
            raise ValueError(f"Unknown preference section: {section}")
        return await self.update({section: updates})

    async def complete_onboarding(self) -> UserPreferences:
        return await self.update({"onboarding_completed": True})

    async def reset(self) -> UserPreferences:
        await self.cache.delete_preferences(self.profile)
        logger.info(f"Preferences reset for profile {self.profile}")
        return UserPreferences()


async def get_preferences_service() -> PreferencesService:
    return PreferencesService(await get_cache())
