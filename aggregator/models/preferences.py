"""
User preference models and the supported country table.
"""
from pydantic import BaseModel, Field

from aggregator.models.content import Quality


class Country(BaseModel):
    """Country that can be detected in channel names."""
    code: str
    name: str
    flag: str = ""


class ChannelPreferences(BaseModel):
    countries: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    default_quality: Quality = "FHD"


class MoviePreferences(BaseModel):
    preferred_language: str = "MULTI"
    subtitle_language: str = "FR"
    categories: list[str] = Field(default_factory=list)


class SeriesPreferences(BaseModel):
    preferred_language: str = "MULTI"
    subtitle_language: str = "FR"
    categories: list[str] = Field(default_factory=list)


class UserPreferences(BaseModel):
    """Per-profile viewing preferences driving filtering and variant choice."""
    onboarding_completed: bool = False
    channels: ChannelPreferences = Field(default_factory=ChannelPreferences)
    movies: MoviePreferences = Field(default_factory=MoviePreferences)
    series: SeriesPreferences = Field(default_factory=SeriesPreferences)


COUNTRIES: dict[str, Country] = {
    c.code: c for c in (
        Country(code="FR", name="France", flag="🇫🇷"),
        Country(code="BE", name="Belgium", flag="🇧🇪"),
        Country(code="CH", name="Switzerland", flag="🇨🇭"),
        Country(code="CA", name="Canada", flag="🇨🇦"),
        Country(code="US", name="United States", flag="🇺🇸"),
        Country(code="UK", name="United Kingdom", flag="🇬🇧"),
        Country(code="ES", name="Spain", flag="🇪🇸"),
        Country(code="IT", name="Italy", flag="🇮🇹"),
        Country(code="DE", name="Germany", flag="🇩🇪"),
        Country(code="PT", name="Portugal", flag="🇵🇹"),
        Country(code="AR", name="Arabic", flag="🇸🇦"),
        Country(code="TR", name="Turkey", flag="🇹🇷"),
        Country(code="NL", name="Netherlands", flag="🇳🇱"),
        Country(code="PL", name="Poland", flag="🇵🇱"),
        Country(code="RO", name="Romania", flag="🇷🇴"),
        Country(code="RU", name="Russia", flag="🇷🇺"),
        Country(code="IN", name="India", flag="🇮🇳"),
        Country(code="BR", name="Brazil", flag="🇧🇷"),
        Country(code="MX", name="Mexico", flag="🇲🇽"),
        Country(code="JP", name="Japan", flag="🇯🇵"),
        Country(code="KR", name="Korea", flag="🇰🇷"),
        Country(code="CN", name="China", flag="🇨🇳"),
    )
}
