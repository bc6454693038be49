"""
Metadata Extractor.
Parses noisy playlist titles ("FR | TF1 FHD", "Inception (2010) [MULTI]")
into normalized attributes and computes content grouping keys.

Each pattern that matches is removed from the working copy of the title
before the next one runs, so a token is never read twice (a quality tag
cannot later pass for a language tag).
"""
import re
from typing import Iterable, Optional, Sequence

from aggregator.models.content import (
    ContentMetadata,
    ContentType,
    ContentVariant,
    QUALITY_ORDER,
)
from aggregator.models.preferences import COUNTRIES

# "FR: TF1", "FR | TF1", "FR-TF1"
COUNTRY_PREFIX_PATTERN = re.compile(r'^([A-Z]{2})\s*[:\-|]\s*', re.IGNORECASE)

# Checked in this order, first match wins
COUNTRY_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("FR", re.compile(r'\b(FR|FRANCE|FRENCH)\b', re.IGNORECASE)),
    ("BE", re.compile(r'\b(BE|BELGIUM|BELGE)\b', re.IGNORECASE)),
    ("CH", re.compile(r'\b(CH|SUISSE|SWISS)\b', re.IGNORECASE)),
    ("CA", re.compile(r'\b(CA|CANADA|CANADIAN)\b', re.IGNORECASE)),
    ("US", re.compile(r'\b(US|USA|AMERICAN|ENGLISH)\b', re.IGNORECASE)),
    ("UK", re.compile(r'\b(UK|GB|BRITISH)\b', re.IGNORECASE)),
    ("ES", re.compile(r'\b(ES|SPAIN|SPANISH|ESPANA)\b', re.IGNORECASE)),
    ("IT", re.compile(r'\b(IT|ITALY|ITALIAN|ITALIA)\b', re.IGNORECASE)),
    ("DE", re.compile(r'\b(DE|GERMANY|GERMAN|DEUTSCH)\b', re.IGNORECASE)),
    ("PT", re.compile(r'\b(PT|PORTUGAL|PORTUGUESE)\b', re.IGNORECASE)),
    ("AR", re.compile(r'\b(AR|ARAB|ARABIC|ARABE)\b', re.IGNORECASE)),
    ("TR", re.compile(r'\b(TR|TURKEY|TURKISH|TURK)\b', re.IGNORECASE)),
    ("NL", re.compile(r'\b(NL|NETHERLANDS|DUTCH)\b', re.IGNORECASE)),
    ("PL", re.compile(r'\b(PL|POLAND|POLISH)\b', re.IGNORECASE)),
    ("RO", re.compile(r'\b(RO|ROMANIA|ROMANIAN)\b', re.IGNORECASE)),
    ("RU", re.compile(r'\b(RU|RUSSIA|RUSSIAN)\b', re.IGNORECASE)),
    ("IN", re.compile(r'\b(IN|INDIA|INDIAN|HINDI)\b', re.IGNORECASE)),
    ("BR", re.compile(r'\b(BR|BRAZIL|BRAZILIAN)\b', re.IGNORECASE)),
    ("MX", re.compile(r'\b(MX|MEXICO|MEXICAN)\b', re.IGNORECASE)),
    ("JP", re.compile(r'\b(JP|JAPAN|JAPANESE)\b', re.IGNORECASE)),
    ("KR", re.compile(r'\b(KR|KOREA|KOREAN)\b', re.IGNORECASE)),
    ("CN", re.compile(r'\b(CN|CHINA|CHINESE)\b', re.IGNORECASE)),
)

# Highest tier first
QUALITY_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("4K", re.compile(r'\b(4K|UHD|2160p)\b', re.IGNORECASE)),
    ("FHD", re.compile(r'\b(FHD|1080p|FULLHD|FULL HD)\b', re.IGNORECASE)),
    ("HD", re.compile(r'\b(HD|720p)\b', re.IGNORECASE)),
    ("SD", re.compile(r'\b(SD|480p|LQ)\b', re.IGNORECASE)),
)

# VFF before VF and VOSTFR before VO
LANGUAGE_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("MULTI", re.compile(r'\bMULTI\b', re.IGNORECASE)),
    ("VFF", re.compile(r'\b(VFF|FRENCH)\b', re.IGNORECASE)),
    ("VF", re.compile(r'\bVF\b', re.IGNORECASE)),
    ("TRUEFRENCH", re.compile(r'\b(TRUEFRENCH|TRUE FRENCH)\b', re.IGNORECASE)),
    ("VOSTFR", re.compile(r'\b(VOSTFR|STFR)\b', re.IGNORECASE)),
    ("VO", re.compile(r'\bVO\b', re.IGNORECASE)),
)

YEAR_PATTERN = re.compile(r'\(?\b((?:19|20)\d{2})\b\)?')
SEASON_EPISODE_PATTERN = re.compile(r'\bS(\d{1,2})(?:E(\d{1,2}))?\b', re.IGNORECASE)
SEASON_PATTERN = re.compile(r'\b(?:SAISON|SEASON)\s*(\d{1,2})\b', re.IGNORECASE)

SEPARATORS_PATTERN = re.compile(r'[:\-|]+')
EMPTY_BRACKETS_PATTERN = re.compile(r'[\(\[]\s*[\)\]]')
WHITESPACE_PATTERN = re.compile(r'\s+')


def _strip(text: str, match: re.Match) -> str:
    return text[:match.start()] + ' ' + text[match.end():]


def _match_first(
    text: str, patterns: Sequence[tuple[str, re.Pattern]]
) -> tuple[Optional[str], str]:
    """Return the tag of the first matching pattern and the text without it."""
    for tag, pattern in patterns:
        match = pattern.search(text)
        if match:
            return tag, _strip(text, match)
    return None, text


def extract(raw_title: str) -> ContentMetadata:
    """
    Extract country, quality, language, year and season/episode from a title.

    Never raises: attributes that cannot be found are left as None. When
    nothing but tags remain, the raw title is kept as the clean name.
    """
    working = raw_title or ''

    country: Optional[str] = None
    prefix = COUNTRY_PREFIX_PATTERN.match(working)
    if prefix and prefix.group(1).upper() in COUNTRIES:
        country = prefix.group(1).upper()
        working = working[prefix.end():]
    else:
        country, working = _match_first(working, COUNTRY_PATTERNS)

    quality, working = _match_first(working, QUALITY_PATTERNS)
    language, working = _match_first(working, LANGUAGE_PATTERNS)

    year: Optional[int] = None
    year_match = YEAR_PATTERN.search(working)
    if year_match:
        year = int(year_match.group(1))
        working = _strip(working, year_match)

    season: Optional[int] = None
    episode: Optional[int] = None
    se_match = SEASON_EPISODE_PATTERN.search(working)
    if se_match:
        season = int(se_match.group(1))
        episode = int(se_match.group(2)) if se_match.group(2) else None
        working = _strip(working, se_match)
    else:
        season_match = SEASON_PATTERN.search(working)
        if season_match:
            season = int(season_match.group(1))
            working = _strip(working, season_match)

    clean_name = SEPARATORS_PATTERN.sub(' ', working)
    clean_name = EMPTY_BRACKETS_PATTERN.sub(' ', clean_name)
    clean_name = WHITESPACE_PATTERN.sub(' ', clean_name).strip()

    return ContentMetadata(
        clean_name=clean_name or raw_title,
        country=country,
        language=language,
        quality=quality,
        year=year,
        season=season,
        episode=episode,
    )


def content_key(metadata: ContentMetadata, content_type: ContentType) -> str:
    """Grouping identity for variants of the same channel, movie or series season."""
    name = metadata.clean_name.lower()
    if content_type == 'channel':
        return f"{name}_{metadata.country or 'unknown'}"
    if content_type == 'series':
        # Season only: episodes of one season share a key
        return f"{name}_s{metadata.season or 0}"
    return f"{name}_{metadata.year or 0}"


def get_content_key(name: str, content_type: ContentType) -> str:
    """Content key computed straight from a raw title."""
    return content_key(extract(name), content_type)


def extract_unique_countries(names: Iterable[str]) -> list[str]:
    """Sorted country codes found across titles."""
    countries = {extract(name).country for name in names}
    return sorted(c for c in countries if c)


def extract_unique_languages(names: Iterable[str]) -> list[str]:
    """Language tags found across titles, in first-seen order."""
    languages: dict[str, None] = {}
    for name in names:
        language = extract(name).language
        if language:
            languages.setdefault(language, None)
    return list(languages)


def extract_unique_categories(groups: Iterable[Optional[str]]) -> list[str]:
    """Sorted group names with decorative pipes and spaces trimmed."""
    categories = set()
    for group in groups:
        if not group:
            continue
        clean = group.strip().strip('|').strip()
        if clean:
            categories.add(clean)
    return sorted(categories)


def quality_rank(quality: Optional[str]) -> int:
    """Position in QUALITY_ORDER; untagged variants rank after every tier."""
    if quality in QUALITY_ORDER:
        return QUALITY_ORDER.index(quality)
    return len(QUALITY_ORDER)


def select_best_quality(variants: Sequence[ContentVariant], preferred_quality: str) -> int:
    """
    Index of the variant to play for a preferred quality tier.

    Picks the lowest tier that still meets or beats the preference. When
    no variant reaches it, falls back to the best available one. Ties keep
    encounter order.
    """
    if not variants:
        return 0
    ranked = sorted(range(len(variants)), key=lambda i: quality_rank(variants[i].quality))
    preferred = quality_rank(preferred_quality)

    meeting = [i for i in ranked if quality_rank(variants[i].quality) <= preferred]
    if meeting:
        closest = max(quality_rank(variants[i].quality) for i in meeting)
        return next(i for i in meeting if quality_rank(variants[i].quality) == closest)
    return ranked[0]
