"""
M3U Parser Service.
Parses M3U/M3U8 playlist text into normalized Channel records.
"""
import asyncio
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
import logging
import hashlib

import httpx

from aggregator.config import get_settings
from aggregator.errors import PlaylistFetchError
from aggregator.models.channel import Category, Channel, Playlist, StreamType

logger = logging.getLogger(__name__)

# "#EXTINF:-1 tvg-id="x" group-title="News",Name"
EXTINF_PATTERN = re.compile(r'^#EXTINF:\s*(-?\d+(?:\.\d+)?)\s*(.*)$')
ATTRIBUTE_PATTERN = re.compile(r'([\w-]+)="([^"]*)"')

STREAM_URL_PREFIXES = ('http', 'rtmp', 'rtsp')
VOD_EXTENSIONS = ('.mp4', '.mkv', '.avi', '.mov', '.wmv')
PLAYLIST_SUFFIX_PATTERN = re.compile(r'\.(m3u8?|txt)$', re.IGNORECASE)

DEFAULT_GROUP = 'Uncategorized'
DEFAULT_NAME = 'Unknown Channel'


def generate_id(*parts: str) -> str:
    """Stable short id: the same inputs always give the same id."""
    return hashlib.md5('-'.join(parts).encode()).hexdigest()[:12]


def parse_attributes(text: str) -> dict[str, str]:
    """Extract key="value" pairs; keys are lowercased, empty values dropped."""
    attributes = {}
    for key, value in ATTRIBUTE_PATTERN.findall(text):
        value = value.strip()
        if value:
            attributes[key.lower()] = value
    return attributes


def determine_stream_type(url: str, name: str) -> StreamType:
    """Classify an entry as live, vod or series from its URL and name."""
    lower_url = url.lower()
    lower_name = name.lower()

    if lower_url.endswith(VOD_EXTENSIONS):
        return 'vod'
    if '/series/' in lower_url or 's0' in lower_name or 'e0' in lower_name:
        return 'series'
    if '/movie/' in lower_url or '/vod/' in lower_url:
        return 'vod'
    return 'live'


def extract_categories(channels: list[Channel]) -> list[Category]:
    """One category per distinct group, with entry counts, sorted by name."""
    counts: dict[str, int] = {}
    for channel in channels:
        group = channel.group or DEFAULT_GROUP
        counts[group] = counts.get(group, 0) + 1

    categories = [
        Category(id=re.sub(r'\s+', '-', name.lower()), name=name, channel_count=count)
        for name, count in counts.items()
    ]
    return sorted(categories, key=lambda c: c.name)


def is_valid_m3u(content: str) -> bool:
    """Check whether text looks like an M3U playlist."""
    trimmed = content.strip()
    return trimmed.startswith('#EXTM3U') or '#EXTINF:' in trimmed


def playlist_name_from_url(url: str) -> str:
    """Readable playlist name from the last URL path segment."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return 'Playlist'
    segments = [s for s in parsed.path.split('/') if s]
    filename = segments[-1] if segments else parsed.hostname or ''
    return PLAYLIST_SUFFIX_PATTERN.sub('', filename) or 'Playlist'


def merge_playlists(playlists: list[Playlist], name: str = 'Merged playlist') -> Playlist:
    """Combine playlists, keeping the first entry seen for each URL."""
    channels = []
    seen_urls = set()
    for playlist in playlists:
        for channel in playlist.channels:
            if channel.url not in seen_urls:
                seen_urls.add(channel.url)
                channels.append(channel)

    added_at = datetime.now(timezone.utc)
    return Playlist(
        id=generate_id(name, added_at.isoformat()),
        name=name,
        source='file',
        channels=channels,
        categories=extract_categories(channels),
        added_at=added_at,
    )


class M3UParser:
    """Parse M3U playlists from text, files or URLs."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = get_settings()
        self._transport = transport

    def parse(self, content: str, source_name: str = 'Playlist') -> Playlist:
        """
        Parse playlist text.

        Never raises on malformed syntax: EXTINF lines without a stream URL
        and stray lines are skipped, giving fewer records.
        """
        channels = []
        header: dict[str, str] = {}
        current: Optional[dict] = None

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            if line.startswith('#EXTM3U'):
                header = parse_attributes(line)
                continue

            if line.startswith('#EXTINF:'):
                current = self._parse_extinf(line)
                continue

            # Other directives and comments
            if line.startswith('#'):
                continue

            if current is not None and line.startswith(STREAM_URL_PREFIXES):
                channels.append(self._build_channel(current, line, header.get('url-tvg')))
                current = None

        refresh = header.get('refresh', '').strip()
        added_at = datetime.now(timezone.utc)
        logger.info(f"Parsed {len(channels)} entries from {source_name}")

        return Playlist(
            id=generate_id(source_name, added_at.isoformat()),
            name=source_name,
            source='file',
            channels=channels,
            categories=extract_categories(channels),
            added_at=added_at,
            epg_url=header.get('url-tvg'),
            refresh_interval=int(refresh) if refresh.isdigit() else None,
        )

    def _parse_extinf(self, line: str) -> Optional[dict]:
        """Split an EXTINF line into duration, attributes and display name."""
        match = EXTINF_PATTERN.match(line)
        if not match:
            return None

        rest = match.group(2)
        # The display name follows the last comma
        comma = rest.rfind(',')
        if comma != -1:
            attributes, name = rest[:comma], rest[comma + 1:].strip()
        else:
            attributes, name = rest, rest.strip()

        return {
            'duration': float(match.group(1)),
            'attributes': parse_attributes(attributes),
            'name': name,
        }

    def _build_channel(self, info: dict, url: str, epg_url: Optional[str]) -> Channel:
        attrs = info['attributes']
        name = info['name'] or attrs.get('tvg-name') or DEFAULT_NAME
        stream_type = determine_stream_type(url, name)

        catchup_days = attrs.get('catchup-days')
        return Channel(
            id=generate_id(name, url),
            name=name,
            url=url,
            logo=attrs.get('tvg-logo'),
            group=attrs.get('group-title') or DEFAULT_GROUP,
            is_live=stream_type == 'live',
            stream_type=stream_type,
            tvg_id=attrs.get('tvg-id'),
            tvg_name=attrs.get('tvg-name'),
            tvg_shift=attrs.get('tvg-shift'),
            epg_url=epg_url,
            catchup=attrs.get('catchup'),
            catchup_days=int(catchup_days) if catchup_days and catchup_days.isdigit() else None,
            catchup_source=attrs.get('catchup-source'),
            user_agent=attrs.get('user-agent'),
            referrer=attrs.get('referrer'),
        )

    async def parse_file(self, filepath: str | Path, name: Optional[str] = None) -> Playlist:
        """
        Parse a local M3U file.

        Args:
            filepath: Path to the M3U file
            name: Playlist name, defaults to the file name without suffix

        Returns:
            Parsed playlist
        """
        filepath = Path(filepath)
        logger.info(f"Parsing M3U file: {filepath}")
        try:
            content = await asyncio.to_thread(filepath.read_text, encoding='utf-8-sig', errors='ignore')
        except OSError as e:
            raise PlaylistFetchError(f"Unable to read playlist file {filepath.name}: {e}") from e

        return self.parse(content, name or PLAYLIST_SUFFIX_PATTERN.sub('', filepath.name))

    async def parse_url(self, url: str, name: Optional[str] = None) -> Playlist:
        """Download and parse a playlist served over HTTP."""
        logger.info(f"Fetching playlist from {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.playlist_fetch_timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                content = response.text
        except httpx.HTTPError as e:
            raise PlaylistFetchError(f"Unable to load playlist: {e}") from e

        playlist = self.parse(content, name or playlist_name_from_url(url))
        return playlist.model_copy(update={'source': 'url', 'source_url': url})
