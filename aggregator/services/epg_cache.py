"""
EPG cache manager.
Fetches short program listings for live Xtream channels, caches them for
a fixed TTL and exposes current/next program lookups.

A batch pass fetches in bounded sub-batches and commits every result in
one step when the pass ends, so readers never see half a pass.
"""
import asyncio
import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import httpx

from aggregator.config import Settings, get_settings
from aggregator.models.channel import Channel
from aggregator.models.epg import EpgProgram, NowPlaying
from aggregator.models.xtream import XtreamEpgListing
from aggregator.services.ttl_cache import Clock, TTLCache

logger = logging.getLogger(__name__)

EpgFetcher = Callable[[int], Awaitable[list[XtreamEpgListing]]]
EpgListener = Callable[[dict[str, list[EpgProgram]]], None]

STREAM_ID_PATTERN = re.compile(r'xtream-live-(\d+)')
BASE64_PATTERN = re.compile(r'^[A-Za-z0-9+/=]+$')
CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0E-\x1F]')

# One channel failing this way yields no programs, never a failed pass
FETCH_ERRORS = (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, ValueError)


def stream_id_for(channel_id: str) -> Optional[int]:
    """Numeric Xtream stream id embedded in a live channel id."""
    match = STREAM_ID_PATTERN.search(channel_id)
    return int(match.group(1)) if match else None


def decode_epg_text(value: Optional[str]) -> Optional[str]:
    """
    Decode titles and descriptions that panels send base64-encoded.

    Only decodes when the text is made of base64 characters, is longer
    than 4 characters and decodes to UTF-8 without control characters.
    Anything else is returned unchanged.
    """
    if not value or len(value) <= 4 or not BASE64_PATTERN.match(value):
        return value
    try:
        decoded = base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value
    if CONTROL_CHARS_PATTERN.search(decoded):
        return value
    return decoded


def listing_to_program(listing: XtreamEpgListing, channel_id: str, now: float) -> Optional[EpgProgram]:
    """Convert one listing; None when it has no usable time range."""
    if listing.start_timestamp is None or listing.stop_timestamp is None:
        return None

    start = float(listing.start_timestamp)
    end = float(listing.stop_timestamp)
    is_live = start <= now < end
    progress = None
    if is_live:
        progress = round((now - start) / (end - start) * 100)

    return EpgProgram(
        id=listing.id or f"{channel_id}-{int(start)}",
        channel_id=channel_id,
        title=decode_epg_text(listing.title) or "",
        description=decode_epg_text(listing.description),
        start=datetime.fromtimestamp(start, tz=timezone.utc),
        end=datetime.fromtimestamp(end, tz=timezone.utc),
        start_timestamp=start,
        end_timestamp=end,
        is_live=is_live,
        progress=progress,
    )


class EpgCacheManager:
    """
    Program guide cache for one playlist session.

    The TTL cache is keyed by stream id. ``epg_data`` holds the programs
    committed by completed passes, keyed by channel id; current/next
    lookups only read committed data.
    """

    def __init__(
        self,
        fetcher: EpgFetcher,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        self.cache: TTLCache[list[EpgProgram]] = TTLCache(self.settings.epg_cache_ttl_seconds, clock)
        self.clock = self.cache.clock
        self._sleep = sleep

        self._epg_data: dict[str, list[EpgProgram]] = {}
        self._fetched: set[str] = set()
        self._in_flight: set[str] = set()
        self._visible: list[Channel] = []
        self._listeners: list[EpgListener] = []
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def epg_data(self) -> dict[str, list[EpgProgram]]:
        return self._epg_data

    @property
    def is_loading(self) -> bool:
        return bool(self._in_flight)

    def subscribe(self, listener: EpgListener) -> Callable[[], None]:
        """Call ``listener`` with the committed data after each pass."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # ==================== FETCHING ====================

    async def _fetch_programs(self, stream_id: int, channel_id: str) -> Optional[list[EpgProgram]]:
        """Fetch without touching the cache; None when the fetch failed."""
        try:
            listings = await self.fetcher(stream_id)
        except FETCH_ERRORS as e:
            logger.warning(f"EPG fetch failed for {channel_id}: {e!r}")
            return None

        now = self.clock()
        programs = [listing_to_program(listing, channel_id, now) for listing in listings]
        return [p for p in programs if p is not None]

    async def get_or_fetch(self, channel_id: str) -> list[EpgProgram]:
        """
        Programs for one channel, from cache when fresh.

        Fetch failures give an empty list and leave the cache untouched.
        """
        stream_id = stream_id_for(channel_id)
        if stream_id is None:
            return []

        cached = self.cache.get(stream_id)
        if cached is not None:
            return cached

        programs = await self._fetch_programs(stream_id, channel_id)
        if programs is None:
            return []
        self.cache.set(stream_id, programs)
        return programs

    async def _fetch_chunk(
        self, channels: list[Channel], fetched: dict[int, list[EpgProgram]]
    ) -> dict[str, list[EpgProgram]]:
        """Fetch one chunk in concurrent sub-batches."""
        results: dict[str, list[EpgProgram]] = {}
        batch_size = self.settings.epg_concurrency

        async def fetch_one(channel: Channel) -> tuple[str, Optional[list[EpgProgram]]]:
            stream_id = stream_id_for(channel.id)
            if stream_id is None:
                return channel.id, None
            cached = self.cache.get(stream_id)
            if cached is not None:
                return channel.id, cached
            programs = await self._fetch_programs(stream_id, channel.id)
            if programs is not None:
                fetched[stream_id] = programs
            return channel.id, programs

        for start in range(0, len(channels), batch_size):
            batch = channels[start:start + batch_size]
            for channel_id, programs in await asyncio.gather(*(fetch_one(c) for c in batch)):
                if programs:
                    results[channel_id] = programs
        return results

    async def load(self, channels: list[Channel]) -> dict[str, list[EpgProgram]]:
        """
        Run one batch pass for the visible channels.

        Only live channels without committed programs are fetched. A pass
        for the same set of channel ids is skipped while one is running.
        Returns the programs committed by this pass.
        """
        live = [c for c in channels if c.is_live]
        pass_key = ",".join(sorted(c.id for c in live))
        if pass_key in self._in_flight:
            logger.debug("EPG pass already running for these channels")
            return {}

        self._visible = live
        pending = [c for c in live if c.id not in self._fetched]
        if not pending:
            return {}

        logger.info(f"Fetching EPG for {len(pending)} channels")
        self._in_flight.add(pass_key)
        try:
            results: dict[str, list[EpgProgram]] = {}
            fetched: dict[int, list[EpgProgram]] = {}
            chunk_size = self.settings.epg_chunk_size
            for start in range(0, len(pending), chunk_size):
                results.update(await self._fetch_chunk(pending[start:start + chunk_size], fetched))
                if start + chunk_size < len(pending):
                    await self._sleep(self.settings.epg_chunk_pause_seconds)

            self._commit(results, fetched)
        finally:
            self._in_flight.discard(pass_key)
        return results

    def _commit(self, results: dict[str, list[EpgProgram]], fetched: dict[int, list[EpgProgram]]):
        self.cache.update(fetched)
        if not results:
            return
        self._fetched.update(results)
        self._epg_data = {**self._epg_data, **results}
        for listener in list(self._listeners):
            listener(self._epg_data)

    # ==================== REFRESH ====================

    def clear(self):
        """Drop every cached entry and forget which channels were fetched."""
        self.cache.clear()
        self._fetched.clear()

    async def refresh(self) -> dict[str, list[EpgProgram]]:
        """Clear everything and refetch the last visible channels."""
        logger.info("EPG refresh requested")
        self.clear()
        return await self.load(self._visible)

    async def _refresh_loop(self):
        interval = self.settings.epg_refresh_interval_seconds
        while True:
            await self._sleep(interval)
            if self._visible:
                try:
                    await self.refresh()
                except Exception as e:
                    logger.error(f"Periodic EPG refresh failed: {e}")

    def start(self):
        """Start the periodic refresh task."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def stop(self):
        """Cancel the periodic refresh task."""
        task, self._refresh_task = self._refresh_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ==================== LOOKUPS ====================

    def get_current_program(self, channel_id: str, now: Optional[float] = None) -> Optional[EpgProgram]:
        """Committed program whose [start, end) contains ``now``."""
        now = self.clock() if now is None else now
        for program in self._epg_data.get(channel_id, []):
            if program.is_airing(now):
                return program
        return None

    def get_next_program(self, channel_id: str, now: Optional[float] = None) -> Optional[EpgProgram]:
        """First committed program starting after ``now``, in stored order."""
        now = self.clock() if now is None else now
        for program in self._epg_data.get(channel_id, []):
            if program.start_timestamp > now:
                return program
        return None

    def now_playing(self, channel_id: str, now: Optional[float] = None) -> NowPlaying:
        now = self.clock() if now is None else now
        return NowPlaying(
            channel_id=channel_id,
            current=self.get_current_program(channel_id, now),
            next=self.get_next_program(channel_id, now),
        )


class EpgSessions:
    """One EPG cache manager per open playlist."""

    def __init__(self):
        self._managers: dict[str, EpgCacheManager] = {}

    def get(self, playlist_id: str) -> Optional[EpgCacheManager]:
        return self._managers.get(playlist_id)

    def open(self, playlist_id: str, fetcher: EpgFetcher, settings: Optional[Settings] = None) -> EpgCacheManager:
        """Return the playlist's manager, creating and starting it if needed."""
        manager = self._managers.get(playlist_id)
        if manager is None:
            manager = EpgCacheManager(fetcher, settings=settings)
            manager.start()
            self._managers[playlist_id] = manager
        return manager

    async def close(self, playlist_id: str):
        manager = self._managers.pop(playlist_id, None)
        if manager is not None:
            await manager.stop()

    async def close_all(self):
        for playlist_id in list(self._managers):
            await self.close(playlist_id)


_sessions: Optional[EpgSessions] = None


def get_epg_sessions() -> EpgSessions:
    """Get or create the EPG session registry."""
    global _sessions
    if _sessions is None:
        _sessions = EpgSessions()
    return _sessions
