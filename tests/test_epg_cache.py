"""
Tests for the EPG cache manager: TTL, batching, commit and refresh.
"""
import asyncio

import pytest
import httpx

from aggregator.models.channel import Channel
from aggregator.models.xtream import XtreamEpgListing
from aggregator.services.epg_cache import (
    EpgCacheManager,
    EpgSessions,
    decode_epg_text,
    listing_to_program,
    stream_id_for,
)

NOW = 1_700_000_000


def live(stream_id: int) -> Channel:
    return Channel(id=f"xtream-live-{stream_id}", name=f"Channel {stream_id}", url=f"http://x/{stream_id}")


def listings(start: int = NOW - 600) -> list[XtreamEpgListing]:
    """Three consecutive 30 minute programs, the first one airing at NOW."""
    return [
        XtreamEpgListing(id=str(i), title=f"Program {i}",
                         start_timestamp=start + i * 1800, stop_timestamp=start + (i + 1) * 1800)
        for i in range(3)
    ]


class FakeFetcher:
    """Records calls; fails for the stream ids listed in ``failing``."""

    def __init__(self, failing=(), delay: float = 0, error=None):
        self.calls: list[int] = []
        self.failing = set(failing)
        self.error = error or httpx.ConnectTimeout("timed out")
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def __call__(self, stream_id: int) -> list[XtreamEpgListing]:
        self.calls.append(stream_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if stream_id in self.failing:
                raise self.error
            return listings()
        finally:
            self.active -= 1


@pytest.fixture
def epg_clock(clock):
    clock.now = NOW
    return clock


class TestDecoding:

    def test_decodes_base64_title(self):
        assert decode_epg_text("Sm91cm5hbCBkZSAyMGg=") == "Journal de 20h"
        assert decode_epg_text("TcOpdMOpbw==") == "Météo"

    def test_keeps_plain_text(self):
        assert decode_epg_text("News") == "News"
        assert decode_epg_text("Hello") == "Hello"
        assert decode_epg_text("Le film du soir") == "Le film du soir"
        assert decode_epg_text(None) is None

    def test_keeps_text_decoding_to_binary(self):
        # Decodes to control characters
        assert decode_epg_text("AAECAwQF") == "AAECAwQF"

    def test_stream_id_for(self):
        assert stream_id_for("xtream-live-42") == 42
        assert stream_id_for("xtream-vod-42") is None
        assert stream_id_for("abc123") is None


class TestListingConversion:

    def test_airing_program_has_progress(self):
        program = listing_to_program(listings()[0], "xtream-live-1", NOW)
        assert program.is_live is True
        assert program.progress == 33
        assert program.duration_minutes == 30

    def test_future_program(self):
        program = listing_to_program(listings()[1], "xtream-live-1", NOW)
        assert program.is_live is False
        assert program.progress is None

    def test_missing_timestamps_skipped(self):
        assert listing_to_program(XtreamEpgListing(title="x"), "xtream-live-1", NOW) is None


class TestCacheTTL:
    """Test the five minute cache lifetime."""

    @pytest.mark.asyncio
    async def test_fresh_entry_served_from_cache(self, settings, epg_clock):
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        first = await manager.get_or_fetch("xtream-live-1")
        epg_clock.advance(4 * 60)
        second = await manager.get_or_fetch("xtream-live-1")

        assert fetcher.calls == [1]
        assert second == first

    @pytest.mark.asyncio
    async def test_stale_entry_refetched(self, settings, epg_clock):
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        await manager.get_or_fetch("xtream-live-1")
        epg_clock.advance(6 * 60)
        await manager.get_or_fetch("xtream-live-1")

        assert fetcher.calls == [1, 1]

    @pytest.mark.asyncio
    async def test_failure_returns_empty_and_is_not_cached(self, settings, epg_clock):
        fetcher = FakeFetcher(failing={1})
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        assert await manager.get_or_fetch("xtream-live-1") == []
        assert 1 not in manager.cache
        await manager.get_or_fetch("xtream-live-1")
        assert fetcher.calls == [1, 1]

    @pytest.mark.asyncio
    async def test_non_xtream_channel_skipped(self, settings, epg_clock):
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)
        assert await manager.get_or_fetch("m3u-abc") == []
        assert fetcher.calls == []


class TestBatchPass:
    """Test batched loading and the single commit per pass."""

    @pytest.mark.asyncio
    async def test_load_commits_all_channels(self, settings, epg_clock):
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)
        commits = []
        manager.subscribe(lambda data: commits.append(set(data)))

        channels = [live(i) for i in range(1, 13)]
        results = await manager.load(channels)

        assert len(results) == 12
        assert len(commits) == 1
        assert commits[0] == {c.id for c in channels}
        assert sorted(fetcher.calls) == list(range(1, 13))

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, settings, epg_clock):
        fetcher = FakeFetcher(delay=0.01)
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)
        await manager.load([live(i) for i in range(1, 23)])
        assert fetcher.max_active <= settings.epg_concurrency

    @pytest.mark.asyncio
    async def test_chunks_are_paused(self, epg_clock):
        from aggregator.config import Settings

        pauses = []

        async def fake_sleep(seconds):
            pauses.append(seconds)

        settings = Settings(epg_chunk_size=4, epg_chunk_pause_seconds=0.1)
        manager = EpgCacheManager(FakeFetcher(), settings=settings, clock=epg_clock, sleep=fake_sleep)
        await manager.load([live(i) for i in range(1, 11)])
        assert pauses == [0.1, 0.1]

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_abort_batch(self, settings, epg_clock):
        fetcher = FakeFetcher(failing={3})
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        results = await manager.load([live(i) for i in range(1, 6)])

        assert set(results) == {"xtream-live-1", "xtream-live-2", "xtream-live-4", "xtream-live-5"}
        assert "xtream-live-3" not in manager.epg_data

    @pytest.mark.asyncio
    async def test_invalid_url_isolated_to_one_channel(self, settings, epg_clock):
        fetcher = FakeFetcher(failing={2}, error=httpx.InvalidURL("bad host"))
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        results = await manager.load([live(i) for i in range(1, 4)])

        assert set(results) == {"xtream-live-1", "xtream-live-3"}

    @pytest.mark.asyncio
    async def test_lookups_see_nothing_before_commit(self, settings, epg_clock):
        fetcher = FakeFetcher(delay=0.05)
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        task = asyncio.create_task(manager.load([live(1), live(2)]))
        await asyncio.sleep(0.01)
        assert manager.is_loading
        assert manager.get_current_program("xtream-live-1") is None

        await task
        assert not manager.is_loading
        assert manager.get_current_program("xtream-live-1").title == "Program 0"

    @pytest.mark.asyncio
    async def test_duplicate_pass_is_skipped(self, settings, epg_clock):
        fetcher = FakeFetcher(delay=0.05)
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)
        channels = [live(1), live(2)]

        first = asyncio.create_task(manager.load(channels))
        await asyncio.sleep(0.01)
        second = await manager.load(list(reversed(channels)))
        await first

        assert second == {}
        assert sorted(fetcher.calls) == [1, 2]

    @pytest.mark.asyncio
    async def test_fetched_channels_not_refetched(self, settings, epg_clock):
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        await manager.load([live(1), live(2)])
        await manager.load([live(1), live(2), live(3)])

        assert sorted(fetcher.calls) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_non_live_channels_ignored(self, settings, epg_clock):
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)
        movie = Channel(id="xtream-vod-9", name="Film", url="http://x", is_live=False, stream_type="vod")

        await manager.load([movie])
        assert fetcher.calls == []


class TestRefreshAndLookups:

    @pytest.mark.asyncio
    async def test_refresh_refetches_visible_channels(self, settings, epg_clock):
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)

        await manager.load([live(1), live(2)])
        await manager.refresh()

        assert sorted(fetcher.calls) == [1, 1, 2, 2]

    @pytest.mark.asyncio
    async def test_current_and_next_program(self, settings, epg_clock):
        manager = EpgCacheManager(FakeFetcher(), settings=settings, clock=epg_clock)
        await manager.load([live(1)])

        assert manager.get_current_program("xtream-live-1").title == "Program 0"
        assert manager.get_next_program("xtream-live-1").title == "Program 1"
        assert manager.get_current_program("xtream-live-404") is None

    @pytest.mark.asyncio
    async def test_current_program_interval_is_half_open(self, settings, epg_clock):
        manager = EpgCacheManager(FakeFetcher(), settings=settings, clock=epg_clock)
        await manager.load([live(1)])

        boundary = NOW - 600 + 1800
        assert manager.get_current_program("xtream-live-1", now=boundary).title == "Program 1"
        assert manager.get_next_program("xtream-live-1", now=boundary).title == "Program 2"
        assert manager.get_current_program("xtream-live-1", now=NOW + 10_000) is None

    @pytest.mark.asyncio
    async def test_now_playing(self, settings, epg_clock):
        manager = EpgCacheManager(FakeFetcher(), settings=settings, clock=epg_clock)
        await manager.load([live(1)])
        now_playing = manager.now_playing("xtream-live-1")
        assert now_playing.current.title == "Program 0"
        assert now_playing.next.title == "Program 1"

    @pytest.mark.asyncio
    async def test_periodic_refresh(self, epg_clock):
        from aggregator.config import Settings

        settings = Settings(epg_refresh_interval_seconds=0.01, epg_chunk_pause_seconds=0)
        fetcher = FakeFetcher()
        manager = EpgCacheManager(fetcher, settings=settings, clock=epg_clock)
        await manager.load([live(1)])

        manager.start()
        await asyncio.sleep(0.05)
        await manager.stop()

        assert len(fetcher.calls) >= 2


class TestSessions:

    @pytest.mark.asyncio
    async def test_open_reuses_and_close_stops(self, settings):
        sessions = EpgSessions()
        fetcher = FakeFetcher()

        manager = sessions.open("p1", fetcher, settings=settings)
        assert sessions.open("p1", fetcher, settings=settings) is manager
        assert manager._refresh_task is not None

        await sessions.close_all()
        assert sessions.get("p1") is None
        assert manager._refresh_task is None
