"""
Tests for the Xtream Codes client against a mocked panel.
"""
import asyncio

import pytest
import httpx

from aggregator.errors import PlaylistFetchError, XtreamAuthError
from aggregator.models.channel import XtreamCredentials
from aggregator.services.xtream_client import (
    UNKNOWN_SERIES_NAME,
    XtreamClient,
    check_connection,
    normalize_server_url,
)


class TestUrls:

    def test_normalize_server_url(self):
        assert normalize_server_url(" demo.example.com:8080/ ") == "http://demo.example.com:8080"
        assert normalize_server_url("https://secure.example.com/") == "https://secure.example.com"

    def test_stream_url_templates(self, xtream_credentials, settings):
        client = XtreamClient(xtream_credentials, settings=settings)
        assert client.build_live_stream_url(101) == "http://demo.example.com:8080/live/user/pass/101.m3u8"
        assert client.build_vod_stream_url(201, "mkv") == "http://demo.example.com:8080/movie/user/pass/201.mkv"
        assert client.build_series_stream_url(9001) == "http://demo.example.com:8080/series/user/pass/9001.mp4"


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_authenticate(self, xtream_credentials, settings, xtream_transport):
        client = XtreamClient(xtream_credentials, settings=settings, transport=xtream_transport)
        auth = await client.authenticate()
        assert auth.user_info.auth == 1
        assert client.is_authenticated()

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory):
        xtream_payloads[""] = {"user_info": {"auth": 0}}
        client = XtreamClient(xtream_credentials, settings=settings,
                              transport=xtream_transport_factory(xtream_payloads))
        with pytest.raises(XtreamAuthError):
            await client.load_full_playlist()

    @pytest.mark.asyncio
    async def test_unreachable_server(self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory):
        transport = xtream_transport_factory(xtream_payloads, {"": httpx.ConnectError("refused")})
        client = XtreamClient(xtream_credentials, settings=settings, transport=transport)
        with pytest.raises(PlaylistFetchError):
            await client.authenticate()

    @pytest.mark.asyncio
    async def test_check_connection(self, xtream_credentials, settings, xtream_transport):
        result = await check_connection(xtream_credentials, settings=settings, transport=xtream_transport)
        assert result["success"] is True
        assert "2030-01-01" in result["message"]

    @pytest.mark.asyncio
    async def test_check_connection_failure(self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory):
        xtream_payloads[""] = {"user_info": {"auth": "0"}}
        result = await check_connection(xtream_credentials, settings=settings,
                                        transport=xtream_transport_factory(xtream_payloads))
        assert result == {"success": False, "message": "Authentication failed. Check your credentials."}


class TestFullPlaylist:
    """Test loading every content class."""

    @pytest.mark.asyncio
    async def test_load_full_playlist(self, xtream_credentials, settings, xtream_transport):
        client = XtreamClient(xtream_credentials, settings=settings, transport=xtream_transport)
        result = await client.load_full_playlist()
        channels = {c.id: c for c in result.playlist.channels}

        assert result.count == 4
        assert result.counts == {"live": 2, "vod": 1, "series": 1}
        assert result.warnings == []
        assert result.playlist.source == "xtream"

        tf1 = channels["xtream-live-101"]
        assert tf1.group == "FR | Généraliste"
        assert tf1.tvg_id == "TF1.fr"
        assert tf1.url.endswith("/live/user/pass/101.m3u8")

        france2 = channels["xtream-live-102"]
        assert france2.group == "Live TV"
        assert france2.logo is None

        heat = channels["xtream-vod-201"]
        assert heat.group == "📽 Action"
        assert heat.stream_type == "vod" and heat.is_live is False
        assert heat.rating == "8.3"
        assert heat.rating5 == 4.1
        assert heat.url.endswith("/movie/user/pass/201.mkv")

        dark = channels["xtream-series-301"]
        assert dark.group == "📺 Drama"
        assert dark.url == ""
        assert dark.series_id == 301
        assert dark.backdrop == "http://img/dark-bg.jpg"
        assert dark.release_date == "2017-12-01"

    @pytest.mark.asyncio
    async def test_failing_class_does_not_abort_others(
        self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory
    ):
        transport = xtream_transport_factory(xtream_payloads, {"get_vod_streams": 500})
        client = XtreamClient(xtream_credentials, settings=settings, transport=transport)
        result = await client.load_full_playlist()

        assert result.counts == {"live": 2, "series": 1}
        assert result.count == 3
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Movies unavailable")

    @pytest.mark.asyncio
    async def test_malformed_listing_is_skipped(
        self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory
    ):
        xtream_payloads["get_series"] = {"unexpected": "shape"}
        client = XtreamClient(xtream_credentials, settings=settings,
                              transport=xtream_transport_factory(xtream_payloads))
        result = await client.load_full_playlist()
        assert result.counts["series"] == 0
        assert result.counts["live"] == 2

    @pytest.mark.asyncio
    async def test_expand_series(self, xtream_credentials, settings, xtream_transport):
        client = XtreamClient(xtream_credentials, settings=settings, transport=xtream_transport)
        result = await client.load_full_playlist(include_live=False, include_vod=False, expand_series=True)

        names = [c.name for c in result.playlist.channels]
        assert names == ["Dark S01E01", "Dark S01E02", "Dark S02E01"]
        assert all(c.stream_type == "series" for c in result.playlist.channels)
        assert result.playlist.channels[0].url.endswith("/series/user/pass/9001.mkv")


class TestDetails:
    """Test per-series and per-movie detail calls."""

    @pytest.mark.asyncio
    async def test_series_info(self, xtream_credentials, settings, xtream_transport):
        client = XtreamClient(xtream_credentials, settings=settings, transport=xtream_transport)
        details = await client.get_series_info(301)

        assert details.name == "Dark"
        assert details.rating5 == 4.5
        assert [s.season_number for s in details.seasons] == [1, 2]
        assert details.total_episodes == 3

        first = details.seasons[0].episodes[0]
        assert first.title == "Secrets"
        assert first.plot == "A child vanishes."
        assert first.thumbnail == "http://img/dark.jpg"
        assert details.seasons[0].episodes[1].episode_num == 2
        assert details.seasons[0].name == "Season 1"

    @pytest.mark.asyncio
    async def test_series_info_timeout_gives_placeholder(self, xtream_credentials, settings):
        async def slow_handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        client = XtreamClient(xtream_credentials, settings=settings, transport=httpx.MockTransport(slow_handler))
        details = await client.get_series_info(301)

        assert details.seasons == []
        assert details.total_episodes == 0
        assert details.name == UNKNOWN_SERIES_NAME

    @pytest.mark.asyncio
    async def test_series_info_http_error_gives_placeholder(
        self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory
    ):
        transport = xtream_transport_factory(xtream_payloads, {"get_series_info": 502})
        details = await XtreamClient(xtream_credentials, settings=settings, transport=transport).get_series_info(301)
        assert details.seasons == []
        assert details.name == UNKNOWN_SERIES_NAME

    @pytest.mark.asyncio
    async def test_vod_info(self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory):
        xtream_payloads["get_vod_info"] = {
            "info": {
                "movie_image": "http://img/heat.jpg",
                "backdrop_path": [],
                "plot": "A heist.",
                "duration_secs": "10200",
                "tmdb_id": 949,
                "video": {"codec_name": "h264", "width": 1920, "height": 1080},
                "audio": {"codec_name": "aac"},
            },
            "movie_data": {"stream_id": 201, "name": "Heat"},
        }
        client = XtreamClient(xtream_credentials, settings=settings,
                              transport=xtream_transport_factory(xtream_payloads))
        details = await client.get_vod_info(201)

        assert details.name == "Heat"
        assert details.backdrop is None
        assert details.duration_secs == 10200
        assert details.tmdb_id == 949
        assert details.video_resolution == "1920x1080"
        assert details.audio_codec == "aac"

    @pytest.mark.asyncio
    async def test_vod_info_timeout_gives_placeholder(self, xtream_credentials, settings):
        async def slow_handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        client = XtreamClient(xtream_credentials, settings=settings, transport=httpx.MockTransport(slow_handler))
        details = await client.get_vod_info(201)
        assert details.name == ""
        assert details.stream_id == 201

    @pytest.mark.asyncio
    async def test_short_epg(self, xtream_credentials, settings, xtream_payloads, xtream_transport_factory):
        xtream_payloads["get_short_epg"] = {"epg_listings": [
            {"id": "1", "title": "News", "start_timestamp": "1700000000", "stop_timestamp": "1700001800"},
        ]}
        client = XtreamClient(xtream_credentials, settings=settings,
                              transport=xtream_transport_factory(xtream_payloads))
        listings = await client.get_short_epg(101)
        assert len(listings) == 1
        assert listings[0].start_timestamp == 1700000000
