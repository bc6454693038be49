"""
Pytest configuration and fixtures for aggregator tests.
"""
import pytest
import httpx

from aggregator.config import Settings
from aggregator.models.channel import XtreamCredentials


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    """Settings with a throwaway database and no inter-chunk pause."""
    return Settings(
        database_path=str(tmp_path / "test.db"),
        epg_chunk_pause_seconds=0,
        xtream_series_info_timeout=0.5,
        xtream_vod_info_timeout=0.5,
    )


@pytest.fixture
def sample_m3u_content():
    """Sample M3U content for testing."""
    return """#EXTM3U url-tvg="http://example.com/guide.xml" refresh="3600"
#EXTINF:-1 tvg-id="TF1.fr" tvg-logo="http://example.com/tf1.png" group-title="France",FR | TF1 FHD
http://example.com/live/tf1-fhd.m3u8
#EXTINF:-1 tvg-id="TF1.fr" group-title="France",FR | TF1 HD
http://example.com/live/tf1-hd.m3u8
#EXTINF:-1 tvg-logo="http://example.com/m6.png" group-title="France" catchup="default" catchup-days="7",FR: M6
http://example.com/live/m6.m3u8
#EXTINF:-1 group-title="Films",Inception (2010) [MULTI] FHD
http://example.com/movie/inception-multi.mkv
#EXTINF:-1 group-title="Films",Inception (2010) VFF HD
http://example.com/movie/inception-vff.mp4
#EXTINF:-1 group-title="Series",Dark S01E01
http://example.com/series/dark/s01e01.mp4
#EXTINF:-1 group-title="Series",Dark S01E02
http://example.com/series/dark/s01e02.mp4
"""


@pytest.fixture
def sample_m3u_file(sample_m3u_content, tmp_path):
    """Create a temporary M3U file for testing."""
    m3u_file = tmp_path / "france_bouquet.m3u"
    m3u_file.write_text(sample_m3u_content)
    return m3u_file


@pytest.fixture
def xtream_credentials():
    return XtreamCredentials(server_url="demo.example.com:8080/", username="user", password="pass")


@pytest.fixture
def xtream_payloads():
    """Responses of a small Xtream panel keyed by action ("" = auth)."""
    return {
        "": {
            "user_info": {"username": "user", "auth": 1, "status": "Active", "exp_date": "1893456000"},
            "server_info": {"url": "demo.example.com", "port": "8080"},
        },
        "get_live_categories": [
            {"category_id": "1", "category_name": "FR | Généraliste"},
        ],
        "get_live_streams": [
            {"stream_id": 101, "name": "FR: TF1 HD", "stream_icon": "http://img/tf1.png",
             "epg_channel_id": "TF1.fr", "category_id": "1"},
            {"stream_id": "102", "name": "FR: France 2", "stream_icon": "", "category_id": "99"},
            {"name": "No id"},
        ],
        "get_vod_categories": [
            {"category_id": 5, "category_name": "Action"},
        ],
        "get_vod_streams": [
            {"stream_id": 201, "name": "Heat (1995) MULTI", "rating": 8.3, "rating_5based": 4.1,
             "category_id": "5", "container_extension": "mkv"},
        ],
        "get_series_categories": [
            {"category_id": "7", "category_name": "Drama"},
        ],
        "get_series": [
            {"series_id": 301, "name": "Dark", "cover": "http://img/dark.jpg",
             "backdrop_path": ["http://img/dark-bg.jpg"], "releaseDate": "2017-12-01", "category_id": "7"},
        ],
        "get_series_info": {
            "info": {"name": "Dark", "cover": "http://img/dark.jpg", "rating_5based": "4.5"},
            "seasons": [],
            "episodes": {
                "1": [
                    {"id": "9001", "episode_num": 1, "title": "Secrets", "container_extension": "mkv",
                     "info": {"plot": "A child vanishes.", "duration": "00:51:00"}},
                    {"id": "9002", "episode_num": "2", "title": "Lies", "info": []},
                ],
                "2": [
                    {"id": "9010", "episode_num": 1, "title": "Beginnings and Endings"},
                ],
            },
        },
    }


def make_xtream_transport(payloads: dict, failures: dict = None) -> httpx.MockTransport:
    """
    Mock transport answering player_api.php by action.

    ``failures`` maps an action to an HTTP status code or to an
    exception instance raised by the transport.
    """
    failures = failures or {}

    async def handler(request: httpx.Request) -> httpx.Response:
        action = request.url.params.get("action", "")
        failure = failures.get(action)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return httpx.Response(failure, json={"error": "failure"})
        if action not in payloads:
            return httpx.Response(404, json={"error": "unknown action"})
        return httpx.Response(200, json=payloads[action])

    return httpx.MockTransport(handler)


@pytest.fixture
def xtream_transport(xtream_payloads):
    return make_xtream_transport(xtream_payloads)


@pytest.fixture
def xtream_transport_factory():
    """Build transports with failing actions for a test."""
    return make_xtream_transport
