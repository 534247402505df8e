"""
Tests for provider adapters against a mocked upstream.
"""
import httpx
import pytest

from livetv.models.stream import ErrorKind, ProviderKind
from livetv.services.providers.cdnlive import CDNLiveAdapter, parse_token_info
from livetv.services.providers.dlhd import DLHDAdapter
from livetv.services.providers.ppv import PPVAdapter
from livetv.services.providers.registry import build_adapters
from conftest import hunter_block

CDN_STREAM = "https://edge.cdn-live.tv/api/v1/channels/us-espn/index.m3u8?token=9f2c.1767225600.a81b"


def cdnlive_channel_url(domain, name="espn", code="us"):
    return f"https://{domain}/api/v1/channels/player/?name={name}&code={code}&user=cdnlivetv&plan=free"


class TestPPVAdapter:
    """Test PPV extraction."""

    @pytest.mark.asyncio
    async def test_resolves_embed(self, settings, upstream, sample_embed_html):
        upstream.add("https://pooembed.top/embed/24-7/southpark", sample_embed_html)
        adapter = PPVAdapter(settings, transport=upstream.transport)

        result = await adapter.resolve("24-7/southpark")

        assert result.success
        assert result.stream_url == "https://edge1.example.net/hls/live/index.m3u8?token=abc123"
        assert result.method == "file_field"
        assert result.source == ProviderKind.PPV
        assert result.domain == "pooembed.top"
        assert result.is_live is True
        assert result.headers["Referer"] == "https://pooembed.top/"
        assert result.headers["Origin"] == "https://pooembed.top"
        assert "Mozilla" in result.headers["User-Agent"]

        # Embed page requested with the ppv.to referer
        assert upstream.requests[0].headers["Referer"] == "https://ppv.to/"

    @pytest.mark.asyncio
    async def test_packed_page(self, settings, upstream):
        html = (
            "<script>eval(function(p,a,c,k,e,d){return p}"
            "('0 1=\"2://3.4/5.6\";',10,7,'var|src|https|cdn|example|live|m3u8'.split('|'),0,{}))</script>"
        )
        upstream.add("https://pooembed.top/embed/boxing/main-event", html)
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("boxing/main-event")
        assert result.success
        assert result.method == "packed_script"

    @pytest.mark.asyncio
    async def test_page_not_found(self, settings, upstream):
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("nope")
        assert not result.success
        assert result.error_kind == ErrorKind.UPSTREAM_UNAVAILABLE
        assert "404" in result.error

    @pytest.mark.asyncio
    async def test_empty_body(self, settings, upstream):
        upstream.add("https://pooembed.top/embed/mma/card", "   ")
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("mma/card")
        assert not result.success
        assert "empty" in result.error

    @pytest.mark.asyncio
    async def test_no_stream_in_page(self, settings, upstream):
        upstream.add("https://pooembed.top/embed/mma/card", "<html><body>Coming soon</body></html>")
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("mma/card")
        assert not result.success
        assert result.error_kind == ErrorKind.EXTRACTION_FAILED
        assert "file_field" in result.error

    @pytest.mark.asyncio
    async def test_network_error(self, settings, upstream):
        upstream.fail("https://pooembed.top/embed/mma/card", httpx.ConnectError("connection refused"))
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("mma/card")
        assert not result.success
        assert result.error_kind == ErrorKind.UPSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_timeout(self, settings, upstream):
        upstream.fail("https://pooembed.top/embed/mma/card", httpx.ReadTimeout("slow"))
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("mma/card")
        assert not result.success
        assert "Timed out" in result.error


class TestIframeRecursion:
    """One iframe hop, no more."""

    @pytest.mark.asyncio
    async def test_follows_single_iframe(self, settings, upstream):
        upstream.add("https://pooembed.top/embed/nba/game", '<iframe src="/player/xyz"></iframe>')
        upstream.add(
            "https://pooembed.top/player/xyz",
            '<script>hls.loadSource("https://v.example.org/nba/index.m3u8")</script>',
        )
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("nba/game")

        assert result.success
        assert result.method == "iframe:load_source"
        assert upstream.requests[1].headers["Referer"] == "https://pooembed.top/embed/nba/game"

    @pytest.mark.asyncio
    async def test_headers_come_from_iframe_page(self, settings, upstream):
        upstream.add("https://pooembed.top/embed/nba/game", '<iframe src="https://player.example.org/p/1"></iframe>')
        upstream.add("https://player.example.org/p/1", 'file: "https://v.example.org/nba/index.m3u8"')
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("nba/game")

        assert result.headers["Referer"] == "https://player.example.org/"
        assert result.domain == "player.example.org"

    @pytest.mark.asyncio
    async def test_malformed_iframe_is_a_failed_result(self, settings, upstream):
        upstream.add("https://pooembed.top/embed/nba/game", '<iframe src="http://[oops/p"></iframe>')
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("nba/game")

        assert not result.success
        assert result.error_kind == ErrorKind.EXTRACTION_FAILED
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_only_one_hop(self, settings, upstream):
        upstream.add("https://pooembed.top/embed/nba/game", '<iframe src="https://a.example.org/1"></iframe>')
        upstream.add("https://a.example.org/1", '<iframe src="https://b.example.org/2"></iframe>')
        upstream.add("https://b.example.org/2", 'file: "https://v.example.org/nba/index.m3u8"')
        result = await PPVAdapter(settings, transport=upstream.transport).resolve("nba/game")

        assert not result.success
        assert "https://b.example.org/2" not in upstream.urls()


class TestCDNLiveAdapter:
    """Test CDN Live extraction and mirror fallback."""

    def test_split_local_id(self, settings):
        adapter = CDNLiveAdapter(settings)
        assert adapter.split_local_id("ufc-300") == ("ufc-300", None, "us")
        assert adapter.split_local_id("sky sports main event|gb") == (None, "sky sports main event", "gb")
        assert adapter.split_local_id("espn|") == (None, "espn", "us")

    def test_channel_targets_cover_every_mirror(self, settings):
        targets = CDNLiveAdapter(settings).embed_targets("sky sports main event|GB")
        assert [t.url for t in targets] == [
            cdnlive_channel_url(domain, "sky%20sports%20main%20event", "gb")
            for domain in ["cdn-live.tv", "cdn-live.me", "cdnlive.tv", "cdnlive.me"]
        ]
        assert targets[1].referer == "https://cdn-live.me/"

    @pytest.mark.asyncio
    async def test_hunter_channel_page(self, settings, upstream):
        source = f'var playlistUrl = "{CDN_STREAM}";'
        html = f"<html><body><script>{hunter_block(source)}</script></body></html>"
        upstream.add(cdnlive_channel_url("cdn-live.tv"), html)

        result = await CDNLiveAdapter(settings, transport=upstream.transport).resolve_channel("ESPN", "US")

        assert result.success
        assert result.stream_url == CDN_STREAM
        assert result.method == "hunter_packed"
        assert result.headers["Origin"] == "https://cdn-live.tv"

    @pytest.mark.asyncio
    async def test_mirror_fallback(self, settings, upstream):
        upstream.add(cdnlive_channel_url("cdn-live.tv"), "Service Unavailable", status=503)
        upstream.add(cdnlive_channel_url("cdn-live.me"), f"<script>var playlistUrl = '{CDN_STREAM}';</script>")

        result = await CDNLiveAdapter(settings, transport=upstream.transport).resolve("espn|us")

        assert result.success
        assert result.domain == "cdn-live.me"
        assert upstream.urls() == [cdnlive_channel_url("cdn-live.tv"), cdnlive_channel_url("cdn-live.me")]

    @pytest.mark.asyncio
    async def test_offline_stops_mirrors(self, settings, upstream):
        upstream.add("https://cdn-live.tv/embed/ufc-300", "<h2>This event has ended</h2>")
        upstream.add("https://cdn-live.me/embed/ufc-300", f"file: '{CDN_STREAM}'")

        result = await CDNLiveAdapter(settings, transport=upstream.transport).resolve_event("ufc-300")

        assert not result.success
        assert result.is_live is False
        assert result.error_kind == ErrorKind.OFFLINE_EVENT
        assert result.domain == "cdn-live.tv"
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_all_mirrors_fail(self, settings, upstream):
        result = await CDNLiveAdapter(settings, transport=upstream.transport).resolve_event("ufc-300")
        assert not result.success
        assert len(upstream.requests) == 4
        assert result.is_live is None

    def test_parse_token_info(self):
        info = parse_token_info(CDN_STREAM)
        assert info == {"channel_id": "us-espn", "token": "9f2c.1767225600.a81b", "expires_at": 1767225600}

    def test_parse_token_info_without_token(self):
        info = parse_token_info("https://edge.example.com/live/index.m3u8")
        assert info == {"channel_id": "", "token": "", "expires_at": None}


class TestDLHDAdapter:
    """Test numeric channel routing and player extraction."""

    @pytest.mark.asyncio
    async def test_resolve_returns_tv_route(self, settings):
        result = await DLHDAdapter(settings).resolve("51")
        assert result.success
        assert result.stream_url == "/tv/?channel=51"
        assert result.method == "numeric-route"
        assert result.source == ProviderKind.DLHD
        assert result.headers["Referer"] == "https://epicplayplay.cfd/"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("channel", ["0", "851", "abc"])
    async def test_resolve_rejects_out_of_range(self, settings, channel):
        result = await DLHDAdapter(settings).resolve(channel)
        assert not result.success
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_referer_chain(self, settings):
        chain = DLHDAdapter(settings).referer_chain("51")
        assert chain[0] == "https://daddyhd.com/watch.php?id=51"
        assert chain[1] == "https://daddyhd.com/stream/stream-51.php"
        assert len(chain) == 7

    @pytest.mark.asyncio
    async def test_extract_walks_referer_chain(self, settings, upstream):
        player_url = "https://epicplayplay.cfd/premiumtv/daddyhd.php?id=51"

        def player(request):
            # Only accepts the /cast/ referer; others get the usual empty 200
            if request.headers["Referer"] == "https://daddyhd.com/cast/stream-51.php":
                return httpx.Response(200, text="new Clappr.Player({source: 'https://x.example.cfd/mono/51/index.m3u8'})")
            return httpx.Response(200, text="")

        upstream.handle(player_url, player)
        result = await DLHDAdapter(settings, transport=upstream.transport).extract("51")

        assert result.success
        assert result.stream_url == "https://x.example.cfd/mono/51/index.m3u8"
        assert result.headers["Origin"] == "https://epicplayplay.cfd"
        assert len(upstream.requests) == 3

    @pytest.mark.asyncio
    async def test_extract_invalid_channel(self, settings):
        result = await DLHDAdapter(settings).extract("9000")
        assert not result.success
        assert result.error_kind == ErrorKind.BAD_REQUEST


def test_build_adapters(settings):
    adapters = build_adapters(settings)
    assert set(adapters) == {ProviderKind.DLHD, ProviderKind.CDNLIVE, ProviderKind.PPV}
    assert isinstance(adapters[ProviderKind.CDNLIVE], CDNLiveAdapter)
