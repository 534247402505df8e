"""
Pytest configuration and fixtures for LiveTV backend tests.
"""
from typing import Callable, Union

import httpx
import pytest

from livetv.config import Settings


class FakeUpstream:
    """
    Canned upstream for httpx.MockTransport, keyed by full request URL.

    A route is either ``(status, body, headers)``, an exception instance to
    raise, or a callable taking the request and returning an httpx.Response.
    """

    def __init__(self):
        self.routes: dict[str, Union[tuple, Exception, Callable]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, text: str = "", status: int = 200, content: bytes = None, headers: dict = None):
        body = content if content is not None else text.encode()
        self.routes[url] = (status, body, headers or {})

    def fail(self, url: str, exc: Exception):
        self.routes[url] = exc

    def handle(self, url: str, func: Callable[[httpx.Request], httpx.Response]):
        self.routes[url] = func

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        status, body, headers = route
        return httpx.Response(status, content=body, headers=headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture
def settings():
    """Default settings, independent of the environment's .env."""
    return Settings(_env_file=None)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def sample_media_playlist():
    """Media playlist with relative, root-relative and absolute segments."""
    return """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:4
#EXT-X-MEDIA-SEQUENCE:1042
#EXT-X-KEY:METHOD=AES-128,URI="key.bin",IV=0x1234
#EXTINF:4.000,
segment_0.ts
#EXTINF:4.000,
/live/abc/segment_1.ts

#EXTINF:4.000,
https://other.example.org/segment_2.ts
"""


@pytest.fixture
def sample_master_playlist():
    """Master playlist with alternate audio and an I-frame variant."""
    return """#EXTM3U
#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aud",NAME="English",DEFAULT=YES,URI="audio/en.m3u8"
#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720,AUDIO="aud"
720p/index.m3u8
#EXT-X-I-FRAME-STREAM-INF:BANDWIDTH=200000,URI="720p/iframes.m3u8"
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360,AUDIO="aud"
//cdn2.example.com/360p/index.m3u8
"""


@pytest.fixture
def sample_embed_html():
    """Typical player page with a JW-style setup block."""
    return """<!DOCTYPE html>
<html><head><title>Live</title></head>
<body>
<div id="player"></div>
<script>
  var player = jwplayer("player").setup({
    file: "https://edge1.example.net/hls/live/index.m3u8?token=abc123",
    image: "https://static.example.net/poster.jpg",
    autostart: true
  });
</script>
</body></html>
"""


def hunter_encode(text: str, alphabet: str = "ABCDEFGHIJ", offset: int = 7, base: int = 5) -> str:
    """Encode text the way the hunter obfuscator does (test-side inverse)."""
    chunks = []
    for ch in text:
        value = ord(ch) + offset
        digits = ""
        while value:
            digits = alphabet[value % base] + digits
            value //= base
        chunks.append(digits)
    return alphabet[base].join(chunks) + alphabet[base]


def hunter_block(source: str, alphabet: str = "ABCDEFGHIJ", offset: int = 7, base: int = 5) -> str:
    """A complete eval(function(h,u,n,t,e,r)...) block wrapping source."""
    encoded = hunter_encode(source, alphabet, offset, base)
    return (
        'eval(function(h,u,n,t,e,r){r="";for(var i=0,len=h.length;i<len;i++){var s="";'
        'r+=String.fromCharCode(s)}return decodeURIComponent(escape(r))}'
        f'("{encoded}",42,"{alphabet}",{offset},{base},17))'
    )
