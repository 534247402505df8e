"""
HLS stream proxy service.

Fetches a manifest or segment with the Referer/Origin the upstream expects,
rewrites playlists so every nested URI comes back through this proxy, and
streams binary segments through untouched.
"""
import logging
import re
from functools import lru_cache
from typing import AsyncIterator, Optional
from urllib.parse import quote, urljoin, urlparse

import httpx
from fastapi.responses import Response, StreamingResponse

from livetv.config import Settings, get_settings
from livetv.errors import BadRequestError, ProxyUpstreamError
from livetv.models.stream import PlaylistRewriteContext, StreamResult

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Type, Origin, Referer, User-Agent",
    "Access-Control-Expose-Headers": "Content-Length, Content-Range, Accept-Ranges",
}

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"

# Tags whose URI="..." attribute points at something the player will fetch
URI_TAGS = (
    "#EXT-X-MEDIA:",
    "#EXT-X-I-FRAME-STREAM-INF:",
    "#EXT-X-KEY:",
    "#EXT-X-SESSION-KEY:",
    "#EXT-X-MAP:",
)

# Binary response headers worth keeping
PASSTHROUGH_HEADERS = ("content-length", "content-range", "accept-ranges", "content-encoding")

_URI_ATTR_RE = re.compile(r'URI="([^"]*)"')
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def is_http_url(url: Optional[str]) -> bool:
    return bool(url) and url.lower().startswith(("http://", "https://"))


def is_playlist(content_type: str, url: str) -> bool:
    content_type = content_type.lower()
    if "mpegurl" in content_type or "text" in content_type:
        return True
    return urlparse(url).path.lower().endswith((".m3u8", ".txt"))


def build_context(
    final_url: str, source: str, referer: str, proxy_path: str = "/stream-proxy"
) -> PlaylistRewriteContext:
    """Base URL pieces for resolving a playlist's relative URIs."""
    parsed = urlparse(final_url)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    path = parsed.path or "/"
    return PlaylistRewriteContext(
        base_url=final_url,
        base_path=f"{origin}{path[:path.rfind('/') + 1]}",
        origin=origin,
        source=source,
        referer=referer,
        proxy_path=proxy_path,
    )


def resolve_uri(uri: str, ctx: PlaylistRewriteContext) -> Optional[str]:
    """
    Resolve a playlist URI to an absolute http(s) URL.

    Returns None for schemes the proxy cannot fetch (skd://, data:, ...),
    which are left as they are.
    """
    if is_http_url(uri):
        return uri
    if uri.startswith("//"):
        return f"{urlparse(ctx.base_url).scheme}:{uri}"
    if _SCHEME_RE.match(uri):
        return None
    if uri.startswith("/"):
        return f"{ctx.origin}{uri}"
    return f"{ctx.base_path}{uri}"


def wrap_url(url: str, ctx: PlaylistRewriteContext) -> str:
    return (
        f"{ctx.proxy_path}?url={quote(url, safe='')}"
        f"&source={quote(ctx.source, safe='')}"
        f"&referer={quote(ctx.referer, safe='')}"
    )


def _rewrite_uri_attribute(line: str, ctx: PlaylistRewriteContext) -> str:
    def replace(match: re.Match) -> str:
        absolute = resolve_uri(match.group(1), ctx)
        if absolute is None:
            return match.group(0)
        return f'URI="{wrap_url(absolute, ctx)}"'

    return _URI_ATTR_RE.sub(replace, line)


def rewrite_playlist(content: str, ctx: PlaylistRewriteContext) -> str:
    """Rewrite every fetchable URI in a playlist to go through the proxy."""
    rewritten = []
    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped:
            rewritten.append(line)
        elif stripped.startswith("#"):
            if stripped.startswith(URI_TAGS):
                line = _rewrite_uri_attribute(line, ctx)
            rewritten.append(line)
        else:
            absolute = resolve_uri(stripped, ctx)
            # Keep CRLF playlists consistently CRLF
            ending = "\r" if line.endswith("\r") else ""
            rewritten.append(wrap_url(absolute, ctx) + ending if absolute else line)
    return "\n".join(rewritten)


class StreamProxyService:
    """Proxies HLS playlists and segments with upstream-specific headers."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def build_headers(
        self, referer: str, origin: Optional[str] = None, range_header: Optional[str] = None
    ) -> dict:
        """Request headers for the upstream. Origin defaults to the Referer's origin."""
        if not origin:
            parsed = urlparse(referer)
            origin = f"{parsed.scheme}://{parsed.netloc}"
        headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": "*/*",
            "Referer": referer,
            "Origin": origin,
        }
        if range_header:
            headers["Range"] = range_header
        return headers

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.proxy_read_timeout, connect=self.settings.proxy_connect_timeout),
            follow_redirects=False,
            transport=self._transport,
        )

    async def fetch(self, url: str, headers: dict) -> tuple[httpx.AsyncClient, httpx.Response]:
        """
        Open a streamed GET, following at most one redirect with the same headers.

        The caller owns the returned client and response and must close both.
        """
        client = self.client()
        try:
            response = await client.send(client.build_request("GET", url, headers=headers), stream=True)
            if response.is_redirect:
                location = urljoin(url, response.headers["location"])
                await response.aclose()
                logger.info(f"Following redirect {urlparse(url).netloc} -> {urlparse(location).netloc}")
                response = await client.send(client.build_request("GET", location, headers=headers), stream=True)
                if response.is_redirect:
                    await response.aclose()
                    await client.aclose()
                    raise ProxyUpstreamError("Upstream redirected more than once", status_code=502)
        except httpx.TimeoutException:
            await client.aclose()
            raise ProxyUpstreamError(f"Upstream timed out: {urlparse(url).netloc}", status_code=504)
        except httpx.HTTPError as e:
            await client.aclose()
            raise ProxyUpstreamError(f"Upstream request failed: {e}", status_code=502)
        except (httpx.InvalidURL, ValueError) as e:
            await client.aclose()
            raise ProxyUpstreamError(f"Upstream redirect is not a valid URL: {e}", status_code=502)
        return client, response

    async def proxy(
        self,
        url: str,
        source: str = "",
        referer: Optional[str] = None,
        origin: Optional[str] = None,
        range_header: Optional[str] = None,
    ) -> Response:
        if not is_http_url(url):
            raise BadRequestError("url must be an absolute http(s) URL")
        try:
            if not httpx.URL(url).host:
                raise BadRequestError("url has no host")
        except httpx.InvalidURL as e:
            raise BadRequestError(f"Invalid url: {e}")

        if not referer:
            parsed = urlparse(url)
            referer = f"{parsed.scheme}://{parsed.netloc}/"

        try:
            headers = self.build_headers(referer, origin, range_header)
        except ValueError as e:
            raise BadRequestError(f"Invalid referer: {e}")

        client, response = await self.fetch(url, headers)

        if not response.is_success:
            status = response.status_code
            await response.aclose()
            await client.aclose()
            logger.warning(f"Upstream {urlparse(url).netloc} returned {status}")
            raise ProxyUpstreamError(f"Upstream returned {status}", status_code=status)

        final_url = str(response.url)
        content_type = response.headers.get("content-type", "")

        if is_playlist(content_type, final_url):
            try:
                body = await response.aread()
            except httpx.TimeoutException:
                raise ProxyUpstreamError("Upstream timed out reading playlist", status_code=504)
            except httpx.HTTPError as e:
                raise ProxyUpstreamError(f"Upstream playlist read failed: {e}", status_code=502)
            finally:
                await response.aclose()
                await client.aclose()

            ctx = build_context(final_url, source, referer, self.settings.proxy_path)
            rewritten = rewrite_playlist(body.decode("utf-8", errors="replace"), ctx)
            return Response(
                content=rewritten,
                media_type=PLAYLIST_MEDIA_TYPE,
                headers={**CORS_HEADERS, "Cache-Control": "no-cache, no-store, must-revalidate"},
            )

        headers = dict(CORS_HEADERS)
        for name in PASSTHROUGH_HEADERS:
            if name in response.headers:
                headers[name.title()] = response.headers[name]

        return StreamingResponse(
            self._iter_body(client, response),
            status_code=response.status_code,
            media_type=content_type or "application/octet-stream",
            headers=headers,
        )

    async def proxy_result(self, result: StreamResult) -> Response:
        """Proxy the manifest of a resolved stream with its playback headers."""
        return await self.proxy(
            result.stream_url,
            source=result.source.value if result.source else "",
            referer=result.headers.get("Referer"),
            origin=result.headers.get("Origin"),
        )

    async def _iter_body(self, client: httpx.AsyncClient, response: httpx.Response) -> AsyncIterator[bytes]:
        # Closing here also runs when the client disconnects mid-stream
        try:
            async for chunk in response.aiter_raw():
                yield chunk
        finally:
            await response.aclose()
            await client.aclose()


@lru_cache
def get_proxy_service() -> StreamProxyService:
    """Get or create proxy service singleton."""
    return StreamProxyService(get_settings())
