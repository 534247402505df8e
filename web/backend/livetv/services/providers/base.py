"""
Shared extraction pipeline for provider adapters.

An adapter only has to say where its embed pages live (``embed_targets``)
and which extra rules it needs; fetching, offline detection, rule matching,
the single iframe hop and playback headers are handled here.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from livetv.config import Settings
from livetv.errors import (
    ExtractionFailedError,
    LiveTVError,
    OfflineEventError,
    UpstreamUnavailableError,
)
from livetv.models.stream import ProviderKind, StreamResult
from livetv.services.extractor import (
    DEFAULT_RULES,
    Rule,
    detect_offline,
    find_single_iframe,
    run_rules,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbedTarget:
    """One page to try, and the Referer it must be requested with."""
    url: str
    referer: str


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class ProviderAdapter:
    """Base adapter: ``resolve(local_id) -> StreamResult``, never raises."""

    kind: ProviderKind
    MAX_IFRAME_DEPTH = 1
    extra_rules: tuple[Rule, ...] = ()

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @property
    def rules(self) -> tuple[Rule, ...]:
        return DEFAULT_RULES + self.extra_rules

    def embed_targets(self, local_id: str) -> list[EmbedTarget]:
        raise NotImplementedError

    def page_headers(self, referer: str) -> dict:
        """Browser-like headers for fetching an embed page."""
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": referer,
        }

    def playback_headers(self, page_url: str) -> dict:
        """Headers the player/proxy must send with the manifest and its segments."""
        origin = origin_of(page_url)
        return {
            "Referer": f"{origin}/",
            "Origin": origin,
            "User-Agent": self.settings.user_agent,
        }

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.provider_timeout),
            follow_redirects=True,
            transport=self._transport,
        )

    async def resolve(self, local_id: str) -> StreamResult:
        return await self.resolve_targets(self.embed_targets(local_id))

    async def resolve_targets(self, targets: list[EmbedTarget]) -> StreamResult:
        """Try each target in order. Offline ends the search for this provider."""
        if not targets:
            return StreamResult.failure("No embed pages to try", ExtractionFailedError.kind, source=self.kind)

        last_error: Optional[LiveTVError] = None
        async with self.client() as client:
            for target in targets:
                try:
                    result = await self.extract_from_page(client, target.url, target.referer)
                    logger.info(f"[{self.kind.value}] Resolved via {result.method} on {result.domain}")
                    return result
                except OfflineEventError as e:
                    logger.info(f"[{self.kind.value}] Offline at {target.url}: {e.message}")
                    return StreamResult.failure(
                        e.message, e.kind, is_live=False,
                        domain=urlparse(target.url).netloc, source=self.kind,
                    )
                except LiveTVError as e:
                    logger.warning(f"[{self.kind.value}] {target.url} failed: {e.message}")
                    last_error = e

        return StreamResult.failure(last_error.message, last_error.kind, source=self.kind)

    async def fetch_page(self, client: httpx.AsyncClient, url: str, referer: str) -> str:
        try:
            response = await client.get(url, headers=self.page_headers(referer))
        except httpx.TimeoutException:
            raise UpstreamUnavailableError(f"Timed out fetching {urlparse(url).netloc}")
        except httpx.InvalidURL as e:
            raise UpstreamUnavailableError(f"Invalid embed URL: {e}")
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"Failed to fetch {urlparse(url).netloc}: {e}")

        if not response.is_success:
            raise UpstreamUnavailableError(f"Embed page returned {response.status_code}")

        html = response.text
        if not html.strip():
            # Wrong Referer/Origin usually shows up as an empty 200, not an error status
            raise UpstreamUnavailableError("Embed page was empty (referer rejected?)")
        return html

    async def extract_from_page(
        self, client: httpx.AsyncClient, url: str, referer: str, depth: int = 0
    ) -> StreamResult:
        html = await self.fetch_page(client, url, referer)

        marker = detect_offline(html)
        if marker:
            raise OfflineEventError(f"Stream is not currently live ({marker})")

        run = run_rules(html, self.rules)
        if run.url:
            method = run.rule_name if depth == 0 else f"iframe:{run.rule_name}"
            return StreamResult(
                success=True,
                stream_url=run.url,
                method=method,
                headers=self.playback_headers(url),
                is_live=True,
                domain=urlparse(url).netloc,
                source=self.kind,
            )

        if depth < self.MAX_IFRAME_DEPTH:
            iframe_url = find_single_iframe(html, url)
            if iframe_url:
                logger.debug(f"[{self.kind.value}] Following iframe {iframe_url}")
                return await self.extract_from_page(client, iframe_url, url, depth + 1)

        tried = ", ".join(attempt.rule_name for attempt in run.attempts)
        raise ExtractionFailedError(f"No stream URL found in embed page (tried {tried})")
