"""
Fallback orchestrator: try a channel's providers one after another.

Attempts are strictly sequential. Upstream sites rate-limit and ban on bursts,
so providers are never raced in parallel.
"""
import asyncio
import logging
from functools import lru_cache
from typing import Iterable, Mapping, Optional

from livetv.config import get_settings
from livetv.models.channel import ChannelMapping
from livetv.models.stream import ErrorKind, ProviderAttempt, ProviderKind, StreamResult
from livetv.services.channel_router import ChannelRouter, get_channel_router
from livetv.services.providers.base import ProviderAdapter
from livetv.services.providers.registry import get_adapters

logger = logging.getLogger(__name__)


class FallbackOrchestrator:
    """Runs the fallback chain for one ChannelMapping."""

    def __init__(
        self,
        router: ChannelRouter,
        adapters: Mapping[ProviderKind, ProviderAdapter],
        attempt_delay: float = 0.0,
    ):
        self.router = router
        self.adapters = adapters
        self.attempt_delay = attempt_delay

    def candidate_order(
        self,
        mapping: ChannelMapping,
        preferred_source: Optional[ProviderKind] = None,
        exclude_sources: Iterable[ProviderKind] = (),
    ) -> list[ProviderKind]:
        excluded = set(exclude_sources)
        ordered = [choice.provider for choice in self.router.providers_for(mapping)]
        if preferred_source in ordered:
            ordered.remove(preferred_source)
            ordered.insert(0, preferred_source)
        return [kind for kind in ordered if kind not in excluded and kind in self.adapters]

    async def get_stream_with_fallback(
        self,
        mapping: ChannelMapping,
        preferred_source: Optional[ProviderKind] = None,
        exclude_sources: Iterable[ProviderKind] = (),
    ) -> StreamResult:
        candidates = self.candidate_order(mapping, preferred_source, exclude_sources)
        if not candidates:
            return StreamResult.failure(
                f"No provider available for channel {mapping.channel_id}", ErrorKind.NOT_FOUND
            )

        attempts: list[ProviderAttempt] = []
        for index, kind in enumerate(candidates):
            if index and self.attempt_delay:
                await asyncio.sleep(self.attempt_delay)

            local_id = mapping.providers[kind]
            logger.info(f"Channel {mapping.channel_id}: trying {kind.value} ({local_id})")
            try:
                result = await self.adapters[kind].resolve(local_id)
            except Exception as e:
                # Adapters convert expected failures themselves; this is a bug in one of them
                logger.error(f"Provider {kind.value} crashed on {local_id}: {e}", exc_info=True)
                result = StreamResult.failure(f"Provider error: {e}", ErrorKind.UPSTREAM_UNAVAILABLE)

            attempts.append(ProviderAttempt(
                provider=kind, success=result.success, error=result.error, is_live=result.is_live
            ))

            if result.success:
                return result.model_copy(update={"source": kind, "attempted_providers": attempts})

            logger.warning(f"Channel {mapping.channel_id}: {kind.value} failed: {result.error}")

        tried = ", ".join(f"{a.provider.value}: {a.error}" for a in attempts)
        all_offline = all(a.is_live is False for a in attempts)
        return StreamResult.failure(
            f"All providers failed ({tried})",
            ErrorKind.UPSTREAM_UNAVAILABLE,
            is_live=False if all_offline else None,
            attempted_providers=attempts,
        )


@lru_cache
def get_orchestrator() -> FallbackOrchestrator:
    """Get or create the orchestrator singleton."""
    settings = get_settings()
    return FallbackOrchestrator(get_channel_router(), get_adapters(), settings.fallback_attempt_delay)
