"""
DLHD adapter: numeric live TV channels (1-850).

``resolve`` is cheap and returns this service's own ``/tv/?channel=N`` route;
the expensive player-page extraction happens in ``extract`` when the player
actually requests that route.
"""
import logging

from livetv.models.stream import ErrorKind, ProviderKind, StreamResult
from livetv.services.extractor import vendor_source_rule
from livetv.services.providers.base import EmbedTarget, ProviderAdapter

logger = logging.getLogger(__name__)


class DLHDAdapter(ProviderAdapter):
    kind = ProviderKind.DLHD
    extra_rules = (vendor_source_rule("Clappr"),)

    def is_valid_channel(self, local_id: str) -> bool:
        if not local_id.isdigit():
            return False
        return self.settings.numeric_channel_min <= int(local_id) <= self.settings.numeric_channel_max

    @property
    def player_origin(self) -> str:
        return f"https://{self.settings.dlhd_player_domain}"

    def referer_chain(self, channel: str) -> list[str]:
        parent = self.settings.dlhd_parent_domain
        chain = [f"https://{parent}/watch.php?id={channel}"]
        chain.extend(
            f"https://{parent}/{variant}/stream-{channel}.php"
            for variant in self.settings.dlhd_path_variants
        )
        return chain

    def embed_targets(self, local_id: str) -> list[EmbedTarget]:
        player_url = f"{self.player_origin}/premiumtv/daddyhd.php?id={local_id}"
        return [EmbedTarget(url=player_url, referer=referer) for referer in self.referer_chain(local_id)]

    def playback_headers(self, page_url: str) -> dict:
        # Segments and keys are checked against the player domain, wherever the URL was found
        return {
            "Referer": f"{self.player_origin}/",
            "Origin": self.player_origin,
            "User-Agent": self.settings.user_agent,
        }

    async def resolve(self, local_id: str) -> StreamResult:
        if not self.is_valid_channel(local_id):
            return StreamResult.failure(
                f"Invalid DLHD channel {local_id!r} (valid range "
                f"{self.settings.numeric_channel_min}-{self.settings.numeric_channel_max})",
                ErrorKind.NOT_FOUND,
                source=self.kind,
            )
        return StreamResult(
            success=True,
            stream_url=f"{self.settings.tv_proxy_path}/?channel={local_id}",
            method="numeric-route",
            headers=self.playback_headers(self.player_origin),
            is_live=True,
            domain=self.settings.dlhd_player_domain,
            source=self.kind,
        )

    async def extract(self, local_id: str) -> StreamResult:
        """Resolve the real upstream manifest URL for a channel."""
        if not self.is_valid_channel(local_id):
            return StreamResult.failure(f"Invalid DLHD channel {local_id!r}", ErrorKind.BAD_REQUEST, source=self.kind)
        logger.info(f"[dlhd] Extracting channel {local_id}")
        return await self.resolve_targets(self.embed_targets(local_id))
