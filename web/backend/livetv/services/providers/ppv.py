"""
PPV adapter: pay-per-view events embedded from pooembed.

Embed pages must be requested with the ppv.to Referer; the manifest and its
segments then expect the embed domain as Referer/Origin.
"""
from urllib.parse import quote

from livetv.models.stream import ProviderKind
from livetv.services.extractor import PACKED_SCRIPT
from livetv.services.providers.base import EmbedTarget, ProviderAdapter


class PPVAdapter(ProviderAdapter):
    kind = ProviderKind.PPV
    extra_rules = (PACKED_SCRIPT,)

    def embed_targets(self, local_id: str) -> list[EmbedTarget]:
        uri = quote(local_id.strip("/"), safe="/")
        return [
            EmbedTarget(url=f"https://{domain}/embed/{uri}", referer=self.settings.ppv_referer)
            for domain in self.settings.ppv_embed_domains
        ]
