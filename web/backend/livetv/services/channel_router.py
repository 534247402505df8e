"""
Live TV channel router.

Maps a channel id to the providers that can serve it:
- table channels come from data/channel_mappings.json (keyed by slug, and
  also reachable through any provider-local id they list)
- purely numeric ids inside the DLHD range get a synthesized DLHD mapping

Priority is one global order over ProviderKind (Settings.provider_priority),
never per channel.
"""
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from livetv.config import Settings, get_settings
from livetv.models.channel import ChannelMapping, ProviderChoice, ProviderInfo
from livetv.models.stream import ProviderKind

logger = logging.getLogger(__name__)

DEFAULT_MAPPINGS_PATH = Path(__file__).parent.parent / "data" / "channel_mappings.json"


def load_mappings(path: Optional[Path] = None) -> dict:
    """Read the static channel table."""
    path = Path(path) if path else DEFAULT_MAPPINGS_PATH
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    logger.info(f"Loaded {len(data.get('channels', {}))} channel mappings from {path.name}")
    return data


def _parse_table(raw_channels: dict) -> dict[str, ChannelMapping]:
    channels = {}
    for channel_id, info in raw_channels.items():
        providers = {
            ProviderKind(kind): str(local_id)
            for kind, local_id in (info.get("providers") or {}).items()
            if local_id
        }
        if not providers:
            logger.warning(f"Skipping channel {channel_id}: no providers")
            continue
        channels[channel_id] = ChannelMapping(
            channel_id=channel_id,
            name=info.get("name", channel_id),
            category=info.get("category", "entertainment"),
            country=info.get("country", "usa"),
            providers=providers,
            description=info.get("description"),
        )
    return channels


def _parse_providers(raw_providers: dict) -> dict[ProviderKind, ProviderInfo]:
    return {
        ProviderKind(kind): ProviderInfo(
            type=ProviderKind(kind),
            name=info.get("name", kind),
            description=info.get("description", ""),
            base_url=info.get("baseUrl", ""),
            total_channels=info.get("totalChannels", 0),
            categories=info.get("categories", []),
            countries=info.get("countries", []),
            channel_id_format=info.get("channelIdFormat", ""),
            examples=info.get("examples", []),
        )
        for kind, info in raw_providers.items()
    }


class ChannelRouter:
    """Read-only channel table plus the numeric DLHD range."""

    def __init__(self, settings: Settings, mappings: Optional[dict] = None):
        self.settings = settings
        if mappings is None:
            mappings = load_mappings(settings.channel_mappings_path)
        self._channels = _parse_table(mappings.get("channels", {}))
        self._providers = _parse_providers(mappings.get("providers", {}))
        self._priority = list(settings.provider_priority)
        # Secondary index: provider-local id -> table channel (first listing wins)
        self._by_local_id: dict[str, ChannelMapping] = {}
        for channel in self._channels.values():
            for local_id in channel.providers.values():
                self._by_local_id.setdefault(local_id, channel)

    @property
    def priority(self) -> list[ProviderKind]:
        return list(self._priority)

    def priority_of(self, provider: ProviderKind) -> int:
        return self._priority.index(provider) + 1

    def is_numeric_channel(self, channel_id: str) -> bool:
        return (
            channel_id.isdigit()
            and self.settings.numeric_channel_min <= int(channel_id) <= self.settings.numeric_channel_max
        )

    def find_channel_by_id(self, channel_id: str) -> Optional[ChannelMapping]:
        channel_id = (channel_id or "").strip()
        if not channel_id:
            return None

        channel = self._channels.get(channel_id) or self._by_local_id.get(channel_id)
        if channel:
            return channel

        if self.is_numeric_channel(channel_id):
            return self._create_dlhd_mapping(channel_id)

        return None

    def get_optimal_provider(self, channel_id: str) -> Optional[ProviderChoice]:
        providers = self.get_channel_providers(channel_id)
        return providers[0] if providers else None

    def get_channel_providers(self, channel_id: str) -> list[ProviderChoice]:
        channel = self.find_channel_by_id(channel_id)
        if not channel:
            return []
        return self.providers_for(channel)

    def providers_for(self, channel: ChannelMapping) -> list[ProviderChoice]:
        """The mapping's providers in global priority order."""
        return [
            ProviderChoice(provider=kind, provider_id=channel.providers[kind], priority=index + 1)
            for index, kind in enumerate(self._priority)
            if kind in channel.providers
        ]

    def find_channels_by_name(self, name: str) -> list[ChannelMapping]:
        term = name.lower()
        return [c for c in self._channels.values() if term in c.name.lower()]

    def get_channels_by_category(self, category: str) -> list[ChannelMapping]:
        return [c for c in self._channels.values() if c.category == category]

    def get_channels_by_country(self, country: str) -> list[ChannelMapping]:
        return [c for c in self._channels.values() if c.country == country]

    def get_channels_by_provider(self, provider: ProviderKind) -> list[ChannelMapping]:
        return [c for c in self._channels.values() if provider in c.providers]

    def list_channels(self) -> list[ChannelMapping]:
        return list(self._channels.values())

    def get_provider_info(self, provider: ProviderKind) -> Optional[ProviderInfo]:
        return self._providers.get(provider)

    def get_available_providers(self) -> list[ProviderInfo]:
        return [self._providers[kind] for kind in self._priority if kind in self._providers]

    def get_provider_url(self, channel_id: str, provider: ProviderKind) -> Optional[str]:
        """This service's URL for fetching the channel from one provider."""
        channel = self.find_channel_by_id(channel_id)
        if not channel or provider not in channel.providers:
            return None
        local_id = channel.providers[provider]
        if provider == ProviderKind.DLHD:
            return f"{self.settings.tv_proxy_path}/?channel={local_id}"
        if provider == ProviderKind.CDNLIVE:
            if "|" in local_id:
                name, _, code = local_id.partition("|")
                return f"/cdnlive-stream?channel={quote_param(name)}&code={quote_param(code)}"
            return f"/cdnlive-stream?eventId={quote_param(local_id)}"
        if provider == ProviderKind.PPV:
            return f"/ppv-stream?uri={quote_param(local_id)}"
        return None

    def get_channel_stats(self) -> dict:
        by_provider = {kind.value: 0 for kind in ProviderKind}
        by_category: dict[str, int] = {}
        by_country: dict[str, int] = {}
        for channel in self._channels.values():
            for kind in channel.providers:
                by_provider[kind.value] += 1
            by_category[channel.category] = by_category.get(channel.category, 0) + 1
            by_country[channel.country] = by_country.get(channel.country, 0) + 1
        return {
            "totalChannels": len(self._channels),
            "numericRange": [self.settings.numeric_channel_min, self.settings.numeric_channel_max],
            "byProvider": by_provider,
            "byCategory": by_category,
            "byCountry": by_country,
        }

    def _create_dlhd_mapping(self, channel_id: str) -> ChannelMapping:
        return ChannelMapping(
            channel_id=channel_id,
            name=f"DLHD Channel {channel_id}",
            providers={ProviderKind.DLHD: channel_id},
            description="DLHD live TV channel",
            synthesized=True,
        )


def quote_param(value: str) -> str:
    return quote(value, safe="")


@lru_cache
def get_channel_router() -> ChannelRouter:
    """Get or create the channel router singleton."""
    return ChannelRouter(get_settings())
