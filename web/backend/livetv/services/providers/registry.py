"""
Provider capability table: one adapter per ProviderKind.
"""
from functools import lru_cache
from typing import Optional

import httpx

from livetv.config import Settings, get_settings
from livetv.models.stream import ProviderKind
from livetv.services.providers.base import ProviderAdapter
from livetv.services.providers.cdnlive import CDNLiveAdapter
from livetv.services.providers.dlhd import DLHDAdapter
from livetv.services.providers.ppv import PPVAdapter

ADAPTER_CLASSES: dict[ProviderKind, type[ProviderAdapter]] = {
    ProviderKind.DLHD: DLHDAdapter,
    ProviderKind.CDNLIVE: CDNLiveAdapter,
    ProviderKind.PPV: PPVAdapter,
}


def build_adapters(
    settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> dict[ProviderKind, ProviderAdapter]:
    return {kind: cls(settings, transport=transport) for kind, cls in ADAPTER_CLASSES.items()}


@lru_cache
def get_adapters() -> dict[ProviderKind, ProviderAdapter]:
    """Process-wide adapters built from the startup settings."""
    return build_adapters(get_settings())
