"""
Channel routing data models.
"""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from livetv.models.stream import ProviderAttempt, ProviderKind


class ChannelMapping(BaseModel):
    """A channel and the provider-local ids that can serve it."""
    model_config = ConfigDict(frozen=True)

    channel_id: str
    name: str
    category: str = "entertainment"
    country: str = "usa"
    providers: dict[ProviderKind, str]
    description: Optional[str] = None
    synthesized: bool = False  # built from a numeric id rather than the table

    @field_validator("providers")
    @classmethod
    def _at_least_one_provider(cls, value: dict) -> dict:
        if not value:
            raise ValueError("channel mapping needs at least one provider")
        return value

    def to_info(self) -> dict:
        return {
            "id": self.channel_id,
            "name": self.name,
            "category": self.category,
            "country": self.country,
            "providers": {kind.value: local_id for kind, local_id in self.providers.items()},
            "description": self.description,
        }


class ProviderChoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: ProviderKind
    provider_id: str
    priority: int  # 1-based position in the global order


class ProviderInfo(BaseModel):
    """Static description of an upstream provider."""
    type: ProviderKind
    name: str
    description: str = ""
    base_url: str = ""
    total_channels: int = 0
    categories: list[str] = Field(default_factory=list)
    countries: list[str] = Field(default_factory=list)
    channel_id_format: str = ""
    examples: list[str] = Field(default_factory=list)


class RoutingDecision(BaseModel):
    """How one /route-channel request was served. Derived per request."""
    channel_id: str
    optimal_provider: Optional[ProviderKind] = None
    used_provider: Optional[ProviderKind] = None
    priority: Optional[int] = None
    attempted_providers: list[ProviderAttempt] = Field(default_factory=list)
    fallback_available: bool = False
    available_providers: list[ProviderKind] = Field(default_factory=list)
    reason: str = "priority-order"

    def to_response(self) -> dict:
        return {
            "optimalProvider": self.optimal_provider,
            "usedProvider": self.used_provider,
            "priority": self.priority,
            "fallbackAvailable": self.fallback_available,
            "availableProviders": self.available_providers,
            "attemptedProviders": [
                {
                    "provider": attempt.provider,
                    "success": attempt.success,
                    "error": attempt.error,
                    "isLive": attempt.is_live,
                }
                for attempt in self.attempted_providers
            ],
            "reason": self.reason,
        }


class RouteChannelRequest(BaseModel):
    """POST body for /route-channel, mirroring the GET query parameters."""
    channelId: Optional[str] = None
    preferredProvider: Optional[str] = None
    excludeProviders: Optional[Union[list[str], str]] = None
