"""
Live TV resolution API endpoints.

/route-channel picks a provider for a channel and falls back through the
others; /cdnlive-stream and /ppv-stream resolve one provider directly.
"""
import logging
from typing import Iterable, Optional, Union

from fastapi import APIRouter, Query, Request

from livetv.errors import BadRequestError, LiveTVError, NotFoundError
from livetv.models.channel import ChannelMapping, ProviderInfo, RouteChannelRequest, RoutingDecision
from livetv.models.stream import ErrorKind, ProviderKind, StreamResult
from livetv.rate_limit import API_LIMIT, limiter
from livetv.services.channel_router import get_channel_router
from livetv.services.fallback import get_orchestrator
from livetv.services.providers.cdnlive import parse_token_info
from livetv.services.providers.registry import get_adapters

logger = logging.getLogger(__name__)

router = APIRouter(tags=["livetv"])


def _parse_provider(value: Union[str, ProviderKind, None]) -> Optional[ProviderKind]:
    if value is None or value == "":
        return None
    if isinstance(value, ProviderKind):
        return value
    try:
        return ProviderKind(value.strip().lower())
    except ValueError:
        raise BadRequestError(f"Unknown provider: {value}")


def _parse_exclude(value: Union[str, Iterable, None]) -> list[ProviderKind]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [kind for kind in (_parse_provider(item) for item in value) if kind]


def _routing_reason(
    mapping: ChannelMapping,
    used: ProviderKind,
    optimal: Optional[ProviderKind],
    preferred: Optional[ProviderKind],
) -> str:
    if mapping.synthesized:
        return "numeric-id"
    if preferred and used == preferred:
        return "preferred-provider"
    if used != optimal:
        return "fallback"
    return "priority-order"


def _attempts_response(result: StreamResult) -> list[dict]:
    return [
        {"provider": a.provider, "success": a.success, "error": a.error, "isLive": a.is_live}
        for a in result.attempted_providers
    ]


async def _route_channel(
    channel_id: Optional[str],
    preferred_provider: Union[str, ProviderKind, None] = None,
    exclude_providers: Union[str, Iterable, None] = None,
) -> dict:
    if not channel_id or not channel_id.strip():
        raise BadRequestError("channelId is required")
    channel_id = channel_id.strip()

    preferred = _parse_provider(preferred_provider)
    excluded = _parse_exclude(exclude_providers)

    channel_router = get_channel_router()
    mapping = channel_router.find_channel_by_id(channel_id)
    if not mapping:
        raise NotFoundError(f"Channel not found: {channel_id}", channelId=channel_id)

    available = [choice.provider for choice in channel_router.providers_for(mapping)]
    optimal = available[0] if available else None

    result = await get_orchestrator().get_stream_with_fallback(mapping, preferred, excluded)

    if not result.success:
        logger.warning(f"Routing failed for {channel_id}: {result.error}")
        if result.error_kind == ErrorKind.NOT_FOUND:
            raise NotFoundError(result.error, channelId=channel_id)
        raise LiveTVError(
            result.error,
            status_code=502,
            channelId=channel_id,
            attemptedProviders=_attempts_response(result),
        )

    used = result.source
    decision = RoutingDecision(
        channel_id=mapping.channel_id,
        optimal_provider=optimal,
        used_provider=used,
        priority=channel_router.priority_of(used),
        attempted_providers=result.attempted_providers,
        fallback_available=len(available) > 1,
        available_providers=available,
        reason=_routing_reason(mapping, used, optimal, preferred),
    )
    logger.info(f"Routed {channel_id} to {used.value} ({decision.reason})")

    return {
        "success": True,
        "channelId": channel_id,
        "provider": used,
        "providerId": mapping.providers[used],
        "streamUrl": result.stream_url,
        "channelInfo": {
            **mapping.to_info(),
            "providerUrls": {
                kind.value: channel_router.get_provider_url(channel_id, kind) for kind in available
            },
        },
        "routing": decision.to_response(),
        "streamInfo": {
            "headers": result.headers,
            "isLive": result.is_live,
            "method": result.method,
        },
    }


@router.get("/route-channel")
@limiter.limit(API_LIMIT)
async def route_channel(
    request: Request,
    channelId: Optional[str] = Query(None, description="Table slug, provider-local id, or numeric DLHD id"),
    preferredProvider: Optional[str] = Query(None, description="dlhd, cdnlive or ppv"),
    excludeProviders: Optional[str] = Query(None, description="Comma separated providers to skip"),
):
    """
    Resolve a channel to a playable stream, falling back across providers.
    """
    return await _route_channel(channelId, preferredProvider, excludeProviders)


@router.post("/route-channel")
@limiter.limit(API_LIMIT)
async def route_channel_post(request: Request, body: RouteChannelRequest):
    """Same as GET /route-channel with a JSON body."""
    return await _route_channel(body.channelId, body.preferredProvider, body.excludeProviders)


@router.get("/cdnlive-stream")
@limiter.limit(API_LIMIT)
async def cdnlive_stream(
    request: Request,
    eventId: Optional[str] = Query(None, description="Live event id"),
    channel: Optional[str] = Query(None, description="Network channel name"),
    code: Optional[str] = Query(None, description="Country code for channel (default us)"),
):
    """
    Extract the stream for a CDN Live event or named network channel.
    """
    adapter = get_adapters()[ProviderKind.CDNLIVE]
    if eventId:
        result = await adapter.resolve_event(eventId)
    elif channel:
        result = await adapter.resolve_channel(channel, code)
    else:
        raise BadRequestError("eventId or channel is required")

    if not result.success:
        extra = {"isLive": result.is_live} if result.is_live is not None else {}
        raise NotFoundError(result.error, **extra)

    response = {
        "success": True,
        "streamUrl": result.stream_url,
        "method": result.method,
        "domain": result.domain,
        "isLive": result.is_live,
        "headers": result.headers,
    }
    token = parse_token_info(result.stream_url)
    if token["token"]:
        response["tokenInfo"] = {
            "channelId": token["channel_id"],
            "expiresAt": token["expires_at"],
        }
    return response


@router.get("/ppv-stream")
@limiter.limit(API_LIMIT)
async def ppv_stream(
    request: Request,
    uri: Optional[str] = Query(None, description="PPV uri_name, e.g. boxing/main-event"),
    id: Optional[str] = Query(None, description="PPV stream id, echoed back"),
    name: Optional[str] = Query(None, description="Display name, echoed back"),
):
    """
    Extract the stream for a PPV event.
    """
    if not uri:
        raise BadRequestError("uri is required")

    result = await get_adapters()[ProviderKind.PPV].resolve(uri)
    if not result.success:
        raise NotFoundError(result.error, uriName=uri)

    return {
        "success": True,
        "streamUrl": result.stream_url,
        "method": result.method,
        "streamInfo": {
            "id": id,
            "name": name,
            "uriName": uri,
            "domain": result.domain,
            "isLive": result.is_live,
        },
        "playbackHeaders": result.headers,
    }


@router.get("/channels")
@limiter.limit(API_LIMIT)
async def list_channels(
    request: Request,
    category: Optional[str] = Query(None, description="Filter by category (e.g., sports, news)"),
    country: Optional[str] = Query(None, description="Filter by country (e.g., usa, uk)"),
    provider: Optional[str] = Query(None, description="Only channels a provider can serve"),
    search: Optional[str] = Query(None, description="Search in channel names"),
):
    """
    List table channels. Numeric DLHD ids are not listed individually.
    """
    channel_router = get_channel_router()
    kind = _parse_provider(provider)

    selections = []
    if search:
        selections.append(channel_router.find_channels_by_name(search))
    if category:
        selections.append(channel_router.get_channels_by_category(category))
    if country:
        selections.append(channel_router.get_channels_by_country(country))
    if kind:
        selections.append(channel_router.get_channels_by_provider(kind))

    channels = channel_router.list_channels()
    for selected in selections:
        ids = {c.channel_id for c in selected}
        channels = [c for c in channels if c.channel_id in ids]

    return {
        "success": True,
        "channels": [c.to_info() for c in channels],
        "total": len(channels),
    }


@router.get("/channels/stats")
async def channel_stats():
    """Counts per provider, category and country."""
    return {"success": True, "stats": get_channel_router().get_channel_stats()}


def _provider_response(info: ProviderInfo) -> dict:
    return {
        "type": info.type,
        "name": info.name,
        "description": info.description,
        "baseUrl": info.base_url,
        "totalChannels": info.total_channels,
        "categories": info.categories,
        "countries": info.countries,
        "channelIdFormat": info.channel_id_format,
        "examples": info.examples,
    }


@router.get("/providers")
async def list_providers():
    """Providers in priority order."""
    channel_router = get_channel_router()
    return {
        "success": True,
        "priority": channel_router.priority,
        "providers": [_provider_response(info) for info in channel_router.get_available_providers()],
    }


@router.get("/providers/{provider}")
async def get_provider(provider: str):
    """Details for a single provider."""
    kind = _parse_provider(provider)
    info = get_channel_router().get_provider_info(kind)
    if not info:
        raise NotFoundError(f"Provider not configured: {provider}")
    return {"success": True, "provider": _provider_response(info)}
