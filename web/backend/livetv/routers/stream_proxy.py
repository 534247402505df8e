"""
Stream proxy endpoints.

/stream-proxy serves any upstream playlist or segment with injected headers;
/tv/ resolves a numeric DLHD channel and serves its manifest the same way.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from livetv.config import get_settings
from livetv.errors import BadRequestError, LiveTVError
from livetv.models.stream import ErrorKind, ProviderKind
from livetv.rate_limit import STREAM_LIMIT, limiter
from livetv.services.providers.registry import get_adapters
from livetv.services.stream_proxy import CORS_HEADERS, get_proxy_service

logger = logging.getLogger(__name__)

settings = get_settings()

router = APIRouter(tags=["stream-proxy"])


@router.get(settings.proxy_path)
@limiter.limit(STREAM_LIMIT)
async def stream_proxy(
    request: Request,
    url: Optional[str] = Query(None, description="Absolute upstream URL"),
    source: str = Query("", description="Provider the URL came from"),
    referer: Optional[str] = Query(None, description="Referer the upstream expects"),
    origin: Optional[str] = Query(None, description="Origin override (defaults to the referer's)"),
):
    """
    Proxy a playlist (rewritten) or a segment (streamed as-is).
    """
    if not url:
        raise BadRequestError("url is required")
    proxy = get_proxy_service()
    return await proxy.proxy(
        url,
        source=source,
        referer=referer,
        origin=origin,
        range_header=request.headers.get("range"),
    )


@router.options(settings.proxy_path)
async def stream_proxy_preflight():
    """CORS preflight."""
    return Response(status_code=204, headers=CORS_HEADERS)


@router.get(f"{settings.tv_proxy_path}/")
@limiter.limit(STREAM_LIMIT)
async def tv_channel(
    request: Request,
    channel: Optional[str] = Query(None, description="Numeric DLHD channel id"),
):
    """
    Resolve a DLHD channel's player page and serve its rewritten manifest.
    """
    adapter = get_adapters()[ProviderKind.DLHD]
    if not channel or not adapter.is_valid_channel(channel.strip()):
        raise BadRequestError(
            f"channel must be a number between {settings.numeric_channel_min} "
            f"and {settings.numeric_channel_max}"
        )

    result = await adapter.extract(channel.strip())
    if not result.success:
        logger.warning(f"DLHD channel {channel} unavailable: {result.error}")
        status = 404 if result.error_kind in (ErrorKind.NOT_FOUND, ErrorKind.OFFLINE_EVENT) else 502
        extra = {"isLive": result.is_live} if result.is_live is not None else {}
        raise LiveTVError(result.error, status_code=status, **extra)

    return await get_proxy_service().proxy_result(result)
