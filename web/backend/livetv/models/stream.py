"""
Stream resolution and proxy data models.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProviderKind(str, Enum):
    """Upstream providers. Order here is not priority; see Settings.provider_priority."""
    DLHD = "dlhd"          # numeric live TV channels
    CDNLIVE = "cdnlive"    # live events and network channels
    PPV = "ppv"            # pay-per-view events


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    OFFLINE_EVENT = "offline_event"
    EXTRACTION_FAILED = "extraction_failed"
    PROXY_UPSTREAM_ERROR = "proxy_upstream_error"
    BAD_REQUEST = "bad_request"


class ExtractionAttempt(BaseModel):
    """Output of one extraction rule against one page."""
    model_config = ConfigDict(frozen=True)

    rule_name: str
    matched_url: Optional[str] = None


class ExtractionRun(BaseModel):
    """Ordered record of a pipeline run over a single page."""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    rule_name: Optional[str] = None
    attempts: list[ExtractionAttempt] = Field(default_factory=list)


class ProviderAttempt(BaseModel):
    """One provider tried by the fallback orchestrator."""
    model_config = ConfigDict(frozen=True)

    provider: ProviderKind
    success: bool = False
    error: Optional[str] = None
    is_live: Optional[bool] = None


class StreamResult(BaseModel):
    """Outcome of resolving a stream. Never mutated; use model_copy for variants."""
    model_config = ConfigDict(frozen=True)

    success: bool
    stream_url: Optional[str] = None
    method: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    is_live: Optional[bool] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    domain: Optional[str] = None
    source: Optional[ProviderKind] = None
    attempted_providers: list[ProviderAttempt] = Field(default_factory=list)

    @model_validator(mode="after")
    def _success_has_url(self):
        if self.success and not self.stream_url:
            raise ValueError("successful StreamResult requires stream_url")
        return self

    @classmethod
    def failure(
        cls,
        error: str,
        kind: Optional[ErrorKind] = None,
        is_live: Optional[bool] = None,
        **fields,
    ) -> "StreamResult":
        return cls(success=False, error=error, error_kind=kind, is_live=is_live, **fields)


class PlaylistRewriteContext(BaseModel):
    """Everything the line rewriter needs for one playlist."""
    model_config = ConfigDict(frozen=True)

    base_url: str       # final playlist URL after redirects
    base_path: str      # base_url up to and including the last "/" of its path
    origin: str         # scheme://host[:port]
    source: str
    referer: str
    proxy_path: str = "/stream-proxy"
