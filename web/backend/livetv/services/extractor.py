"""
Pattern extractor for provider embed pages.

Everything here is pure: given page HTML it either finds a manifest URL or
it doesn't. Rules are tried in a fixed order (most specific first) and the
first match that passes ``is_valid_stream_url`` wins. Providers extend the
list with their own rules instead of touching the loop.
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from urllib.parse import urljoin

from livetv.models.stream import ExtractionAttempt, ExtractionRun
from livetv.services import unpacker

logger = logging.getLogger(__name__)


# Substrings that mark a decoy or an "offline" poster instead of a manifest
URL_DENYLIST = (
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".ico",
    "static.dzine", "stylar_product",
)

OFFLINE_MARKERS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"stream\s+(?:is\s+)?(?:currently\s+)?offline",
    r"event\s+has\s+ended",
    r"event\s+ended",
    r"not\s+currently\s+live",
    r"stream\s+is\s+not\s+live",
    r"stream\s+has\s+ended",
    r"this\s+event\s+has\s+not\s+started",
))

_M3U8_IN_QUOTES = r"""["']([^"']+\.m3u8[^"']*)["']"""
_IFRAME_RE = re.compile(r"""<iframe[^>]+src\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_ABSOLUTE_M3U8_RE = re.compile(r"""https?://[^\s"'<>\\]+\.m3u8[^\s"'<>\\]*""", re.IGNORECASE)


@dataclass(frozen=True)
class Rule:
    """A named, pure ``html -> url | None`` extraction rule."""
    name: str
    func: Callable[[str], Optional[str]]

    def __call__(self, html: str) -> Optional[str]:
        return self.func(html)


def is_valid_stream_url(url: Optional[str]) -> bool:
    """Absolute http(s) URL that mentions .m3u8 and is not a known decoy."""
    if not url:
        return False
    lower = url.strip().lower()
    if not (lower.startswith("http://") or lower.startswith("https://")):
        return False
    if ".m3u8" not in lower:
        return False
    return not any(pattern in lower for pattern in URL_DENYLIST)


def detect_offline(html: str) -> Optional[str]:
    """Return the offline marker found in the page, if any."""
    for marker in OFFLINE_MARKERS:
        match = marker.search(html)
        if match:
            return match.group(0)
    return None


def decode_base64(payload: str) -> Optional[str]:
    """Lenient base64 decode (standard or urlsafe, missing padding allowed)."""
    payload = payload.strip()
    payload += "=" * (-len(payload) % 4)
    for decoder in (base64.b64decode, base64.urlsafe_b64decode):
        try:
            return decoder(payload).decode("utf-8")
        except (binascii.Error, ValueError, UnicodeDecodeError):
            continue
    return None


def find_m3u8_url(text: str) -> Optional[str]:
    """First absolute .m3u8 URL anywhere in free text."""
    match = _ABSOLUTE_M3U8_RE.search(text)
    return match.group(0) if match else None


def _regex_rule(name: str, pattern: str, flags: int = re.IGNORECASE) -> Rule:
    compiled = re.compile(pattern, flags)

    def _match(html: str) -> Optional[str]:
        # Skip decoys so a later real manifest still wins; fall back to the first hit
        first = None
        for match in compiled.finditer(html):
            url = match.group(1).strip()
            if is_valid_stream_url(url):
                return url
            if first is None:
                first = url
        return first

    return Rule(name, _match)


def _atob(html: str) -> Optional[str]:
    for match in re.finditer(r"""atob\s*\(\s*["']([A-Za-z0-9+/=_-]{8,})["']\s*\)""", html):
        decoded = decode_base64(match.group(1))
        if decoded and ".m3u8" in decoded:
            return find_m3u8_url(decoded) or decoded.strip()
    return None


def _packed_script(html: str) -> Optional[str]:
    source = unpacker.unpack(html)
    if source is None:
        return None
    return find_m3u8_url(source.replace("\\/", "/"))


def _hunter_packed(html: str) -> Optional[str]:
    source = unpacker.unhunt(html)
    if source is None:
        return None
    return _playlist_url_assignment(source) or find_m3u8_url(source)


def _playlist_url_assignment(text: str) -> Optional[str]:
    match = re.search(r"""playlistUrl\s*=\s*["']([^"']+)["']""", text)
    return match.group(1) if match else None


def vendor_source_rule(vendor: str) -> Rule:
    """``source:`` field inside a vendor player setup, e.g. ``Clappr.Player({source: ...})``."""
    return _regex_rule(
        f"{vendor.lower()}_source",
        rf"{re.escape(vendor)}[\s\S]{{0,400}}?\bsource\s*:\s*{_M3U8_IN_QUOTES}",
    )


FILE_FIELD = _regex_rule("file_field", rf"\bfile\s*:\s*{_M3U8_IN_QUOTES}")
LOAD_SOURCE = _regex_rule("load_source", rf"loadSource\s*\(\s*{_M3U8_IN_QUOTES}\s*\)")
SOURCE_TAG = _regex_rule("source_tag", rf"<source[^>]+src\s*=\s*{_M3U8_IN_QUOTES}")
ATOB_BASE64 = Rule("atob_base64", _atob)
QUOTED_M3U8 = _regex_rule("quoted_m3u8", r"""["'](https?://[^"']*\.m3u8[^"']*)["']""")
PACKED_SCRIPT = Rule("packed_script", _packed_script)
HUNTER_PACKED = Rule("hunter_packed", _hunter_packed)
PLAYLIST_URL = Rule("playlist_url", _playlist_url_assignment)

DEFAULT_RULES: tuple[Rule, ...] = (FILE_FIELD, LOAD_SOURCE, SOURCE_TAG, ATOB_BASE64, QUOTED_M3U8)


def run_rules(html: str, rules: Iterable[Rule] = DEFAULT_RULES) -> ExtractionRun:
    """Try rules in order; stop at the first match that passes validation."""
    attempts = []
    for rule in rules:
        try:
            url = rule(html)
        except (ValueError, IndexError) as e:
            logger.debug(f"Rule {rule.name} errored: {e}")
            url = None
        attempts.append(ExtractionAttempt(rule_name=rule.name, matched_url=url))
        if url and is_valid_stream_url(url):
            return ExtractionRun(url=url, rule_name=rule.name, attempts=attempts)
        if url:
            logger.debug(f"Rule {rule.name} matched a rejected URL: {url[:80]}")
    return ExtractionRun(attempts=attempts)


def find_single_iframe(html: str, page_url: str) -> Optional[str]:
    """Absolute URL of the page's only iframe, or None if there are zero or several."""
    sources = [
        src.strip() for src in _IFRAME_RE.findall(html)
        if src.strip() and not src.strip().lower().startswith(("about:", "javascript:", "data:"))
    ]
    if len(sources) != 1:
        return None
    try:
        return urljoin(page_url, sources[0])
    except ValueError:
        logger.debug(f"Unparseable iframe src: {sources[0][:80]}")
        return None
