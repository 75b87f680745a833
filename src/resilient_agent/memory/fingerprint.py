"""
Context Fingerprinting - domain plus a coarse page-layout hash.

The layout hash survives the things that change between visits to the
"same" page: record ids, UUIDs and content hashes in the path are
collapsed and query values are dropped, so ``/orders/123`` and
``/orders/456?ref=mail`` share a layout.
"""

import hashlib
import re
from typing import List
from urllib.parse import parse_qsl, urlparse

from resilient_agent.models import ContextFingerprint


UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)
HEX_PATTERN = re.compile(r"^[0-9a-f]{8,}$", re.I)
NUMERIC_PATTERN = re.compile(r"^\d+$")
SLUG_ID_PATTERN = re.compile(r"^[a-z0-9-]+-\d{3,}$", re.I)


def normalize_domain(netloc: str) -> str:
    """Lowercase host without port, credentials or a leading ``www.``."""
    host = netloc.rsplit("@", 1)[-1].split(":", 1)[0].lower().strip(".")
    if host.startswith("www."):
        host = host[4:]
    return host or "unknown"


def normalize_segment(segment: str) -> str:
    if NUMERIC_PATTERN.match(segment):
        return ":n"
    if UUID_PATTERN.match(segment):
        return ":uuid"
    if HEX_PATTERN.match(segment) and any(c.isdigit() for c in segment):
        return ":hex"
    if SLUG_ID_PATTERN.match(segment):
        return ":slug"
    return segment.lower()


def normalize_path(path: str) -> str:
    """
    Collapse variable path segments.
    
    >>> normalize_path("/Orders/123/items/9f86d081884c7d65/")
    '/orders/:n/items/:hex'
    """
    segments: List[str] = [normalize_segment(s) for s in path.split("/") if s]
    return "/" + "/".join(segments)


def layout_hash(url: str) -> str:
    """12-character hash of the normalized path and query keys."""
    parsed = urlparse(url)
    keys = sorted({key for key, _ in parse_qsl(parsed.query, keep_blank_values=True)})
    signal = normalize_path(parsed.path)
    if keys:
        signal += "?" + "&".join(keys)
    return hashlib.md5(signal.encode()).hexdigest()[:12]


def fingerprint_context(url: str) -> ContextFingerprint:
    """Fingerprint the page a URL points to."""
    parsed = urlparse(url or "")
    return ContextFingerprint(
        domain=normalize_domain(parsed.netloc),
        layout_hash=layout_hash(url or ""),
    )
