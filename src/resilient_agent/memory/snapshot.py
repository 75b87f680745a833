"""
Snapshot codec for the pattern store.

Layout (big-endian integers)::

    b"RAPM" | version u16 | dimension u32
    | header_len u64 | header JSON
    | index_len u64  | index JSON
    | log_len u64    | log, one ActionPattern JSON object per line

The log is the source of truth; the index section is a derived artifact
that a reader may discard and rebuild.
"""

import json
import logging
import struct
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from resilient_agent.exceptions import SnapshotFormatError
from resilient_agent.models import ActionPattern

logger = logging.getLogger(__name__)

MAGIC = b"RAPM"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = {1}

_PREAMBLE = struct.Struct(">4sHI")
_LENGTH = struct.Struct(">Q")


@dataclass
class DecodedSnapshot:
    header: Dict[str, Any]
    index: Optional[Dict[str, Any]]
    patterns: List[ActionPattern]


def encode_snapshot(
    dimension: int,
    patterns: Sequence[ActionPattern],
    index: Dict[str, Any],
    next_id: int,
) -> bytes:
    """Serialize the append log and index into one blob."""
    header = {
        "format_version": FORMAT_VERSION,
        "dimension": dimension,
        "count": len(patterns),
        "next_id": next_id,
        "index_kind": index.get("kind"),
        "created_at": time.time(),
    }
    log = "\n".join(json.dumps(p.to_record(), separators=(",", ":")) for p in patterns)
    sections = [
        json.dumps(header).encode("utf-8"),
        json.dumps(index, separators=(",", ":")).encode("utf-8"),
        log.encode("utf-8"),
    ]
    parts = [_PREAMBLE.pack(MAGIC, FORMAT_VERSION, dimension)]
    for section in sections:
        parts.append(_LENGTH.pack(len(section)))
        parts.append(section)
    return b"".join(parts)


def _read_section(blob: bytes, offset: int, name: str) -> tuple:
    end = offset + _LENGTH.size
    if end > len(blob):
        raise SnapshotFormatError(f"Snapshot truncated before {name} length", expected=end, found=len(blob))
    (length,) = _LENGTH.unpack_from(blob, offset)
    if end + length > len(blob):
        raise SnapshotFormatError(
            f"Snapshot truncated inside {name} section",
            expected=end + length,
            found=len(blob),
        )
    return blob[end:end + length], end + length


def decode_snapshot(blob: bytes, expected_dimension: int) -> DecodedSnapshot:
    """
    Parse and validate a snapshot blob.
    
    Raises:
        SnapshotFormatError: Bad magic, unknown version, dimension mismatch,
            truncation or an unreadable log
    """
    if len(blob) < _PREAMBLE.size:
        raise SnapshotFormatError("Snapshot too short", expected=_PREAMBLE.size, found=len(blob))
    magic, version, dimension = _PREAMBLE.unpack_from(blob, 0)
    if magic != MAGIC:
        raise SnapshotFormatError("Not a pattern store snapshot", expected=MAGIC, found=magic)
    if version not in SUPPORTED_VERSIONS:
        raise SnapshotFormatError("Unknown snapshot format version", expected=FORMAT_VERSION, found=version)
    if dimension != expected_dimension:
        raise SnapshotFormatError("Embedding dimension mismatch", expected=expected_dimension, found=dimension)
    
    offset = _PREAMBLE.size
    header_bytes, offset = _read_section(blob, offset, "header")
    index_bytes, offset = _read_section(blob, offset, "index")
    log_bytes, offset = _read_section(blob, offset, "log")
    if offset != len(blob):
        raise SnapshotFormatError("Trailing bytes after log section", expected=offset, found=len(blob))
    
    try:
        header = json.loads(header_bytes)
    except ValueError as e:
        raise SnapshotFormatError(f"Unreadable snapshot header: {e}")
    
    try:
        lines = [line for line in log_bytes.decode("utf-8").split("\n") if line]
        patterns = [ActionPattern.from_record(json.loads(line), dimension) for line in lines]
    except (ValueError, KeyError, TypeError) as e:
        raise SnapshotFormatError(f"Unreadable append log: {e}")
    
    if header.get("count") != len(patterns):
        raise SnapshotFormatError("Append log length mismatch", expected=header.get("count"), found=len(patterns))
    ids = [p.id for p in patterns]
    if any(b <= a for a, b in zip(ids, ids[1:])):
        raise SnapshotFormatError("Append log ids are not increasing")
    
    try:
        index = json.loads(index_bytes)
    except ValueError as e:
        logger.warning(f"Snapshot index section unreadable ({e}); it will be rebuilt from the log")
        index = None
    if index is not None and not isinstance(index, dict):
        logger.warning(f"Snapshot index section is a JSON {type(index).__name__}; it will be rebuilt from the log")
        index = None
    
    return DecodedSnapshot(header=header, index=index, patterns=patterns)
