"""Core primitives for dispatch.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (sorted keys, compact, UTF-8)
- Content identifiers (CIDv1, dag-json, sha2-256, base32)
- Link helpers (``{"/": cid}``)
- YAML/JSON loading with consistent encoding

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import base64
import hashlib
import json
import pathlib
import re
from typing import Any, Dict, Iterator, List, Optional

import yaml

# Multicodec / multihash constants used to build CIDv1 strings.
CID_VERSION = 0x01
DAG_JSON_CODEC = 0x0129
SHA2_256_CODE = 0x12
SHA2_256_LENGTH = 0x20

# Filename-safe CID text (covers base32 CIDv1 and base58 CIDv0 forms).
CID_RE = re.compile(r"^[A-Za-z0-9]{8,128}$")

LINK_KEY = "/"


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected (records carry strings, ints, links)

    Structurally identical records therefore produce identical bytes and
    collapse to one CID.
    """
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def _varint(n: int) -> bytes:
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def cid_from_bytes(data: bytes) -> str:
    """Return the CIDv1 (dag-json, sha2-256, base32 multibase) for encoded bytes."""
    digest = hashlib.sha256(data).digest()
    raw = (
        _varint(CID_VERSION)
        + _varint(DAG_JSON_CODEC)
        + _varint(SHA2_256_CODE)
        + _varint(SHA2_256_LENGTH)
        + digest
    )
    return "b" + base64.b32encode(raw).decode("ascii").lower().rstrip("=")


def compute_cid(obj: Any) -> str:
    """Compute the content identifier of a record."""
    return cid_from_bytes(canonical_json_bytes(obj))


def is_valid_cid(cid: Any) -> bool:
    return isinstance(cid, str) and bool(CID_RE.match(cid))


def normalize_cid(cid: str) -> str:
    cc = str(cid or "").strip()
    if not CID_RE.match(cc):
        raise ValueError(f"invalid CID: {cid!r}")
    return cc


def make_link(cid: str) -> Dict[str, str]:
    """Construct a link object pointing at ``cid``."""
    return {LINK_KEY: normalize_cid(cid)}


def is_link(value: Any) -> bool:
    """A link is a one-field object ``{"/": "<cid>"}``."""
    return (
        isinstance(value, dict)
        and len(value) == 1
        and isinstance(value.get(LINK_KEY), str)
        and bool(value[LINK_KEY])
    )


def link_target(value: Any) -> str:
    """Return the CID a link points at."""
    if not is_link(value):
        raise ValueError(f"not a link: {value!r}")
    return value[LINK_KEY]


def iter_links(obj: Any) -> Iterator[str]:
    """Recursively yield the target CID of every link inside a structure."""
    if is_link(obj):
        yield obj[LINK_KEY]
    elif isinstance(obj, dict):
        for v in obj.values():
            yield from iter_links(v)
    elif isinstance(obj, list):
        for item in obj:
            yield from iter_links(item)


def parse_damf_reference(value: Any) -> Optional[str]:
    """Return the CID of a ``damf:<cid>`` reference, or None for anything else."""
    if isinstance(value, str) and value.startswith("damf:"):
        return normalize_cid(value.split(":", 1)[1])
    return None


def unique_in_order(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))
