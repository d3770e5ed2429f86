"""Content-addressed object store for dispatch records.

Records are stored under their CID using a flat convention:

  ``<store_root>/<cid>.json``

Where:
- ``<cid>`` is the record's content identifier (see ``dispatch.core.compute_cid``)
- the file holds the record's canonical JSON bytes

Several store roots may be searched (``DISPATCH_STORE_DIRS``); new records are
written to the first one.  When a gateway URL is configured, objects missing
locally are fetched from ``<gateway>/ipfs/<cid>`` and written into the local
store once they parse as JSON.

The store performs no retries.  Anything that cannot be produced locally or
remotely is a ``RetrievalError`` naming the CID and the reason.
"""

from __future__ import annotations

import json
import logging
import pathlib
import warnings
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

import httpx

from dispatch.core import canonical_json_bytes, cid_from_bytes, compute_cid, iter_links, normalize_cid

if TYPE_CHECKING:
    from dispatch.config import DispatchConfig

logger = logging.getLogger(__name__)

DAG_JSON_MEDIA_TYPE = "application/vnd.ipld.dag-json"


class RetrievalError(Exception):
    """Content for a CID could not be retrieved locally or remotely."""

    def __init__(self, cid: str, reason: str):
        self.cid = cid
        self.reason = reason
        super().__init__(f"could not retrieve {cid}: {reason}")


class ObjectStore(ABC):
    """Base class: local storage is provided by subclasses, remote completion here."""

    def __init__(
        self,
        *,
        gateway: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.gateway = (gateway or "").strip().rstrip("/") or None
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    # -- local storage -----------------------------------------------------

    @abstractmethod
    def _read_local(self, cid: str) -> Optional[bytes]:
        """Return stored bytes for ``cid`` or None."""

    @abstractmethod
    def _write_local(self, cid: str, data: bytes) -> None:
        """Persist bytes under ``cid``."""

    # -- public API --------------------------------------------------------

    def has(self, cid: str) -> bool:
        try:
            cc = normalize_cid(cid)
        except ValueError:
            return False
        return self._read_local(cc) is not None

    def get(self, cid: str) -> Any:
        """Return the parsed record for ``cid``.

        Raises:
            RetrievalError when the object is unavailable or unreadable
        """
        try:
            cc = normalize_cid(cid)
        except ValueError as ex:
            raise RetrievalError(str(cid), str(ex)) from ex

        data = self._read_local(cc)
        fetched = data is None
        if fetched:
            data = self._fetch_remote(cc)

        try:
            obj = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as ex:
            source = "gateway response" if fetched else "stored content"
            raise RetrievalError(cc, f"{source} is not JSON ({ex})") from ex

        # only well-formed remote content is persisted
        if fetched:
            self._write_local(cc, data)

        try:
            actual = compute_cid(obj)
        except ValueError:
            actual = None
        if actual is not None and actual != cc:
            warnings.warn(
                f"CAS integrity warning: content of {cc} hashes to {actual}",
                stacklevel=2,
            )
        return obj

    def put(self, obj: Any) -> str:
        """Store a record and return its CID (idempotent)."""
        data = canonical_json_bytes(obj)
        cid = cid_from_bytes(data)
        if self._read_local(cid) is None:
            self._write_local(cid, data)
            logger.debug(f"put {cid} ({len(data)}b)")
        return cid

    def ensure_full_dag(self, cid: str, seen: Optional[Set[str]] = None) -> int:
        """Make the transitive link closure of ``cid`` available locally.

        ``seen`` holds CIDs whose closure is already available; it is updated
        in place, so one set shared across a session walks each object once.

        Returns the number of objects walked by this call.

        Raises:
            RetrievalError for the first object that cannot be produced
        """
        seen = set() if seen is None else seen
        walked = 0
        pending: List[str] = [cid]
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            obj = self.get(current)
            seen.add(current)
            walked += 1
            for target in iter_links(obj):
                if target not in seen:
                    pending.append(target)
        logger.debug(f"ensure_full_dag({cid}): {walked} objects walked")
        return walked

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "ObjectStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -- remote completion -------------------------------------------------

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def _fetch_remote(self, cid: str) -> bytes:
        if not self.gateway:
            raise RetrievalError(cid, "not available locally and no gateway configured")
        url = f"{self.gateway}/ipfs/{cid}"
        logger.debug(f"fetching {cid} from {url}")
        try:
            response = self._http().get(
                url,
                params={"format": "dag-json"},
                headers={"Accept": DAG_JSON_MEDIA_TYPE},
            )
        except httpx.HTTPError as ex:
            raise RetrievalError(cid, f"gateway request failed: {ex}") from ex
        if not response.is_success:
            raise RetrievalError(
                cid, f"unexpected response from {url}: {response.status_code} {response.reason_phrase}"
            )
        logger.debug(f"fetched {cid}: {len(response.content)}b")
        return response.content


class LocalObjectStore(ObjectStore):
    """Filesystem store: ``<root>/<cid>.json`` across one or more roots."""

    def __init__(self, roots: List[pathlib.Path], **kwargs: Any):
        if not roots:
            raise ValueError("at least one store root is required")
        super().__init__(**kwargs)
        # Deduplicate identical roots, keeping order.
        uniq: List[pathlib.Path] = []
        for r in roots:
            rp = pathlib.Path(r).expanduser()
            if rp not in uniq:
                uniq.append(rp)
        self.roots = uniq

    @classmethod
    def from_config(cls, config: "DispatchConfig", client: Optional[httpx.Client] = None) -> "LocalObjectStore":
        return cls(
            config.store_roots(),
            gateway=config.gateway.get() or None,
            timeout=config.request_timeout.get(),
            client=client,
        )

    def object_path(self, cid: str, root: Optional[pathlib.Path] = None) -> pathlib.Path:
        return (root or self.roots[0]) / f"{normalize_cid(cid)}.json"

    def _read_local(self, cid: str) -> Optional[bytes]:
        for root in self.roots:
            p = self.object_path(cid, root)
            if p.is_file():
                return p.read_bytes()
        return None

    def _write_local(self, cid: str, data: bytes) -> None:
        dest = self.object_path(cid)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)


class MemoryObjectStore(ObjectStore):
    """Dict-backed store with the same contract; handy for sessions and tests."""

    def __init__(self, objects: Optional[Dict[str, bytes]] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._objects: Dict[str, bytes] = dict(objects or {})

    def __len__(self) -> int:
        return len(self._objects)

    def _read_local(self, cid: str) -> Optional[bytes]:
        return self._objects.get(cid)

    def _write_local(self, cid: str, data: bytes) -> None:
        self._objects[cid] = data
