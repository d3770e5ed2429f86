"""Lookup: ingest a list of assertions, resolve a formula, write the result.

The result artifact is ``<out_dir>/<formula_cid>.json``: a JSON array of

    {"dependencies": [<formula cid>, ...], "via": [{"agent": <fingerprint>, "mode": <mode>}, ...]}

with dependencies sorted and alternatives in a stable order.  Nothing is
written when ingestion or resolution fails.
"""

from __future__ import annotations

import json
import logging
import pathlib
from typing import Any, Dict, Iterable, List, Optional

from dispatch.core import load_json, normalize_cid
from dispatch.ingest import build_index
from dispatch.objstore import ObjectStore
from dispatch.resolve import JustificationUnit, resolve, sort_key
from dispatch.signing import FingerprintCache

logger = logging.getLogger(__name__)


def load_assertion_list(path: pathlib.Path) -> List[str]:
    """Read an ordered JSON array of assertion CIDs."""
    data = load_json(path)
    if not isinstance(data, list) or not all(isinstance(c, str) for c in data):
        raise ValueError(f"assertion list must be a JSON array of CID strings: {path}")
    return data


def lookup(
    formula_cid: str,
    assertion_cids: Iterable[str],
    store: ObjectStore,
    *,
    fingerprints: Optional[FingerprintCache] = None,
) -> List[JustificationUnit]:
    """Every alternative justification of ``formula_cid`` under the given assertions.

    Raises:
        RetrievalError when required content is unavailable
    """
    formula_cid = normalize_cid(formula_cid)
    index = build_index(store, assertion_cids, fingerprints=fingerprints)
    units = resolve(formula_cid, index)
    logger.info(f"lookup {formula_cid}: {len(units)} alternatives")
    return units


def result_document(units: Iterable[JustificationUnit]) -> List[Dict[str, Any]]:
    return [u.to_dict() for u in sorted(units, key=sort_key)]


def write_result(
    out_dir: pathlib.Path,
    formula_cid: str,
    units: Iterable[JustificationUnit],
) -> pathlib.Path:
    """Write the result artifact, creating ``out_dir`` if needed."""
    out_dir = pathlib.Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{normalize_cid(formula_cid)}.json"
    out_path.write_text(
        json.dumps(result_document(units), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return out_path
