"""Assertion ingestion: build the per-conclusion derivation index.

Input is an uncurated, ordered list of CIDs.  Each candidate that is a
well-formed assertion with a valid signature over a production of a sequent
becomes one ``AssertionUnit`` filed under the sequent's conclusion.  Anything
else is skipped and logged; only unavailable content is fatal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from dispatch.objstore import ObjectStore
from dispatch.records import Assertion, Link, MalformedRecordError, is_assertion, is_tool, unwrap
from dispatch.signing import FingerprintCache, is_valid_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssertionUnit:
    """Normalized claim of one assertion, indexed by its conclusion."""
    agent: str
    mode: Optional[str]
    dependencies: Tuple[str, ...] = ()


DerivationIndex = Dict[str, List[AssertionUnit]]


def _formula_cid(store: ObjectStore, cid: str) -> str:
    formula_cid, _ = unwrap(store, cid, "formula")
    return formula_cid


def normalize_assertion(
    store: ObjectStore,
    assertion: Assertion,
    fingerprints: FingerprintCache,
) -> Tuple[str, AssertionUnit]:
    """Dereference an assertion down to ``(conclusion_cid, unit)``.

    Raises:
        MalformedRecordError when a link on the way has the wrong shape
        RetrievalError when a link target is unavailable
    """
    agent = fingerprints.get(assertion.agent)

    _, production = unwrap(store, assertion.claim.cid, "production")
    _, sequent = unwrap(store, production.sequent.cid, "sequent")

    conclusion = _formula_cid(store, sequent.conclusion.cid)
    dependencies = tuple(_formula_cid(store, d.cid) for d in sequent.dependencies)

    mode = production.mode_value()
    if isinstance(production.mode, Link):
        if not is_tool(store.get(production.mode.cid)):
            raise MalformedRecordError("tool", ["$: production mode does not link to a tool"], cid=mode)

    return conclusion, AssertionUnit(agent=agent, mode=mode, dependencies=dependencies)


def process_assertion(
    store: ObjectStore,
    cid: str,
    index: DerivationIndex,
    fingerprints: FingerprintCache,
    available: Optional[Set[str]] = None,
) -> bool:
    """Index one candidate; returns True when it contributed a unit.

    ``available`` is the session's set of CIDs already made available locally.
    """
    store.ensure_full_dag(cid, seen=available)
    obj = store.get(cid)
    if not is_assertion(obj):
        logger.debug(f"skipping {cid}: not an assertion")
        return False

    assertion = Assertion.from_obj(obj)
    if not is_valid_signature(assertion):
        logger.info(f"skipping assertion {cid}: invalid signature")
        return False

    try:
        conclusion, unit = normalize_assertion(store, assertion, fingerprints)
    except MalformedRecordError as ex:
        logger.info(f"skipping assertion {cid}: {ex}")
        return False

    index.setdefault(conclusion, []).append(unit)
    return True


def build_index(
    store: ObjectStore,
    assertion_cids: Iterable[str],
    *,
    fingerprints: Optional[FingerprintCache] = None,
) -> DerivationIndex:
    """Build the derivation index for one session.

    Raises:
        RetrievalError when a candidate (or anything it links to) is unavailable
    """
    fingerprints = fingerprints if fingerprints is not None else FingerprintCache()
    available: Set[str] = set()
    index: DerivationIndex = {}
    total = 0
    kept = 0
    for cid in assertion_cids:
        total += 1
        if process_assertion(store, cid, index, fingerprints, available):
            kept += 1
    logger.info(f"indexed {kept} of {total} candidate assertions under {len(index)} conclusions")
    return index
