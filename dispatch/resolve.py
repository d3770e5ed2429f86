"""Justification resolution over the derivation index.

Given a target formula, enumerate every alternative way to justify it: the
set of leaf premises it finally rests on plus the ordered chain of
``(agent, mode)`` steps used to get there.

For a node ``cid`` on the current expansion ``path``:

- the node itself, unexplained, is always one alternative
  (``dependencies={cid}``, ``via=()``);
- every assertion concluding ``cid`` whose dependencies are all off the path
  contributes the combination of its dependencies' alternatives, each extended
  by the assertion's own step;
- an assertion with a dependency already on the path is dropped whole.

Each node's alternatives are computed once per session (memo) and reused.
The traversal keeps an explicit stack of frames, each holding its own
immutable path snapshot, so chain depth is not bounded by the interpreter's
recursion limit.

Result sizes grow with the product of the alternative counts of a rule's
premises; no pruning is attempted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from dispatch.core import unique_in_order
from dispatch.ingest import AssertionUnit, DerivationIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """One provenance step: who asserted, under which mode."""
    agent: str
    mode: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"agent": self.agent, "mode": self.mode}


@dataclass(frozen=True)
class JustificationUnit:
    """One alternative justification; equality is structural."""
    dependencies: FrozenSet[str] = frozenset()
    via: Tuple[Step, ...] = ()

    def extend(self, step: Step) -> "JustificationUnit":
        return JustificationUnit(self.dependencies, self.via + (step,))

    def merge(self, other: "JustificationUnit") -> "JustificationUnit":
        return JustificationUnit(self.dependencies | other.dependencies, self.via + other.via)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dependencies": sorted(self.dependencies),
            "via": [s.to_dict() for s in self.via],
        }


def base_case(cid: str) -> JustificationUnit:
    """The formula taken as an unresolved premise of itself."""
    return JustificationUnit(frozenset((cid,)), ())


def sort_key(unit: JustificationUnit) -> Tuple[Any, ...]:
    return (
        len(unit.via),
        sorted(unit.dependencies),
        [(s.agent, "" if s.mode is None else s.mode) for s in unit.via],
    )


def cartesian(
    fst: Sequence[JustificationUnit],
    snd: Sequence[JustificationUnit],
) -> List[JustificationUnit]:
    """Every pairing of one alternative from each side, left before right."""
    return [a.merge(b) for a in fst for b in snd]


def combine(
    unit: AssertionUnit,
    alternatives: Mapping[str, Sequence[JustificationUnit]],
) -> List[JustificationUnit]:
    """Alternatives contributed by one assertion, before deduplication.

    ``alternatives`` maps already-resolved dependencies to their alternatives;
    a dependency missing from it stands for itself (base case).
    """
    step = Step(unit.agent, unit.mode)
    deps = unique_in_order(list(unit.dependencies))

    if not deps:
        return [JustificationUnit(frozenset(), (step,))]

    def alts(d: str) -> Sequence[JustificationUnit]:
        return alternatives.get(d) or (base_case(d),)

    combined: Sequence[JustificationUnit] = alts(deps[0])
    for d in deps[1:]:
        combined = cartesian(combined, alts(d))
    return [c.extend(step) for c in combined]


class _Frame:
    """Expansion state of one node: its path snapshot and progress through its assertions."""

    __slots__ = ("cid", "path", "on_path", "units", "position", "found")

    def __init__(self, cid: str, path: Tuple[str, ...], units: Sequence[AssertionUnit]):
        self.cid = cid
        self.path = path
        self.on_path = frozenset(path)
        self.units = list(units)
        self.position = 0
        # dict keeps first-seen order and deduplicates structurally
        self.found: Dict[JustificationUnit, None] = {base_case(cid): None}

    def advance(self, resolver: "Resolver") -> Optional[str]:
        """Combine assertions in order; stop at a dependency that still needs expanding.

        Returns that dependency, or None once every assertion is consumed.
        """
        while self.position < len(self.units):
            unit = self.units[self.position]
            cyclic = [d for d in unit.dependencies if d in self.on_path]
            if cyclic:
                logger.debug(f"{self.cid}: dropping assertion by {unit.agent[:12]}, cycles through {cyclic[0]}")
                self.position += 1
                continue
            for d in unit.dependencies:
                if d not in resolver.memo and resolver.index.get(d):
                    return d
            for alt in combine(unit, resolver.memo):
                self.found.setdefault(alt, None)
            self.position += 1
        return None

    def results(self) -> List[JustificationUnit]:
        return list(self.found)


class Resolver:
    """Single-owner resolution session over one derivation index."""

    def __init__(self, index: DerivationIndex):
        self.index = index
        self.memo: Dict[str, List[JustificationUnit]] = {}

    def resolve(self, target: str) -> List[JustificationUnit]:
        """Deduplicated alternatives for ``target`` in discovery order."""
        if target not in self.memo:
            stack = [_Frame(target, (target,), self.index.get(target, ()))]
            while stack:
                frame = stack[-1]
                child = frame.advance(self)
                if child is not None:
                    stack.append(_Frame(child, frame.path + (child,), self.index[child]))
                    continue
                stack.pop()
                self.memo[frame.cid] = frame.results()
            logger.debug(f"resolved {target}: {len(self.memo[target])} alternatives, {len(self.memo)} nodes memoized")
        return list(self.memo[target])


def resolve(target: str, index: DerivationIndex) -> List[JustificationUnit]:
    """Resolve ``target`` in a fresh session (memo discarded afterwards)."""
    return Resolver(index).resolve(target)
