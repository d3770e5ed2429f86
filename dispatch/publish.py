"""Publish: turn a JSON input document into content-addressed records.

The input document names its top-level ``format`` and carries the object to
publish under that same key, e.g.::

    {
      "format": "assertion",
      "assertion": {
        "agent": "alice",
        "claim": {"format": "production",
                  "production": {"mode": "axiom", "sequent": {"dependencies": [], "conclusion": "f"}}}
      },
      "formulas": {"f": {"language": "coq", "content": "forall n, n + 0 = n", "context": ["nat"]}},
      "contexts": {"nat": {"language": "coq", "content": "Inductive nat := O | S (n : nat)."}}
    }

References:
- ``damf:<cid>`` anywhere a record is expected links to an existing record.
- Formula names resolve through the document's ``formulas`` table, context
  names through ``contexts``.
- Language, tool and agent names resolve through the profile files.

Every record is shape-checked before it is written.  Assertions are signed
with the agent profile's private key over the claim's CID.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from dispatch.config import ProfileStore
from dispatch.core import make_link, parse_damf_reference
from dispatch.objstore import ObjectStore
from dispatch.records import LITERAL_MODES, parse_record
from dispatch.signing import sign_claim

logger = logging.getLogger(__name__)


class PublishError(Exception):
    """The input document cannot be published."""
    pass


class UnknownFormatError(PublishError):
    def __init__(self, fmt: Any):
        self.format = fmt
        super().__init__(f"unknown input format {fmt}")


class Publisher:
    """One publish session: a store to write to and profiles to resolve names."""

    def __init__(self, store: ObjectStore, profiles: ProfileStore):
        self.store = store
        self.profiles = profiles

    def publish(self, document: Dict[str, Any]) -> str:
        """Publish the document's top-level object and return its CID."""
        if not isinstance(document, dict):
            raise PublishError("input document must be a JSON object")
        fmt = document.get("format")
        if fmt == "collection":
            elements = document.get("elements", [])
            if not isinstance(elements, list):
                raise PublishError("collection input 'elements' must be a list")
            cid = self.collection(document.get("name", ""), elements, document, {})
        else:
            handler = self._handlers().get(fmt) if isinstance(fmt, str) else None
            if handler is None:
                raise UnknownFormatError(fmt)
            if fmt not in document:
                raise PublishError(f"input document has no '{fmt}' entry")
            cid = handler(document[fmt], document, {})
        logger.info(f"published {fmt} object of cid: {cid}")
        return cid

    def _handlers(self) -> Dict[str, Callable[[Any, Dict[str, Any], Dict[str, str]], str]]:
        return {
            "context": lambda obj, doc, seen: self.context(obj),
            "annotated-context": lambda obj, doc, seen: self.annotated("context", obj, doc, seen),
            "formula": self.formula,
            "annotated-formula": lambda obj, doc, seen: self.annotated("formula", obj, doc, seen),
            "sequent": self.sequent,
            "annotated-sequent": lambda obj, doc, seen: self.annotated("sequent", obj, doc, seen),
            "production": self.production,
            "annotated-production": lambda obj, doc, seen: self.annotated("production", obj, doc, seen),
            "assertion": self.assertion,
        }

    # -- helpers -----------------------------------------------------------

    def _put(self, record: Dict[str, Any]) -> str:
        parse_record(record)
        return self.store.put(record)

    def _language(self, ref: Any) -> str:
        cid = parse_damf_reference(ref)
        if cid is not None:
            return cid
        return self.profiles.language_cid(str(ref))

    @staticmethod
    def _entry(document: Dict[str, Any], table: str, name: Any) -> Any:
        entries = document.get(table) or {}
        if name not in entries:
            raise PublishError(f"'{name}' not found in the input's {table}")
        return entries[name]

    @staticmethod
    def _field(obj: Any, key: str, what: str) -> Any:
        if not isinstance(obj, dict):
            raise PublishError(f"{what} input must be a JSON object, got {type(obj).__name__}")
        if key not in obj:
            raise PublishError(f"{what} input is missing '{key}'")
        return obj[key]

    # -- record kinds ------------------------------------------------------

    def context(self, obj: Dict[str, Any]) -> str:
        language = self._language(self._field(obj, "language", "context"))
        return self._put({
            "format": "context",
            "language": make_link(language),
            "content": self._field(obj, "content", "context"),
        })

    def formula(self, obj: Dict[str, Any], document: Dict[str, Any], published_contexts: Dict[str, str]) -> str:
        language = self._language(self._field(obj, "language", "formula"))
        content = self._field(obj, "content", "formula")
        context_links: List[Dict[str, str]] = []
        for name in obj.get("context", []):
            cid = published_contexts.get(name) or parse_damf_reference(name)
            if cid is None:
                cid = self.context(self._entry(document, "contexts", name))
                published_contexts[name] = cid
            context_links.append(make_link(cid))
        return self._put({
            "format": "formula",
            "language": make_link(language),
            "content": content,
            "context": context_links,
        })

    def _formula_ref(self, name: Any, document: Dict[str, Any], published_contexts: Dict[str, str]) -> str:
        cid = parse_damf_reference(name)
        if cid is not None:
            return cid
        return self.formula(self._entry(document, "formulas", name), document, published_contexts)

    def sequent(self, obj: Dict[str, Any], document: Dict[str, Any], published_contexts: Dict[str, str]) -> str:
        conclusion = self._formula_ref(self._field(obj, "conclusion", "sequent"), document, published_contexts)
        dependencies = [
            make_link(self._formula_ref(d, document, published_contexts))
            for d in obj.get("dependencies", [])
        ]
        return self._put({
            "format": "sequent",
            "dependencies": dependencies,
            "conclusion": make_link(conclusion),
        })

    def _mode(self, mode: Any) -> Any:
        if mode in LITERAL_MODES:
            return mode
        cid = parse_damf_reference(mode)
        if cid is None:
            cid = self.profiles.tool_cid(str(mode))
        return make_link(cid)

    def production(self, obj: Dict[str, Any], document: Dict[str, Any], published_contexts: Dict[str, str]) -> str:
        sequent = self._field(obj, "sequent", "production")
        sequent_cid = parse_damf_reference(sequent)
        if sequent_cid is None:
            sequent_cid = self.sequent(sequent, document, published_contexts)
        return self._put({
            "format": "production",
            "sequent": make_link(sequent_cid),
            "mode": self._mode(obj.get("mode")),
        })

    def annotated(
        self,
        kind: str,
        obj: Dict[str, Any],
        document: Dict[str, Any],
        published_contexts: Dict[str, str],
    ) -> str:
        target = self._field(obj, kind, f"annotated-{kind}")
        cid = parse_damf_reference(target)
        if cid is None:
            if kind == "context":
                cid = self.context(target)
            else:
                cid = self._handlers()[kind](target, document, published_contexts)
        return self._put({
            "format": f"annotated-{kind}",
            kind: make_link(cid),
            "annotation": obj.get("annotation"),
        })

    def _claim(self, claim: Any, document: Dict[str, Any], published_contexts: Dict[str, str]) -> str:
        cid = parse_damf_reference(claim)
        if cid is not None:
            return cid
        fmt = claim.get("format") if isinstance(claim, dict) else None
        if fmt == "production":
            return self.production(self._field(claim, "production", "claim"), document, published_contexts)
        if fmt == "annotated-production":
            return self.annotated("production", claim, document, published_contexts)
        raise PublishError(f"assertion claim must be a production or annotated-production, got {fmt}")

    def assertion(self, obj: Dict[str, Any], document: Dict[str, Any], published_contexts: Dict[str, str]) -> str:
        claim_cid = self._claim(self._field(obj, "claim", "assertion"), document, published_contexts)
        agent = self.profiles.agent(str(self._field(obj, "agent", "assertion")))
        return self._put({
            "format": "assertion",
            "agent": agent["public-key"],
            "claim": make_link(claim_cid),
            "signature": sign_claim(agent["private-key"], claim_cid),
        })

    def element(self, element: Dict[str, Any], document: Dict[str, Any], published_contexts: Dict[str, str]) -> str:
        fmt = self._field(element, "format", "collection element")
        target = self._field(element, "element", "collection element")
        if fmt == "context":
            return self.context(target)
        handler = self._handlers().get(fmt) if isinstance(fmt, str) else None
        if handler is None:
            raise UnknownFormatError(fmt)
        return handler(target, document, published_contexts)

    def collection(
        self,
        name: str,
        elements: List[Dict[str, Any]],
        document: Dict[str, Any],
        published_contexts: Dict[str, str],
    ) -> str:
        links = [make_link(self.element(e, document, published_contexts)) for e in elements]
        return self._put({"format": "collection", "name": name, "elements": links})


def publish(document: Dict[str, Any], store: ObjectStore, profiles: ProfileStore) -> str:
    return Publisher(store, profiles).publish(document)
