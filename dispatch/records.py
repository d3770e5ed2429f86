"""Record model for the content-addressed claim graph.

Every persisted record is a JSON object carrying a ``format`` tag and exactly
the fields its shape names.  Cross references are links (``{"/": cid}``).

The shapes form a closed tagged union:

    language             content
    tool                 content
    context              language (link), content
    formula              language (link), content, context (links)
    sequent              dependencies (links), conclusion (link)
    production           sequent (link), mode (null | "axiom" | "conjecture" | link)
    assertion            agent, claim (link), signature (hex)
    collection           name, elements (links)
    annotated-<kind>     <kind> (link), annotation

``parse_record`` is the validating constructor for the union.  The ``is_*``
predicates are pure shape checks; only the annotated predicates dereference
through the store, so only they can fail with a retrieval error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, List, Optional, Tuple, Type, Union

from dispatch.core import LINK_KEY, is_link, link_target, make_link
from dispatch.schema import ANNOTATABLE_KINDS, conforms, validate_shape

if TYPE_CHECKING:
    from dispatch.objstore import ObjectStore


MODE_AXIOM = "axiom"
MODE_CONJECTURE = "conjecture"
LITERAL_MODES = (None, MODE_AXIOM, MODE_CONJECTURE)


class MalformedRecordError(Exception):
    """A record does not conform to the shape its context expects."""

    def __init__(self, kind: str, errors: List[str], cid: Optional[str] = None):
        self.kind = kind
        self.errors = list(errors)
        self.cid = cid
        where = f" {cid}" if cid else ""
        detail = "; ".join(self.errors) or "shape mismatch"
        super().__init__(f"record{where} is not a valid {kind}: {detail}")


@dataclass(frozen=True)
class Link:
    cid: str

    def to_obj(self) -> Dict[str, str]:
        return make_link(self.cid)

    @classmethod
    def from_obj(cls, obj: Any) -> "Link":
        return cls(link_target(obj))


def _links(items: List[Any]) -> Tuple[Link, ...]:
    return tuple(Link.from_obj(i) for i in items)


def _checked(kind: str, obj: Any) -> Dict[str, Any]:
    errors = validate_shape(obj, kind)
    if errors:
        raise MalformedRecordError(kind, errors)
    return obj


@dataclass(frozen=True)
class Language:
    format: ClassVar[str] = "language"
    content: Any

    def to_obj(self) -> Dict[str, Any]:
        return {"format": self.format, "content": self.content}

    @classmethod
    def from_obj(cls, obj: Any) -> "Language":
        obj = _checked(cls.format, obj)
        return cls(content=obj["content"])


@dataclass(frozen=True)
class Tool:
    format: ClassVar[str] = "tool"
    content: Any

    def to_obj(self) -> Dict[str, Any]:
        return {"format": self.format, "content": self.content}

    @classmethod
    def from_obj(cls, obj: Any) -> "Tool":
        obj = _checked(cls.format, obj)
        return cls(content=obj["content"])


@dataclass(frozen=True)
class Context:
    format: ClassVar[str] = "context"
    language: Link
    content: Any

    def to_obj(self) -> Dict[str, Any]:
        return {"format": self.format, "language": self.language.to_obj(), "content": self.content}

    @classmethod
    def from_obj(cls, obj: Any) -> "Context":
        obj = _checked(cls.format, obj)
        return cls(language=Link.from_obj(obj["language"]), content=obj["content"])


@dataclass(frozen=True)
class Formula:
    format: ClassVar[str] = "formula"
    language: Link
    content: Any
    context: Tuple[Link, ...] = ()

    def to_obj(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "language": self.language.to_obj(),
            "content": self.content,
            "context": [c.to_obj() for c in self.context],
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "Formula":
        obj = _checked(cls.format, obj)
        return cls(
            language=Link.from_obj(obj["language"]),
            content=obj["content"],
            context=_links(obj["context"]),
        )


@dataclass(frozen=True)
class Sequent:
    format: ClassVar[str] = "sequent"
    dependencies: Tuple[Link, ...]
    conclusion: Link

    def to_obj(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "dependencies": [d.to_obj() for d in self.dependencies],
            "conclusion": self.conclusion.to_obj(),
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "Sequent":
        obj = _checked(cls.format, obj)
        return cls(dependencies=_links(obj["dependencies"]), conclusion=Link.from_obj(obj["conclusion"]))


Mode = Union[None, str, Link]


@dataclass(frozen=True)
class Production:
    format: ClassVar[str] = "production"
    sequent: Link
    mode: Mode = None

    def to_obj(self) -> Dict[str, Any]:
        mode = self.mode.to_obj() if isinstance(self.mode, Link) else self.mode
        return {"format": self.format, "sequent": self.sequent.to_obj(), "mode": mode}

    def mode_value(self) -> Optional[str]:
        """Normalized mode: the Tool CID for a link, else the literal."""
        if isinstance(self.mode, Link):
            return self.mode.cid
        return self.mode

    @classmethod
    def from_obj(cls, obj: Any) -> "Production":
        obj = _checked(cls.format, obj)
        mode = obj["mode"]
        return cls(
            sequent=Link.from_obj(obj["sequent"]),
            mode=Link.from_obj(mode) if is_link(mode) else mode,
        )


@dataclass(frozen=True)
class Assertion:
    format: ClassVar[str] = "assertion"
    agent: str
    claim: Link
    signature: str

    def to_obj(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "agent": self.agent,
            "claim": self.claim.to_obj(),
            "signature": self.signature,
        }

    @classmethod
    def from_obj(cls, obj: Any) -> "Assertion":
        obj = _checked(cls.format, obj)
        return cls(agent=obj["agent"], claim=Link.from_obj(obj["claim"]), signature=obj["signature"])


@dataclass(frozen=True)
class Collection:
    format: ClassVar[str] = "collection"
    name: str
    elements: Tuple[Link, ...] = ()

    def to_obj(self) -> Dict[str, Any]:
        return {"format": self.format, "name": self.name, "elements": [e.to_obj() for e in self.elements]}

    @classmethod
    def from_obj(cls, obj: Any) -> "Collection":
        obj = _checked(cls.format, obj)
        return cls(name=obj["name"], elements=_links(obj["elements"]))


@dataclass(frozen=True)
class Annotated:
    """``annotated-<kind>`` wrapper; transparent to resolution."""

    kind: str
    target: Link
    annotation: Any

    @property
    def format(self) -> str:
        return f"annotated-{self.kind}"

    def to_obj(self) -> Dict[str, Any]:
        return {"format": self.format, self.kind: self.target.to_obj(), "annotation": self.annotation}

    @classmethod
    def from_obj(cls, obj: Any) -> "Annotated":
        fmt = obj.get("format") if isinstance(obj, dict) else None
        kind = fmt[len("annotated-"):] if isinstance(fmt, str) and fmt.startswith("annotated-") else ""
        if kind not in ANNOTATABLE_KINDS:
            raise MalformedRecordError("annotated record", [f"$.format: unsupported format {fmt!r}"])
        obj = _checked(f"annotated-{kind}", obj)
        return cls(kind=kind, target=Link.from_obj(obj[kind]), annotation=obj["annotation"])


Record = Union[Language, Tool, Context, Formula, Sequent, Production, Assertion, Collection, Annotated]

RECORD_TYPES: Dict[str, Type[Any]] = {
    cls.format: cls
    for cls in (Language, Tool, Context, Formula, Sequent, Production, Assertion, Collection)
}


def parse_record(obj: Any) -> Record:
    """Validate ``obj`` and build the matching record variant.

    Raises:
        MalformedRecordError when the object matches no shape
    """
    fmt = obj.get("format") if isinstance(obj, dict) else None
    if isinstance(fmt, str) and fmt.startswith("annotated-"):
        return Annotated.from_obj(obj)
    cls = RECORD_TYPES.get(fmt) if isinstance(fmt, str) else None
    if cls is None:
        raise MalformedRecordError("record", [f"$.format: unknown format {fmt!r}"])
    return cls.from_obj(obj)


# ---------------------------------------------------------------------------
# Shape predicates
# ---------------------------------------------------------------------------


def is_language(obj: Any) -> bool:
    return conforms(obj, "language")


def is_tool(obj: Any) -> bool:
    return conforms(obj, "tool")


def is_context(obj: Any) -> bool:
    return conforms(obj, "context")


def is_formula(obj: Any) -> bool:
    return conforms(obj, "formula")


def is_sequent(obj: Any) -> bool:
    return conforms(obj, "sequent")


def is_production(obj: Any) -> bool:
    return conforms(obj, "production")


def is_assertion(obj: Any) -> bool:
    return conforms(obj, "assertion")


def is_collection(obj: Any) -> bool:
    return conforms(obj, "collection")


SHAPE_PREDICATES: Dict[str, Callable[[Any], bool]] = {
    "language": is_language,
    "tool": is_tool,
    "context": is_context,
    "formula": is_formula,
    "sequent": is_sequent,
    "production": is_production,
    "assertion": is_assertion,
    "collection": is_collection,
}


def is_annotated(kind: str) -> Callable[[Any, "ObjectStore"], bool]:
    """Build the ``annotated-<kind>`` predicate from the ``<kind>`` predicate.

    The wrapper must have exactly ``format``, ``<kind>`` and ``annotation``,
    and the linked target must itself satisfy the ``<kind>`` predicate.
    """
    if kind not in ANNOTATABLE_KINDS:
        raise ValueError(f"kind cannot be annotated: {kind}")
    inner = SHAPE_PREDICATES[kind]

    def predicate(obj: Any, store: "ObjectStore") -> bool:
        if not conforms(obj, f"annotated-{kind}"):
            return False
        return inner(store.get(obj[kind][LINK_KEY]))

    predicate.__name__ = f"is_annotated_{kind}"
    return predicate


is_annotated_context = is_annotated("context")
is_annotated_formula = is_annotated("formula")
is_annotated_sequent = is_annotated("sequent")
is_annotated_production = is_annotated("production")


def is_of_specified_types(obj: Any, store: "ObjectStore") -> bool:
    """True iff ``obj`` is one of the publishable record shapes."""
    return (
        is_context(obj)
        or is_formula(obj)
        or is_sequent(obj)
        or is_production(obj)
        or is_assertion(obj)
        or is_collection(obj)
        or is_annotated_context(obj, store)
        or is_annotated_formula(obj, store)
        or is_annotated_sequent(obj, store)
        or is_annotated_production(obj, store)
    )


def unwrap(store: "ObjectStore", cid: str, kind: str) -> Tuple[str, Record]:
    """Dereference ``cid`` as a ``kind`` record, seeing through one annotated wrapper.

    Returns the CID of the underlying record together with the parsed record.

    Raises:
        MalformedRecordError when neither the object nor its annotated target
        has the expected shape
    """
    obj = store.get(cid)
    if conforms(obj, kind):
        return cid, RECORD_TYPES[kind].from_obj(obj)
    if kind in ANNOTATABLE_KINDS and conforms(obj, f"annotated-{kind}"):
        inner_cid = obj[kind][LINK_KEY]
        inner = store.get(inner_cid)
        if conforms(inner, kind):
            return inner_cid, RECORD_TYPES[kind].from_obj(inner)
        raise MalformedRecordError(kind, validate_shape(inner, kind), cid=inner_cid)
    raise MalformedRecordError(kind, validate_shape(obj, kind), cid=cid)
