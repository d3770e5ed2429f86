"""dispatch: justification lookup over a content-addressed claim graph.

Architecture:
    dispatch/
    ├── __init__.py      # Package entry, version, public API
    ├── core.py          # Primitives: sha256, canonical JSON, CIDs, links
    ├── schema.py        # JSON Schema validation of record shapes
    ├── records.py       # Record model (tagged union) and shape predicates
    ├── objstore.py      # Content-addressed object store, gateway completion
    ├── signing.py       # Agent keys, assertion signatures, fingerprints
    ├── config.py        # Configuration values and name profiles
    ├── ingest.py        # Assertion list -> derivation index
    ├── resolve.py       # Justification resolution engine
    ├── lookup.py        # Lookup entry point and result artifact
    ├── publish.py       # Input document -> records
    └── cli.py           # Command-line interface

Given a formula and a list of signed assertions, ``lookup`` enumerates every
alternative way the formula can be justified: the leaf premises it rests on
and the ordered chain of agents and modes that derive it.
"""

__version__ = "0.3.0"

from dispatch.core import (
    canonical_json_bytes,
    compute_cid,
    make_link,
    sha256_bytes,
)
from dispatch.ingest import AssertionUnit, DerivationIndex, build_index
from dispatch.lookup import lookup, write_result
from dispatch.objstore import LocalObjectStore, MemoryObjectStore, ObjectStore, RetrievalError
from dispatch.records import MalformedRecordError, parse_record
from dispatch.resolve import JustificationUnit, Resolver, Step, resolve

__all__ = [
    "__version__",
    "canonical_json_bytes",
    "compute_cid",
    "make_link",
    "sha256_bytes",
    "AssertionUnit",
    "DerivationIndex",
    "build_index",
    "lookup",
    "write_result",
    "LocalObjectStore",
    "MemoryObjectStore",
    "ObjectStore",
    "RetrievalError",
    "MalformedRecordError",
    "parse_record",
    "JustificationUnit",
    "Resolver",
    "Step",
    "resolve",
]
