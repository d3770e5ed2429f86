"""JSON Schema validation infrastructure for record shapes.

Provides:
- A registry of the bundled record schemas (``dispatch/schemas``) so the
  shared ``link`` schema resolves via ``$ref``
- Generated schemas for the ``annotated-<kind>`` wrappers
- Cached validators per record kind
- Clear error reporting
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from dispatch.core import load_json

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"
SCHEMA_BASE_URI = "https://schemas.dispatch.dev"
LINK_SCHEMA_URI = f"{SCHEMA_BASE_URI}/link.schema.json"

# Record kinds with a bundled schema file.
BASE_KINDS = (
    "language",
    "tool",
    "context",
    "formula",
    "sequent",
    "production",
    "assertion",
    "collection",
)

# Kinds that may be wrapped by an ``annotated-<kind>`` record.
ANNOTATABLE_KINDS = ("context", "formula", "sequent", "production")


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    """Build a registry for all bundled schemas, keyed by their ``$id``."""
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = load_json(schema_path)
        schema_id = schema.get("$id") or f"{SCHEMA_BASE_URI}/{schema_path.name}"
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema_id, resource))
    return Registry().with_resources(resources)


def annotated_schema(kind: str) -> Dict[str, Any]:
    """Schema for the ``annotated-<kind>`` wrapper.

    Only the wrapper's own shape is checked here; whether the linked target
    really is a ``<kind>`` needs the store (see ``records.is_annotated``).
    """
    if kind not in ANNOTATABLE_KINDS:
        raise ValueError(f"kind cannot be annotated: {kind}")
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "$id": f"{SCHEMA_BASE_URI}/annotated-{kind}.schema.json",
        "title": f"Annotated{kind.capitalize()}",
        "type": "object",
        "properties": {
            "format": {"const": f"annotated-{kind}"},
            kind: {"$ref": LINK_SCHEMA_URI},
            "annotation": True,
        },
        "required": ["format", kind, "annotation"],
        "additionalProperties": False,
    }


@lru_cache(maxsize=None)
def schema_validator(kind: str) -> Draft202012Validator:
    """Return a cached validator for a record kind (``formula``, ``annotated-sequent``, ...)."""
    if kind.startswith("annotated-"):
        schema = annotated_schema(kind[len("annotated-"):])
    elif kind in BASE_KINDS or kind == "link":
        schema = load_json(SCHEMAS_DIR / f"{kind}.schema.json")
    else:
        raise ValueError(f"unknown record kind: {kind}")
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_shape(obj: Any, kind: str) -> List[str]:
    """Validate an object against a record kind's schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(kind)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]


def conforms(obj: Any, kind: str) -> bool:
    return schema_validator(kind).is_valid(obj)
