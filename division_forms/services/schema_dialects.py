"""
Schema dialects: which JSON Schema engine compiles a stored form schema,
and how a stored schema is normalized before it reaches that engine.
"""
import re
from enum import Enum

from jsonschema import Draft7Validator, Draft202012Validator

DIALECT_FIELD = '$schema'

# Dialect families the engines accept as-is
SUPPORTED_DIALECTS = re.compile(r'(draft-07|2019-09|2020-12)')
MODERN_MARKER = '2020-12'


class Dialect(Enum):
    LEGACY = 'legacy'
    MODERN = 'modern'

    @property
    def validator_class(self):
        if self is Dialect.MODERN:
            return Draft202012Validator
        # draft-07 engine also handles most 2019-09 schemas
        return Draft7Validator


def _dialect_id(schema):
    value = schema.get(DIALECT_FIELD) if isinstance(schema, dict) else None
    return value if isinstance(value, str) else ''


def select_dialect(schema):
    """Classify a schema document into a Dialect. Pure."""
    if MODERN_MARKER in _dialect_id(schema):
        return Dialect.MODERN
    return Dialect.LEGACY


def sanitize_schema(schema):
    """
    Strips an unrecognized ``$schema`` so the engine never tries to resolve
    an unknown dialect. Returns the input itself when nothing changes and a
    shallow copy otherwise; the input is never mutated.
    """
    dialect_id = _dialect_id(schema)
    if not dialect_id:
        return schema
    if SUPPORTED_DIALECTS.search(dialect_id):
        return schema
    clone = dict(schema)
    del clone[DIALECT_FIELD]
    return clone
