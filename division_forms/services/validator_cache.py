import logging
import threading

from jsonschema import FormatChecker
from jsonschema.exceptions import SchemaError
from referencing import Registry

from division_forms.errors import SchemaCompileError

logger = logging.getLogger(__name__)


def cache_key(division_id, screen_id, version):
    return f"{division_id}:{screen_id}:v{version}"


def _json_pointer(path):
    parts = [str(p).replace('~', '~0').replace('/', '~1') for p in path]
    return ''.join('/' + p for p in parts)


class Violation:
    """One mismatch between a payload and a schema constraint."""

    __slots__ = ('path', 'constraint', 'message', 'schema_path', 'params')

    def __init__(self, path, constraint, message, schema_path='', params=None):
        self.path = path
        self.constraint = constraint
        self.message = message
        self.schema_path = schema_path
        self.params = params

    @classmethod
    def from_error(cls, error):
        return cls(
            path=_json_pointer(error.absolute_path),
            constraint=error.validator,
            message=error.message,
            schema_path=_json_pointer(error.absolute_schema_path),
            params=error.validator_value
        )

    def to_dict(self):
        return {
            'path': self.path,
            'constraint': self.constraint,
            'message': self.message,
            'schema_path': self.schema_path,
            'params': self.params
        }

    def __repr__(self):
        return f"Violation({self.path!r}, {self.constraint!r})"


class CompiledValidator:
    """Immutable, thread-safe wrapper around a jsonschema validator."""

    def __init__(self, dialect, validator):
        self.dialect = dialect
        self._validator = validator

    def check(self, payload):
        """Returns every violation (all-errors mode). Never mutates payload."""
        violations = [Violation.from_error(e) for e in self._validator.iter_errors(payload)]
        return sorted(violations, key=lambda v: v.path)


def compile_validator(schema, dialect):
    cls = dialect.validator_class
    try:
        cls.check_schema(schema)
    except SchemaError as e:
        raise SchemaCompileError(details=e.message) from e
    # Empty registry: remote $refs are never fetched
    validator = cls(schema, format_checker=FormatChecker(), registry=Registry())
    return CompiledValidator(dialect, validator)


class ValidatorCache:
    """
    Process-wide map of cache key -> CompiledValidator.

    Reads of present keys are lock-free. Cold misses compile under a
    per-key lock, so concurrent misses on one key compile it once.
    Entries are never evicted: a new form version gets a new key and
    retired versions stay until the process restarts. Failed compiles
    are not stored.
    """

    def __init__(self):
        self._validators = {}
        self._locks = {}
        self._guard = threading.Lock()
        self._hits = 0
        self._compiles = 0
        self._failures = 0

    def __len__(self):
        return len(self._validators)

    def __contains__(self, key):
        return key in self._validators

    def _key_lock(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, key):
        validator = self._validators.get(key)
        if validator is not None:
            self._hits += 1
        return validator

    def get_or_compile(self, key, schema, dialect):
        validator = self.get(key)
        if validator is not None:
            return validator

        with self._key_lock(key):
            validator = self._validators.get(key)
            if validator is not None:
                self._hits += 1
                return validator
            try:
                validator = compile_validator(schema, dialect)
            except SchemaCompileError:
                self._failures += 1
                logger.warning("Schema compile failed for %s", key)
                raise
            else:
                self._validators[key] = validator
                self._compiles += 1
            finally:
                with self._guard:
                    self._locks.pop(key, None)

        logger.info("Compiled %s validator for %s", dialect.value, key)
        return validator

    def discard(self, key):
        self._validators.pop(key, None)

    def discard_for(self, division_id=None, screen_id=None):
        """Drops every version cached for a deleted division or screen."""
        removed = 0
        for key in list(self._validators):
            d, s, _ = key.split(':', 2)
            if (division_id is not None and d == str(division_id)) or \
                    (screen_id is not None and s == str(screen_id)):
                if self._validators.pop(key, None) is not None:
                    removed += 1
        return removed

    def stats(self):
        # Counters are approximate under concurrency
        return {
            'entries': len(self._validators),
            'hits': self._hits,
            'compiles': self._compiles,
            'failures': self._failures
        }


class NullValidatorCache(ValidatorCache):
    """Stores nothing: every lookup compiles. Used to disable caching."""

    def get(self, key):
        return None

    def get_or_compile(self, key, schema, dialect):
        validator = compile_validator(schema, dialect)
        self._compiles += 1
        return validator
