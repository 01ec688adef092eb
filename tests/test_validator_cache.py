"""Compiled-validator cache and the compiled validators themselves."""
import copy
import threading
import time

import pytest

import division_forms.services.validator_cache as validator_cache_mod
from division_forms.errors import SchemaCompileError
from division_forms.services.schema_dialects import Dialect, select_dialect, sanitize_schema
from division_forms.services.validator_cache import (
    ValidatorCache, NullValidatorCache, cache_key, compile_validator
)

from conftest import SALES_SCHEMA, VALID_SALE


def test_cache_key_format():
    assert cache_key(3, 7, 2) == "3:7:v2"


def test_new_version_gets_new_key():
    assert cache_key(1, 1, 1) != cache_key(1, 1, 2)


def test_compiles_once_per_key():
    cache = ValidatorCache()
    first = cache.get_or_compile("1:1:v1", SALES_SCHEMA, Dialect.LEGACY)
    second = cache.get_or_compile("1:1:v1", SALES_SCHEMA, Dialect.LEGACY)

    assert first is second
    assert len(cache) == 1
    assert "1:1:v1" in cache
    assert cache.stats()['compiles'] == 1
    assert cache.stats()['hits'] == 1


def test_get_on_cold_cache_returns_none():
    cache = ValidatorCache()
    assert cache.get("9:9:v9") is None
    assert cache.stats()['hits'] == 0


def test_compile_failure_is_not_cached():
    cache = ValidatorCache()
    broken = {"type": 12}

    for _ in range(2):
        with pytest.raises(SchemaCompileError) as exc:
            cache.get_or_compile("1:1:v1", broken, Dialect.LEGACY)
        assert exc.value.details

    assert "1:1:v1" not in cache
    assert cache.stats()['failures'] == 2


def test_discard_forces_recompile():
    cache = ValidatorCache()
    first = cache.get_or_compile("k", SALES_SCHEMA, Dialect.LEGACY)
    cache.discard("k")
    second = cache.get_or_compile("k", SALES_SCHEMA, Dialect.LEGACY)
    assert first is not second
    assert cache.stats()['compiles'] == 2


def test_concurrent_cold_misses_compile_once(monkeypatch):
    calls = []
    real_compile = validator_cache_mod.compile_validator

    def slow_compile(schema, dialect):
        calls.append(1)
        time.sleep(0.05)
        return real_compile(schema, dialect)

    monkeypatch.setattr(validator_cache_mod, "compile_validator", slow_compile)

    cache = ValidatorCache()
    barrier = threading.Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(cache.get_or_compile("1:1:v1", SALES_SCHEMA, Dialect.LEGACY))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)


def test_null_cache_compiles_every_time():
    cache = NullValidatorCache()
    first = cache.get_or_compile("1:1:v1", SALES_SCHEMA, Dialect.LEGACY)
    second = cache.get_or_compile("1:1:v1", SALES_SCHEMA, Dialect.LEGACY)

    assert first is not second
    assert cache.get("1:1:v1") is None
    assert len(cache) == 0
    assert cache.stats()['compiles'] == 2


def test_same_key_compiles_give_identical_results():
    payload = {"date": "2024-13-45", "region": "Middle"}
    a = compile_validator(SALES_SCHEMA, Dialect.LEGACY).check(payload)
    b = compile_validator(SALES_SCHEMA, Dialect.LEGACY).check(payload)
    assert [v.to_dict() for v in a] == [v.to_dict() for v in b]


def test_reports_every_violation():
    validator = compile_validator(SALES_SCHEMA, Dialect.LEGACY)
    violations = validator.check({"date": "2024-01-01"})

    required = [v for v in violations if v.constraint == "required"]
    assert len(required) == 2
    messages = " ".join(v.message for v in required)
    assert "amount" in messages
    assert "region" in messages
    assert all(v.path == "" for v in required)
    assert required[0].params == ["amount", "date", "region"]


def test_violation_points_into_payload():
    validator = compile_validator(SALES_SCHEMA, Dialect.LEGACY)
    violations = validator.check({"amount": "lots", "date": "yesterday", "region": "Middle"})

    by_path = {v.path: v.constraint for v in violations}
    assert by_path == {"/amount": "type", "/date": "format", "/region": "enum"}
    assert all(v.schema_path.startswith("/properties/") for v in violations)


def test_check_never_mutates_payload():
    validator = compile_validator(SALES_SCHEMA, Dialect.LEGACY)
    payload = dict(VALID_SALE, extra={"nested": [1, 2]})
    snapshot = copy.deepcopy(payload)

    assert validator.check(payload) == []
    assert payload == snapshot


def test_modern_dialect_understands_prefix_items():
    schema = {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "properties": {"tags": {"type": "array", "prefixItems": [{"type": "string"}]}}
    }
    payload = {"tags": [1]}

    modern = compile_validator(schema, select_dialect(schema))
    legacy = compile_validator(schema, Dialect.LEGACY)

    assert modern.dialect is Dialect.MODERN
    assert [v.constraint for v in modern.check(payload)] == ["type"]
    assert legacy.check(payload) == []


def test_unknown_dialect_compiles_after_sanitize():
    schema = dict(SALES_SCHEMA, **{"$schema": "https://schemas.example.com/forms/v3"})
    cleaned = sanitize_schema(schema)
    validator = compile_validator(cleaned, select_dialect(cleaned))
    assert validator.check(VALID_SALE) == []


def test_failed_compile_leaves_no_key_lock():
    cache = ValidatorCache()
    for version in range(1, 4):
        with pytest.raises(SchemaCompileError):
            cache.get_or_compile(cache_key(1, 1, version), {"type": 12}, Dialect.LEGACY)
    assert cache._locks == {}


def test_discard_for_division_or_screen():
    cache = ValidatorCache()
    for key in ("1:1:v1", "1:2:v1", "2:1:v1", "12:2:v3"):
        cache.get_or_compile(key, SALES_SCHEMA, Dialect.LEGACY)

    assert cache.discard_for(division_id=1) == 2
    assert "12:2:v3" in cache
    assert cache.discard_for(screen_id=1) == 1
    assert list(cache._validators) == ["12:2:v3"]


@pytest.mark.parametrize("dialect", [Dialect.LEGACY, Dialect.MODERN])
def test_optional_formats_are_enforced(dialect):
    schema = {
        "type": "object",
        "properties": {
            "at": {"type": "string", "format": "date-time"},
            "site": {"type": "string", "format": "uri"},
            "mail": {"type": "string", "format": "email"}
        }
    }
    validator = compile_validator(schema, dialect)

    violations = validator.check({"at": "yesterday", "site": "not a uri", "mail": "nobody"})
    assert {(v.path, v.constraint) for v in violations} == {
        ("/at", "format"), ("/site", "format"), ("/mail", "format")
    }
    assert validator.check({
        "at": "2024-01-01T09:30:00Z", "site": "https://example.com/forms", "mail": "ops@example.com"
    }) == []
