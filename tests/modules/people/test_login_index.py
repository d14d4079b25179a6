# tests/modules/people/test_login_index.py
import pytest
from pymongo.errors import DuplicateKeyError, OperationFailure

from atlas_core.modules.people.login_index import (
    LOGIN_INDEX_FIELDS,
    LoginIndexSupport,
    build_login_index_values,
    normalize_login_input,
    run_with_login_index_fallback,
)


def test_normalization_strips_accents_and_symbols():
    assert normalize_login_input("  José.Pérez+Ventas@Atlas.Local ") == "jose.perez+ventas@atlas.local"
    assert normalize_login_input("ñandú (2)") == "nandu2"
    values = build_login_index_values("José.Pérez", "Jose_P@Atlas.local")
    assert values == {
        "username_norm": "jose.perez",
        "username_flat": "joseperez",
        "email_norm": "jose_p@atlas.local",
        "email_flat": "jose_p@atlaslocal",
    }


class FakeStore:
    """Rejects writes containing any of `missing` columns, like a strict schema validator."""

    def __init__(self, missing=()):
        self.missing = set(missing)
        self.calls = []

    async def write(self, payload):
        self.calls.append(dict(payload))
        for field in LOGIN_INDEX_FIELDS:
            if field in payload and field in self.missing:
                raise OperationFailure(f"Document failed validation: unknown field '{field}'", code=121)
        return payload


ALL_VALUES = build_login_index_values("ana", "ana@atlas.local")


@pytest.mark.parametrize("missing", [
    (),
    ("email_flat",),
    ("username_norm", "email_norm"),
    LOGIN_INDEX_FIELDS,
])
async def test_fallback_succeeds_with_at_most_one_retry_per_missing_column(missing):
    support = LoginIndexSupport()
    store = FakeStore(missing)

    written = await run_with_login_index_fallback(support, {"username": "ana"}, ALL_VALUES, store.write)

    assert len(store.calls) <= len(missing) + 1
    assert not set(missing) & set(written)
    assert set(written) - {"username"} == set(LOGIN_INDEX_FIELDS) - set(missing)
    for field in missing:
        assert not support.is_supported(field)


async def test_disabled_columns_are_remembered_across_writes():
    support = LoginIndexSupport()
    store = FakeStore(("username_flat",))
    await run_with_login_index_fallback(support, {}, ALL_VALUES, store.write)
    store.calls.clear()

    await run_with_login_index_fallback(support, {}, ALL_VALUES, store.write)
    assert len(store.calls) == 1


async def test_unrelated_errors_propagate_without_retry():
    support = LoginIndexSupport()
    calls = []

    async def write(payload):
        calls.append(payload)
        raise OperationFailure("not authorized on atlas", code=13)

    with pytest.raises(OperationFailure):
        await run_with_login_index_fallback(support, {}, ALL_VALUES, write)
    assert len(calls) == 1
    assert all(support.is_supported(f) for f in LOGIN_INDEX_FIELDS)


async def test_duplicate_keys_propagate():
    support = LoginIndexSupport()

    async def write(payload):
        raise DuplicateKeyError("E11000 duplicate key error index: username_norm_1")

    with pytest.raises(DuplicateKeyError):
        await run_with_login_index_fallback(support, {}, ALL_VALUES, write)
    assert support.is_supported("username_norm")


async def test_no_values_means_no_retry():
    support = LoginIndexSupport()
    calls = []

    async def write(payload):
        calls.append(payload)
        raise OperationFailure("username_norm is not allowed")

    with pytest.raises(OperationFailure):
        await run_with_login_index_fallback(support, {"full_name": "X"}, {}, write)
    assert len(calls) == 1
