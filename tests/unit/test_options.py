from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from src.txscope.exceptions import InvalidTransactionOptionError
from src.txscope.options import IsolationLevel, TransactionOptions

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("read uncommitted", IsolationLevel.READ_UNCOMMITTED),
        ("read-committed", IsolationLevel.READ_COMMITTED),
        ("REPEATABLE_READ", IsolationLevel.REPEATABLE_READ),
        ("  Serializable ", IsolationLevel.SERIALIZABLE),
        (IsolationLevel.SERIALIZABLE, IsolationLevel.SERIALIZABLE),
    ],
)
def test_isolation_level_parse_normalizes_spelling(raw, expected) -> None:
    assert IsolationLevel.parse(raw) is expected


@pytest.mark.parametrize("raw", ["autocommit", "snapshot", "", 3])
def test_isolation_level_parse_rejects_unknown_values(raw) -> None:
    with pytest.raises(InvalidTransactionOptionError):
        IsolationLevel.parse(raw)


def test_invalid_option_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        TransactionOptions(isolation_level="chaos")


def test_options_are_normalized_and_frozen() -> None:
    options = TransactionOptions(isolation_level="repeatable read", read_only=True)

    assert options.isolation_level is IsolationLevel.REPEATABLE_READ
    assert options.describe() == {"isolation_level": "REPEATABLE READ", "read_only": True}
    with pytest.raises(FrozenInstanceError):
        options.read_only = False  # type: ignore[misc]


def test_read_only_must_be_boolean() -> None:
    with pytest.raises(InvalidTransactionOptionError):
        TransactionOptions(read_only="yes")  # type: ignore[arg-type]


def test_coerce_layers_defaults_options_and_overrides() -> None:
    defaults = TransactionOptions(isolation_level="serializable", read_only=True)

    assert TransactionOptions.coerce(defaults=defaults) == defaults
    assert TransactionOptions.coerce(
        {"read_only": False}, defaults=defaults
    ) == TransactionOptions(isolation_level="serializable", read_only=False)
    assert TransactionOptions.coerce(
        {"isolation_level": "read committed"},
        defaults=defaults,
        isolation_level="read uncommitted",
    ) == TransactionOptions(isolation_level="read uncommitted", read_only=True)


def test_coerce_with_instance_keeps_default_isolation_when_unset() -> None:
    defaults = TransactionOptions(isolation_level="serializable")

    coerced = TransactionOptions.coerce(TransactionOptions(read_only=True), defaults=defaults)

    assert coerced == TransactionOptions(isolation_level="serializable", read_only=True)


def test_coerce_rejects_unknown_keys_and_types() -> None:
    with pytest.raises(InvalidTransactionOptionError, match="isolationLevel"):
        TransactionOptions.coerce({"isolationLevel": "serializable"})
    with pytest.raises(InvalidTransactionOptionError):
        TransactionOptions.coerce(["serializable"])  # type: ignore[arg-type]
