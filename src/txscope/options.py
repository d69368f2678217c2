"""Transaction options: isolation level and read-only flag."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .exceptions import InvalidTransactionOptionError

__all__ = ["IsolationLevel", "TransactionOptions"]


class IsolationLevel(str, Enum):
    """ANSI isolation levels, valued with the SQLAlchemy spelling."""

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"

    @classmethod
    def parse(cls, value: "IsolationLevel | str") -> "IsolationLevel":
        """Normalize ``value`` written with spaces, hyphens or underscores."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidTransactionOptionError(
                f"isolation level must be a string, got {type(value).__name__}"
            )
        normalized = " ".join(value.replace("-", " ").replace("_", " ").split()).upper()
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(member.value.lower() for member in cls)
            raise InvalidTransactionOptionError(
                f"unknown isolation level '{value}' (expected one of: {allowed})"
            ) from None


_OPTION_KEYS = frozenset({"isolation_level", "read_only"})


@dataclass(frozen=True, slots=True)
class TransactionOptions:
    """Options fixed for the lifetime of one transaction.

    ``isolation_level=None`` keeps the database default; ``read_only=False``
    opens a read/write transaction.
    """

    isolation_level: IsolationLevel | None = None
    read_only: bool = False

    def __post_init__(self) -> None:
        if self.isolation_level is not None:
            object.__setattr__(
                self, "isolation_level", IsolationLevel.parse(self.isolation_level)
            )
        if not isinstance(self.read_only, bool):
            raise InvalidTransactionOptionError("read_only must be a boolean")

    @classmethod
    def coerce(
        cls,
        options: "TransactionOptions | Mapping[str, Any] | None" = None,
        *,
        defaults: "TransactionOptions | None" = None,
        isolation_level: IsolationLevel | str | None = None,
        read_only: bool | None = None,
    ) -> "TransactionOptions":
        """Build options from ``options`` layered over ``defaults``.

        Keyword overrides win over ``options``, which wins over ``defaults``.
        """

        base = defaults or cls()
        values: dict[str, Any] = {
            "isolation_level": base.isolation_level,
            "read_only": base.read_only,
        }
        if isinstance(options, TransactionOptions):
            if options.isolation_level is not None:
                values["isolation_level"] = options.isolation_level
            values["read_only"] = options.read_only
        elif isinstance(options, Mapping):
            unknown = set(options) - _OPTION_KEYS
            if unknown:
                raise InvalidTransactionOptionError(
                    f"unknown transaction options: {', '.join(sorted(unknown))}"
                )
            for key, value in options.items():
                if value is not None:
                    values[key] = value
        elif options is not None:
            raise InvalidTransactionOptionError(
                f"options must be TransactionOptions or a mapping, got {type(options).__name__}"
            )

        if isolation_level is not None:
            values["isolation_level"] = isolation_level
        if read_only is not None:
            values["read_only"] = read_only
        return cls(**values)

    def describe(self) -> dict[str, Any]:
        """Return a log-friendly representation."""

        return {
            "isolation_level": self.isolation_level.value if self.isolation_level else None,
            "read_only": self.read_only,
        }
