"""
Row store contract shared by the PostgREST (Supabase) and SQL backends.

Filters are PostgREST-style: a mapping of column -> "op.value", e.g.
{"uuid": "eq.abc-123", "refunded": "eq.false"}. patch() returns the rows it
actually changed, so an empty result on a conditional filter means another
writer got there first.
"""
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

Row = dict[str, Any]
Filters = Mapping[str, str]

SUPPORTED_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte", "in", "is")


@dataclass
class RowStoreResult:
    ok: bool
    rows: list[Row] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def first(self) -> Row | None:
        return self.rows[0] if self.rows else None


class RowStore(Protocol):
    def select(
        self,
        table: str,
        filters: Filters,
        columns: str = "*",
        limit: int | None = None,
    ) -> RowStoreResult: ...

    def insert(self, table: str, row: Row, upsert: bool = False) -> RowStoreResult: ...

    def patch(self, table: str, filters: Filters, values: Row) -> RowStoreResult: ...

    def ping(self) -> bool: ...


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def eq(value: Any) -> str:
    """Equality filter; None becomes `is.null` so it matches SQL NULL."""
    if value is None:
        return "is.null"
    return f"eq.{_literal(value)}"


def neq(value: Any) -> str:
    return f"neq.{_literal(value)}"


def in_(values: list[Any]) -> str:
    return "in.(" + ",".join(_literal(v) for v in values) + ")"


def parse_filter(expression: str) -> tuple[str, str | list[str]]:
    """Split "op.value" into (op, value); `in` values become a list."""
    op, sep, raw = expression.partition(".")
    if not sep or op not in SUPPORTED_OPERATORS:
        raise ValueError(f"Unsupported filter expression: {expression!r}")
    if op == "in":
        if not (raw.startswith("(") and raw.endswith(")")):
            raise ValueError(f"Malformed in-filter: {expression!r}")
        inner = raw[1:-1]
        return op, [v.strip() for v in inner.split(",")] if inner else []
    return op, raw


class RowStoreError(Exception):
    """A row store call a flow cannot continue without has failed."""

    def __init__(self, table: str, operation: str, error: str | None = None) -> None:
        super().__init__(f"{operation} on {table} failed: {error or 'unknown error'}")
        self.table = table
        self.operation = operation
