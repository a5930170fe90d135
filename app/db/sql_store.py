"""
Row store on top of SQLAlchemy Core, speaking the same filter dialect as
PostgREST. Each call runs in its own transaction; patch() uses
UPDATE ... RETURNING so the conditional-update contract holds exactly.
"""
import logging
import operator
from datetime import date, datetime
from typing import Any

from sqlalchemy import Table, insert, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.db.base import Base
from app.db.row_store import Filters, Row, RowStoreResult, parse_filter
from app.models import (  # noqa: F401  (register tables on Base.metadata)
    balance_audit_log,
    generation,
    partner_transaction,
    tribute_order,
    user,
)


logger = logging.getLogger(__name__)

_COMPARATORS = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


def _coerce(column, raw: Any) -> Any:
    if raw is None or raw == "null":
        return None
    if not isinstance(raw, str):
        return raw
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return raw
    if python_type is bool:
        return raw.lower() in ("true", "t", "1")
    if python_type is int:
        return int(raw)
    if python_type is float:
        return float(raw)
    if python_type is datetime:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return raw


def _serialize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SqlRowStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def _table(self, name: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError:
            raise ValueError(f"Unknown table: {name}") from None

    def _conditions(self, table: Table, filters: Filters) -> list:
        conditions = []
        for name, expression in filters.items():
            column = table.c[name]
            op, raw = parse_filter(expression)
            if op == "in":
                conditions.append(column.in_([_coerce(column, v) for v in raw]))
            elif op == "is":
                conditions.append(column.is_(_coerce(column, raw)))
            else:
                value = _coerce(column, raw)
                conditions.append(_COMPARATORS[op](column, value))
        return conditions

    def _values(self, table: Table, row: Row) -> Row:
        return {name: _coerce(table.c[name], value) for name, value in row.items()}

    @staticmethod
    def _rows(result) -> list[Row]:
        return [{k: _serialize(v) for k, v in r._mapping.items()} for r in result]

    def _fail(self, op: str, table: str, exc: Exception) -> RowStoreResult:
        logger.error("row_store_sql_error", extra={"table": table, "method": op, "error": str(exc)})
        return RowStoreResult(ok=False, error=str(exc))

    def select(
        self,
        table: str,
        filters: Filters,
        columns: str = "*",
        limit: int | None = None,
    ) -> RowStoreResult:
        try:
            t = self._table(table)
            cols = list(t.c) if columns.strip() == "*" else [t.c[c.strip()] for c in columns.split(",")]
            stmt = select(*cols).where(*self._conditions(t, filters))
            if limit is not None:
                stmt = stmt.limit(limit)
            with self.engine.connect() as conn:
                rows = self._rows(conn.execute(stmt))
            return RowStoreResult(ok=True, rows=rows, headers={"content-range": f"0-{max(len(rows) - 1, 0)}/{len(rows)}"})
        except (SQLAlchemyError, ValueError, KeyError) as e:
            return self._fail("select", table, e)

    def insert(self, table: str, row: Row, upsert: bool = False) -> RowStoreResult:
        try:
            t = self._table(table)
            values = self._values(t, row)
            try:
                with self.engine.begin() as conn:
                    rows = self._rows(conn.execute(insert(t).values(**values).returning(*t.c)))
            except IntegrityError:
                if not upsert:
                    raise
                pk = {c.name: values[c.name] for c in t.primary_key.columns if c.name in values}
                if not pk:
                    raise
                with self.engine.begin() as conn:
                    stmt = update(t).where(*(t.c[k] == v for k, v in pk.items())).values(**values).returning(*t.c)
                    rows = self._rows(conn.execute(stmt))
            return RowStoreResult(ok=True, rows=rows)
        except (SQLAlchemyError, ValueError, KeyError) as e:
            return self._fail("insert", table, e)

    def patch(self, table: str, filters: Filters, values: Row) -> RowStoreResult:
        try:
            t = self._table(table)
            stmt = (
                update(t)
                .where(*self._conditions(t, filters))
                .values(**self._values(t, values))
                .returning(*t.c)
            )
            with self.engine.begin() as conn:
                rows = self._rows(conn.execute(stmt))
            return RowStoreResult(ok=True, rows=rows)
        except (SQLAlchemyError, ValueError, KeyError) as e:
            return self._fail("patch", table, e)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False
