"""
Module: splitledger_kernel.db.upsert
Responsibility: Dialect-aware INSERT ... ON CONFLICT builders.

Running aggregates (budget totals, pairwise balances) are mutated by many
independent actions.  They are only ever changed through
``increment_upsert`` so the addition happens inside the database in a
single statement; there is no read-then-write path.

Supported dialects: sqlite, postgresql.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.sql.dml import Insert


def _dialect_insert(dialect_name: str, table: Table) -> Insert:
    match dialect_name:
        case "postgresql":
            return postgresql.insert(table)
        case "sqlite":
            return sqlite.insert(table)
        case _:
            raise ValueError(f"Upsert not supported for dialect '{dialect_name}'")


def replace_upsert(
    dialect_name: str,
    table: Table,
    values: Mapping[str, Any],
    key_columns: Sequence[str],
    update_columns: Sequence[str] | None = None,
    where: Any = None,
) -> Insert:
    """Insert a row, or overwrite ``update_columns`` when the key exists.

    Args:
        dialect_name: ``engine.dialect.name`` of the target database.
        table: Target table.
        values: Full row values.
        key_columns: Columns of the unique constraint to conflict on.
        update_columns: Columns to overwrite on conflict.  Defaults to every
            non-key column in ``values``.
        where: Optional condition on the existing row; when it is false the
            conflicting row is left untouched.
    """
    stmt = _dialect_insert(dialect_name, table).values(**values)
    columns = update_columns or [c for c in values if c not in key_columns]
    return stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_={c: stmt.excluded[c] for c in columns},
        where=where,
    )


def increment_upsert(
    dialect_name: str,
    table: Table,
    values: Mapping[str, Any],
    key_columns: Sequence[str],
    increment_column: str,
    touch_columns: Sequence[str] = (),
) -> Insert:
    """Insert a row, or add ``values[increment_column]`` to the stored value.

    ``touch_columns`` are overwritten from the incoming row on conflict
    (e.g. ``updated_at``).
    """
    stmt = _dialect_insert(dialect_name, table).values(**values)
    set_: dict[str, Any] = {
        increment_column: table.c[increment_column] + stmt.excluded[increment_column],
    }
    for column in touch_columns:
        set_[column] = stmt.excluded[column]
    return stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_=set_,
    )
