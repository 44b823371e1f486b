"""Primary-key resolution and row selectors.

Determines which field(s) identify a single row of a table and turns a
caller-supplied key value (or partial row) into an equality selector.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Table, and_
from sqlalchemy.sql.elements import ColumnElement

from tablehooks.persistence.adapter import RecordStore

NO_PRIMARY_KEY = "No primary key is defined for this table."
UNRESOLVED_PRIMARY_KEY = "Unable to resolve primary key columns for this table."


@dataclass
class KeyResolution:
    """Either the key fields of a table or the reason they are unknown."""

    keys: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class Selection:
    """Either a row selector or the reason one could not be built."""

    where: ColumnElement[bool] | None = None
    error: str | None = None


class PrimaryKeyResolver:
    """Resolves key fields through a store's schema introspection.

    Table identities are computed once per table descriptor and cached for
    the lifetime of the resolver.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self._identities: dict[Table, str] = {}

    def table_identity(self, table: Table) -> str:
        identity = self._identities.get(table)
        if identity is None:
            identity = self.store.table_identity(table)
            self._identities[table] = identity
        return identity

    def resolve(self, table: Table, primary_field: str | None = None) -> KeyResolution:
        """Resolve the key field(s) of ``table``.

        An explicit ``primary_field`` is trusted as-is, without looking at
        the schema. Otherwise the declared primary key is used; composite
        keys resolve to every participating field in declared order.
        """
        if primary_field:
            return KeyResolution(keys=[primary_field])

        primary_columns = self.store.primary_key_columns(table)
        if not primary_columns:
            return KeyResolution(error=NO_PRIMARY_KEY)

        columns = self.store.columns_of(table)
        keys: list[str] = []

        for primary_column in primary_columns:
            # Identity match: Column.__eq__ builds a SQL expression
            key = next(
                (name for name, column in columns.items() if column is primary_column),
                None,
            )
            if key is None:
                continue
            if key not in keys:
                keys.append(key)

        if not keys:
            return KeyResolution(error=UNRESOLVED_PRIMARY_KEY)

        return KeyResolution(keys=keys)

    def build_selector(self, table: Table, keys: list[str], value: Any) -> Selection:
        """Build an equality selector for ``keys`` from ``value``.

        A single key accepts the bare value or a mapping holding that key.
        Composite keys require a mapping with a value for every key.
        """
        columns = self.store.columns_of(table)
        unknown = [key for key in keys if key not in columns]
        if unknown:
            return Selection(error=f'Unknown field "{unknown[0]}" for this table.')

        if len(keys) == 1:
            key = keys[0]
            if isinstance(value, Mapping) and key in value:
                value = value[key]
            return Selection(where=self._equals(table, key, value))

        if not isinstance(value, Mapping):
            quoted = ", ".join(f'"{key}"' for key in keys)
            return Selection(
                error=f"Composite primary key requires an object with values for {quoted}."
            )

        missing = [key for key in keys if key not in value]
        if len(missing) == 1:
            return Selection(error=f'Composite primary key requires a value for "{missing[0]}".')
        if missing:
            quoted = ", ".join(f'"{key}"' for key in missing)
            return Selection(error=f"Composite primary key requires values for {quoted}.")

        return Selection(where=self.where_from_keys(table, keys, value))

    def where_from_keys(
        self, table: Table, keys: list[str], values: Mapping[str, Any]
    ) -> ColumnElement[bool]:
        """Selector matching ``values`` on every key field (AND-combined)."""
        clauses = [self._equals(table, key, values[key]) for key in keys]
        return clauses[0] if len(clauses) == 1 else and_(*clauses)

    def _equals(self, table: Table, key: str, value: Any) -> ColumnElement[bool]:
        return self.store.columns_of(table)[key] == value
