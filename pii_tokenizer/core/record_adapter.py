"""
Persistence adapter for tokenizable records.

The engine never touches the ORM directly; it reads and writes columns,
asks for dirty state and issues the second write of a two-phase save
through a RecordAdapter. SQLAlchemyRecordAdapter implements the protocol
on top of the instance state exposed by ``sqlalchemy.inspect``.

Attributes that are not mapped (e.g. a plaintext column dropped after a
migration to token-only storage) read as None and ignore writes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from sqlalchemy import and_
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.engine import Connection
from sqlalchemy.orm.attributes import flag_modified, set_committed_value


class RecordAdapter(Protocol):
    """Column-level access to one persisted record."""

    record: Any

    def has_attribute(self, name: str) -> bool: ...

    def read_raw(self, name: str) -> Any: ...

    def write_raw(self, name: str, value: Any) -> None: ...

    def is_dirty(self, name: str) -> bool: ...

    def previous_value(self, name: str) -> Any: ...

    def is_new_record(self) -> bool: ...

    def identity(self) -> Any: ...

    def mark_modified(self, name: str) -> None: ...

    def update_columns(self, connection: Any, values: Mapping[str, Any]) -> None: ...


class SQLAlchemyRecordAdapter:
    """
    RecordAdapter for SQLAlchemy ORM instances.

    Args:
        record: A mapped instance (transient, pending or persistent).
    """

    def __init__(self, record: Any) -> None:
        self.record = record
        self._state = sa_inspect(record)
        self._mapper = self._state.mapper

    def has_attribute(self, name: str) -> bool:
        return self._mapper.has_property(name)

    def read_raw(self, name: str) -> Any:
        if not self.has_attribute(name):
            return None
        return getattr(self.record, name)

    def write_raw(self, name: str, value: Any) -> None:
        if not self.has_attribute(name):
            return
        setattr(self.record, name, value)

    def is_dirty(self, name: str) -> bool:
        if not self.has_attribute(name):
            return False
        return self._state.attrs[name].history.has_changes()

    def previous_value(self, name: str) -> Any:
        """Return the last persisted value of an attribute, if known."""
        if not self.has_attribute(name):
            return None
        history = self._state.attrs[name].history
        if history.deleted:
            return history.deleted[0]
        if history.unchanged:
            return history.unchanged[0]
        return None

    def is_new_record(self) -> bool:
        return self._state.key is None

    def identity(self) -> Any:
        """Return the primary key (scalar or tuple), or None until it is assigned."""
        values = self._mapper.primary_key_from_instance(self.record)
        if any(value is None for value in values):
            return None
        return values[0] if len(values) == 1 else tuple(values)

    def mark_modified(self, name: str) -> None:
        """
        Flag an attribute as changed so the next flush issues an UPDATE.

        Only persistent records need this: new records are inserted anyway.
        """
        if not self.has_attribute(name) or self.is_new_record():
            return
        # flag_modified requires the attribute to be loaded
        getattr(self.record, name)
        flag_modified(self.record, name)

    def update_columns(self, connection: Connection, values: Mapping[str, Any]) -> None:
        """
        Write columns with a plain UPDATE on the given connection.

        Bypasses mapper events; the in-memory values are stored as committed
        so the record does not become dirty again.
        """
        columns = {
            self._mapper.get_property(name).columns[0]: value
            for name, value in values.items()
            if self.has_attribute(name)
        }
        if not columns:
            return

        pk_values = self._mapper.primary_key_from_instance(self.record)
        criteria = [
            column == value for column, value in zip(self._mapper.primary_key, pk_values)
        ]
        table = self._mapper.local_table
        connection.execute(table.update().where(and_(*criteria)).values(columns))

        for name, value in values.items():
            if self.has_attribute(name):
                set_committed_value(self.record, name, value)


__all__ = ["RecordAdapter", "SQLAlchemyRecordAdapter"]
