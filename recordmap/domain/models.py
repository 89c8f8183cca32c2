"""
Domain models for recordmap.

A ``Mapping`` describes one table: its name, the declared columns with their
semantic types and JSON visibility, and which audit timestamp columns it
carries. A ``Record`` is one row of that table with explicit field presence,
so a declared column that was never assigned is distinguishable from one that
was assigned ``None``.
"""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from recordmap.errors import ImmutableIdError
from recordmap.utils.clock import DATE_FORMAT, TIMESTAMP_FORMAT

ID_COLUMN = "id"


class ColumnType(str, Enum):
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STRING = "string"


class ColumnDef(BaseModel):
    """
    Declaration of a single column.
    """

    type: ColumnType = Field(ColumnType.STRING, description="Semantic type used for JSON projection.")
    json_visible: bool = Field(True, alias="json", description="Whether to_json_hash includes the column.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }


class Mapping(BaseModel):
    """
    Descriptor associating a table with its column metadata.

    ``columns`` accepts ``ColumnDef`` instances, plain dicts such as
    ``{"type": "int", "json": False}``, or a bare type name.
    """

    table: str = Field(..., min_length=1, description="Table name (trusted, never user input).")
    name: str = Field(
        "", validate_default=True, description="Mapping name used for cache keys; defaults to the table name."
    )
    columns: Dict[str, ColumnDef] = Field(default_factory=dict)
    has_created_at: bool = Field(True, description="Whether INSERT writes created_at.")
    has_updated_at: bool = Field(True, description="Whether INSERT/UPDATE write updated_at.")
    cache_expire_seconds: Optional[int] = Field(None, ge=0, description="Cache TTL; None uses settings.")

    model_config = {
        "frozen": True,
    }

    @field_validator("columns", mode="before")
    @classmethod
    def _coerce_columns(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                column: {"type": spec} if isinstance(spec, (str, ColumnType)) else spec
                for column, spec in value.items()
            }
        return value

    @field_validator("name")
    @classmethod
    def _default_name(cls, value: str, info: ValidationInfo) -> str:
        return value or info.data.get("table", "")

    def column_names(self) -> List[str]:
        """Declared column names in declaration order."""
        return list(self.columns)

    def is_declared(self, column: str) -> bool:
        return column in self.columns

    def column_type(self, column: str) -> ColumnType:
        return self.columns[column].type

    def is_json_visible(self, column: str) -> bool:
        return self.columns[column].json_visible


class Record:
    """
    One row of a mapped table.

    Field values live in an ordered dict of *assigned* fields. Reading an
    unassigned field with ``record[name]`` raises ``KeyError``; ``get`` returns
    a default instead. The id is kept apart from the fields: it is ``None``
    until the store assigns it and cannot change afterwards.
    """

    __slots__ = ("mapping", "_id", "_values")

    def __init__(
        self,
        mapping: Mapping,
        values: Optional[Dict[str, Any]] = None,
        id: Optional[int] = None,
    ) -> None:
        self.mapping = mapping
        self._id: Optional[int] = None
        self._values: Dict[str, Any] = {}
        if values:
            for key, value in values.items():
                self[key] = value
        if id is not None:
            self.id = id

    @classmethod
    def from_row(cls, mapping: Mapping, row: Dict[str, Any]) -> "Record":
        """Build a record from a fetched row keyed by column name."""
        values = dict(row)
        record_id = values.pop(ID_COLUMN, None)
        return cls(mapping, values, id=record_id)

    @property
    def id(self) -> Optional[int]:
        return self._id

    @id.setter
    def id(self, value: Optional[int]) -> None:
        if self._id is not None:
            raise ImmutableIdError(
                f"The {self.mapping.name} record already has id={self._id!r}."
            )
        self._id = value

    @property
    def is_persisted(self) -> bool:
        return self._id is not None

    def __getitem__(self, key: str) -> Any:
        if key == ID_COLUMN:
            return self._id
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key == ID_COLUMN:
            self.id = value
            return
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __contains__(self, key: object) -> bool:
        if key == ID_COLUMN:
            return self._id is not None
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return (
            self.mapping == other.mapping
            and self._id == other._id
            and self._values == other._values
        )

    def __repr__(self) -> str:
        return f"Record({self.mapping.name!r}, id={self._id!r}, values={self._values!r})"

    def get(self, key: str, default: Any = None) -> Any:
        if key == ID_COLUMN:
            return self._id if self._id is not None else default
        return self._values.get(key, default)

    def is_set(self, key: str) -> bool:
        return key in self

    def unset(self, key: str) -> None:
        """Remove a field from the assigned set; no-op when it was never set."""
        self._values.pop(key, None)

    def values(self) -> Dict[str, Any]:
        """A copy of the assigned fields (the id excluded)."""
        return dict(self._values)

    def persistable_items(self) -> List[Tuple[str, Any]]:
        """
        Declared-and-assigned columns with their values, in declaration order.

        Undeclared fields and the id are left out.
        """
        return [
            (column, self._values[column])
            for column in self.mapping.column_names()
            if column != ID_COLUMN and column in self._values
        ]

    def to_json_hash(self) -> Dict[str, Any]:
        """
        JSON-safe projection of the JSON-visible declared columns.

        ``int`` and ``float`` columns are cast loosely: a value that does not
        parse as a number becomes 0 and ``"3.7"`` in an ``int`` column becomes 3.
        Driver-native values in other columns are flattened to strings
        (timestamps, decimals, bytes).
        """
        hash_: Dict[str, Any] = {}
        for column in self.mapping.column_names():
            if not self.mapping.is_json_visible(column):
                continue
            hash_[column] = _json_value(self.mapping.column_type(column), self.get(column))
        return hash_


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_text(value: Any) -> Any:
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _json_value(column_type: ColumnType, value: Any) -> Any:
    if value is None:
        return ""
    if column_type is ColumnType.INT:
        return _to_int(value)
    if column_type is ColumnType.FLOAT:
        return _to_float(value)
    if column_type is ColumnType.BOOL:
        return value is True or str(value) == "1"
    return _to_text(value)


__all__ = ["ID_COLUMN", "ColumnType", "ColumnDef", "Mapping", "Record"]
