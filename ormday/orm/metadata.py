"""
Entity metadata: which table an entity type maps to and how its attributes
map to columns.

Metadata is declared once per entity type with an explicit call and attached
to the class:

    @table("habits", columns=[
        NumberColumn("id", primary=True),
        StringColumn("name", max_length=255),
        EnumColumn("cadence", enum_values=Cadence),
        NumberColumn("user_id"),
    ], foreign_keys=[
        ForeignKey("user_id", "users", "id", on_delete=OnDelete.CASCADE),
    ])
    @dataclass
    class Habit:
        id: int | None = None
        name: str = ""
        cadence: str = "daily"
        user_id: int | None = None

Column order in the declaration is the column order of generated DDL.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Optional, Sequence

from ..db.helpers import _validate_identifier
from ..errors import MetadataError

_TABLE_ATTR = "__ormday_table__"


class ColumnKind(str, enum.Enum):
    NUMBER = "number"
    STRING = "string"
    ENUM = "enum"
    TIMESTAMP = "timestamp"
    DATE = "date"


class OnDelete(str, enum.Enum):
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    RESTRICT = "RESTRICT"
    NO_ACTION = "NO ACTION"


@dataclass(frozen=True)
class ColumnMetadata:
    """
    Shared part of every column declaration.

    ``column_name`` defaults to ``property_key``. Concrete declarations use one
    of the per-kind subclasses below.
    """
    property_key: str
    column_name: Optional[str] = None
    primary: bool = False
    optional: bool = False

    kind: ClassVar[ColumnKind]

    def __post_init__(self) -> None:
        if type(self) is ColumnMetadata:
            raise TypeError("ColumnMetadata is abstract; use a per-kind column class")
        if self.column_name is None:
            object.__setattr__(self, "column_name", self.property_key)
        _validate_identifier(self.column_name, "column")
        if self.primary and self.optional:
            raise MetadataError(f"Primary column {self.column_name!r} cannot be optional")


@dataclass(frozen=True)
class NumberColumn(ColumnMetadata):
    kind: ClassVar[ColumnKind] = ColumnKind.NUMBER


@dataclass(frozen=True)
class StringColumn(ColumnMetadata):
    max_length: Optional[int] = None

    kind: ClassVar[ColumnKind] = ColumnKind.STRING

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.max_length is not None and self.max_length <= 0:
            raise MetadataError(
                f"max_length of column {self.column_name!r} must be positive, got {self.max_length}"
            )


@dataclass(frozen=True)
class EnumColumn(ColumnMetadata):
    # Accepts an Enum subclass or any iterable; normalised to the string values
    enum_values: Any = ()

    kind: ClassVar[ColumnKind] = ColumnKind.ENUM

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "enum_values", _enum_string_values(self.enum_values))
        if not self.enum_values:
            raise MetadataError(
                f"Enum column {self.column_name!r} must have enum values specified"
            )


@dataclass(frozen=True)
class TimestampColumn(ColumnMetadata):
    kind: ClassVar[ColumnKind] = ColumnKind.TIMESTAMP


@dataclass(frozen=True)
class DateColumn(ColumnMetadata):
    kind: ClassVar[ColumnKind] = ColumnKind.DATE


def _enum_string_values(values: Any) -> tuple[str, ...]:
    if isinstance(values, type) and issubclass(values, enum.Enum):
        members: Iterable[Any] = (member.value for member in values)
    else:
        members = values or ()
    return tuple(v for v in members if isinstance(v, str))


@dataclass(frozen=True)
class ForeignKey:
    property_key: str
    referenced_table: str
    referenced_column: str
    on_delete: Optional[OnDelete] = None

    def __post_init__(self) -> None:
        _validate_identifier(self.referenced_table, "referenced table")
        _validate_identifier(self.referenced_column, "referenced column")
        if self.on_delete is not None:
            object.__setattr__(self, "on_delete", OnDelete(self.on_delete))


@dataclass(frozen=True)
class TableMetadata:
    table_name: str
    entity_type: type
    columns: tuple[ColumnMetadata, ...] = ()
    foreign_keys: tuple[ForeignKey, ...] = field(default_factory=tuple)

    @property
    def primary_key(self) -> Optional[ColumnMetadata]:
        return next((col for col in self.columns if col.primary), None)

    def column_for_property(self, property_key: str) -> Optional[ColumnMetadata]:
        return next((col for col in self.columns if col.property_key == property_key), None)

    def column_named(self, column_name: str) -> Optional[ColumnMetadata]:
        return next((col for col in self.columns if col.column_name == column_name), None)

    def foreign_key_for(self, property_key: str) -> Optional[ForeignKey]:
        return next((fk for fk in self.foreign_keys if fk.property_key == property_key), None)


def declare_table(
    entity_type: type,
    table_name: str,
    columns: Sequence[ColumnMetadata],
    foreign_keys: Sequence[ForeignKey] = (),
) -> TableMetadata:
    """
    Attach table metadata to ``entity_type`` and return it.

    Raises:
        ValueError: If the table or a column name is not a valid identifier
        MetadataError: On duplicate columns, several primary columns, or a
            foreign key naming an undeclared property
    """
    _validate_identifier(table_name, "table")

    seen_props: set[str] = set()
    seen_cols: set[str] = set()
    for col in columns:
        if col.property_key in seen_props:
            raise MetadataError(
                f"Property {col.property_key!r} declared twice on {entity_type.__name__}"
            )
        if col.column_name in seen_cols:
            raise MetadataError(
                f"Column {col.column_name!r} declared twice on {entity_type.__name__}"
            )
        seen_props.add(col.property_key)
        seen_cols.add(col.column_name)

    primaries = [col for col in columns if col.primary]
    if len(primaries) > 1:
        raise MetadataError(
            f"{entity_type.__name__} declares {len(primaries)} primary columns; exactly one is supported"
        )

    for fk in foreign_keys:
        if fk.property_key not in seen_props:
            raise MetadataError(
                f"Foreign key on {entity_type.__name__}.{fk.property_key} "
                "does not refer to a declared column"
            )

    metadata = TableMetadata(
        table_name=table_name,
        entity_type=entity_type,
        columns=tuple(columns),
        foreign_keys=tuple(foreign_keys),
    )
    setattr(entity_type, _TABLE_ATTR, metadata)
    return metadata


def table(
    table_name: str,
    columns: Sequence[ColumnMetadata],
    foreign_keys: Sequence[ForeignKey] = (),
):
    """Class decorator form of :func:`declare_table`."""

    def decorator(cls: type) -> type:
        declare_table(cls, table_name, columns, foreign_keys)
        return cls

    return decorator


def _find_table_metadata(entity_type: type) -> Optional[TableMetadata]:
    # Only the class's own declaration counts; subclasses do not inherit a table
    metadata = vars(entity_type).get(_TABLE_ATTR) if isinstance(entity_type, type) else None
    return metadata


def get_table_metadata(entity_type: type) -> TableMetadata:
    metadata = _find_table_metadata(entity_type)
    if metadata is None:
        name = getattr(entity_type, "__name__", repr(entity_type))
        raise MetadataError(f"No table declaration found on {name}")
    return metadata


def get_columns(entity_type: type) -> list[ColumnMetadata]:
    metadata = _find_table_metadata(entity_type)
    return list(metadata.columns) if metadata else []


def get_primary_key(entity_type: type) -> Optional[ColumnMetadata]:
    metadata = _find_table_metadata(entity_type)
    return metadata.primary_key if metadata else None


def get_foreign_keys(entity_type: type) -> list[ForeignKey]:
    metadata = _find_table_metadata(entity_type)
    return list(metadata.foreign_keys) if metadata else []


def enum_type_name(table_name: str, column_name: str) -> str:
    return f"{table_name}_{column_name}_enum"


def foreign_key_name(table_name: str, column_name: str) -> str:
    return f"fk_{table_name}_{column_name}"
