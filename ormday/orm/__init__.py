from .metadata import (
    ColumnKind,
    ColumnMetadata,
    DateColumn,
    EnumColumn,
    ForeignKey,
    NumberColumn,
    OnDelete,
    StringColumn,
    TableMetadata,
    TimestampColumn,
    declare_table,
    get_columns,
    get_foreign_keys,
    get_primary_key,
    get_table_metadata,
    table,
)
from .store import EntityStore
from .tracking import TrackedEntity, as_dict, get_changes, is_dirty, is_new, mark_clean, track

__all__ = [
    "ColumnKind",
    "ColumnMetadata",
    "DateColumn",
    "EnumColumn",
    "EntityStore",
    "ForeignKey",
    "NumberColumn",
    "OnDelete",
    "StringColumn",
    "TableMetadata",
    "TimestampColumn",
    "TrackedEntity",
    "as_dict",
    "declare_table",
    "get_changes",
    "get_columns",
    "get_foreign_keys",
    "get_primary_key",
    "get_table_metadata",
    "is_dirty",
    "is_new",
    "mark_clean",
    "table",
    "track",
]
