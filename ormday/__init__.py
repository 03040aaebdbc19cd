from .orm import EntityStore, declare_table, table
from .db.entity_manager import EntityManager
from .db.session import DbSession
from .migrations import MigrationGenerator, Migrator, SchemaDiffer, SchemaIntrospector
from .errors import MetadataError, OrmDayError, SequenceGapError

__all__ = [
    "DbSession",
    "EntityManager",
    "EntityStore",
    "MetadataError",
    "MigrationGenerator",
    "Migrator",
    "OrmDayError",
    "SchemaDiffer",
    "SchemaIntrospector",
    "SequenceGapError",
    "declare_table",
    "table",
]
