class OrmDayError(Exception):
    """Base exception for ormday errors."""


class MetadataError(OrmDayError):
    """Missing or invalid table, column, primary-key or foreign-key declaration."""


class SequenceGapError(OrmDayError):
    """A migration version between the ledger and the highest registered one has no handler."""

    def __init__(self, version: int) -> None:
        super().__init__(f"Migration {version} not found!")
        self.version = version
