import os
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .db.helpers import _validate_identifier


@dataclass
class DbConfig:
    database_url: str
    schema: str = "public"
    ledger_table: str = "schema_versions"
    echo: bool = False

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.database_url:
            raise ValueError("database_url must be set")
        if self.database_url.startswith("postgres://"):
            # SQLAlchemy only accepts the "postgresql" scheme
            self.database_url = "postgresql://" + self.database_url[len("postgres://"):]
        if not self.database_url.startswith("postgresql"):
            raise ValueError(
                f"Unsupported database URL {self.database_url!r}: only PostgreSQL is supported"
            )
        _validate_identifier(self.schema, "schema")
        _validate_identifier(self.ledger_table, "ledger_table")

    @classmethod
    def from_env(cls) -> "DbConfig":
        url = os.environ.get("DATABASE_URL", "")
        if not url:
            raise ValueError("DATABASE_URL environment variable is not set")
        return cls(
            database_url=url,
            schema=os.environ.get("ORMDAY_SCHEMA", "public"),
            ledger_table=os.environ.get("ORMDAY_LEDGER_TABLE", "schema_versions"),
        )


@dataclass
class MigrationConfig:
    migrations_dir: str = "migrations"

    def __post_init__(self) -> None:
        if not self.migrations_dir:
            raise ValueError("migrations_dir cannot be empty")


def make_engine(config: DbConfig) -> Engine:
    """
    Engine whose connections put ``config.schema`` first on the search_path.

    Entity tables, enum types and the ledger are referenced unqualified, so
    the migrator, the entity manager and the introspector all see the same
    schema.
    """
    return create_engine(
        config.database_url,
        pool_pre_ping=True,
        echo=config.echo,
        connect_args={"options": f"-csearch_path={config.schema}"},
    )
