from ..metrics.registry import (
    ENTITY_OPERATION_LATENCY_SECONDS,
    ENTITY_OPERATION_TOTAL,
    MIGRATION_LATENCY_SECONDS,
    MIGRATION_RUN_TOTAL,
)


def observe_entity_operation(table: str, op_type: str, status: str, latency_s: float) -> None:
    ENTITY_OPERATION_TOTAL.labels(table=table, op_type=op_type, status=status).inc()
    ENTITY_OPERATION_LATENCY_SECONDS.labels(table=table, op_type=op_type).observe(latency_s)


def observe_migration(status: str, latency_s: float) -> None:
    MIGRATION_RUN_TOTAL.labels(status=status).inc()
    MIGRATION_LATENCY_SECONDS.observe(latency_s)
