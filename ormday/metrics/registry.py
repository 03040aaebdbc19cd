from prometheus_client import Counter, Histogram

ENTITY_OPERATION_TOTAL = Counter(
    "ormday_entity_operation_total",
    "Entity persistence operations by table, operation type and outcome",
    ["table", "op_type", "status"],
)

ENTITY_OPERATION_LATENCY_SECONDS = Histogram(
    "ormday_entity_operation_latency_seconds",
    "Latency of entity persistence operations",
    ["table", "op_type"],
)

MIGRATION_RUN_TOTAL = Counter(
    "ormday_migration_run_total",
    "Migration versions applied by outcome",
    ["status"],
)

MIGRATION_LATENCY_SECONDS = Histogram(
    "ormday_migration_latency_seconds",
    "Time spent applying a single migration version",
)
