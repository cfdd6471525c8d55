from prometheus_client import Counter, Histogram

# Low-cardinality labels only: operation name and error code, never paths.
OPERATIONS = Counter(
    "storage_operations_total",
    "Total storage operations",
    ["operation", "outcome"],
)

LATENCY = Histogram(
    "storage_operation_duration_seconds",
    "Storage operation latency in seconds",
    ["operation"],
)


def record_operation(operation: str, outcome: str, elapsed: float) -> None:
    OPERATIONS.labels(operation, outcome).inc()
    LATENCY.labels(operation).observe(elapsed)
