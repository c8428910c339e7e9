"""Prometheus metrics for the ledger service, kept on a private registry."""
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest

registry = CollectorRegistry()

request_count = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=registry
)

request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=registry
)

ledger_postings = Counter(
    'ledger_postings_total',
    'Ledger transactions posted, by category and direction',
    ['category', 'direction'],
    registry=registry
)

settlements = Counter(
    'order_settlements_total',
    'Orders finalized and settled',
    registry=registry
)

settled_net_profit = Histogram(
    'order_settled_net_profit',
    'Net profit of settled orders',
    buckets=(0, 1000, 5000, 10000, 50000, 100000, 500000),
    registry=registry
)

conflicts = Counter(
    'ledger_conflicts_total',
    'Conditional updates that matched no row',
    ['operation'],
    registry=registry
)

incassations = Counter(
    'incassations_total',
    'Incassation requests by outcome',
    ['outcome'],
    registry=registry
)

rate_limit_exceeded = Counter(
    'rate_limit_exceeded_total',
    'Requests rejected by the per-actor limiter',
    ['actor_id'],
    registry=registry
)

notification_deliveries = Counter(
    'notification_deliveries_total',
    'Outbound notification attempts',
    ['status'],
    registry=registry
)

audit_logs_created = Counter(
    'audit_logs_created_total',
    'Audit rows written',
    ['action'],
    registry=registry
)

redis_connected = Gauge(
    'redis_connected',
    'Redis connection status (1=connected, 0=disconnected)',
    registry=registry
)

db_connected = Gauge(
    'db_connected',
    'Database connection status (1=connected, 0=disconnected)',
    registry=registry
)


def get_metrics_text() -> str:
    return generate_latest(registry).decode('utf-8')
