"""
Prometheus metrics for the Loan Engine.
"""

from prometheus_client import Counter, Histogram

loan_operations = Counter(
    'loan_engine_operations_total',
    'Loan engine operations by outcome',
    ['operation', 'outcome']
)

loan_transitions = Counter(
    'loan_engine_state_transitions_total',
    'Loan state transitions',
    ['from_state', 'to_state']
)

notifications_sent = Counter(
    'loan_engine_notifications_total',
    'Notification dispatch attempts by channel and outcome',
    ['channel', 'outcome']
)

invested_amount = Counter(
    'loan_engine_invested_amount_total',
    'Total amount invested across all loans'
)

api_request_duration = Histogram(
    'loan_engine_api_request_duration_seconds',
    'API request duration',
    ['method', 'endpoint', 'status'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)


class MetricsCollector:
    """Records loan engine metrics."""

    def record_operation(self, operation: str, outcome: str):
        loan_operations.labels(operation=operation, outcome=outcome).inc()

    def record_transition(self, from_state: str, to_state: str):
        loan_transitions.labels(from_state=from_state, to_state=to_state).inc()

    def record_notification(self, channel: str, success: bool):
        notifications_sent.labels(channel=channel, outcome="sent" if success else "failed").inc()

    def record_investment(self, amount: float):
        invested_amount.inc(amount)

    def record_api_request(self, method: str, endpoint: str, status: int, duration: float):
        api_request_duration.labels(method=method, endpoint=endpoint, status=str(status)).observe(duration)


# Global metrics collector instance
metrics_collector = MetricsCollector()
