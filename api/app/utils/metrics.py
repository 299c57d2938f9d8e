"""
Prometheus metrics for the AlertCase API.

Uses prometheus-fastapi-instrumentator for HTTP metrics and prometheus_client
counters for the alert pipeline.

Metrics exposed at /metrics endpoint:
- HTTP request count by method, path, status
- HTTP request latency histogram
- HTTP requests in progress
- Webhook and case business counters
"""

from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator, metrics

from app.config import get_settings

METRIC_NAMESPACE = "alertcase"

# Business counters, incremented by the webhook pipeline
WEBHOOK_ALERTS = Counter(
    "alertcase_webhook_alerts_total",
    "Alerts received through Grafana webhooks",
    ["status"],  # firing, resolved
)

CASES_CREATED = Counter(
    "alertcase_cases_created_total",
    "Cases created from alerts",
    ["severity"],
)

ALERTS_DEDUPLICATED = Counter(
    "alertcase_alerts_deduplicated_total",
    "Alert firings folded into an existing case",
)

ALERT_FAILURES = Counter(
    "alertcase_alert_failures_total",
    "Alerts that could not be processed",
)

CASES_RESOLVED_BY_WEBHOOK = Counter(
    "alertcase_cases_resolved_by_webhook_total",
    "Cases resolved by Grafana resolution webhooks",
)


def setup_prometheus(app) -> Instrumentator:
    """
    Configure Prometheus metrics for the FastAPI application.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator: Configured Prometheus instrumentator
    """
    settings = get_settings()

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/health", "/metrics"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.add(
        metrics.default(
            metric_namespace=METRIC_NAMESPACE,
            metric_subsystem="api",
            latency_lowr_buckets=[0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0],
        )
    )

    instrumentator.add(
        metrics.request_size(
            metric_namespace=METRIC_NAMESPACE,
            metric_subsystem="api",
        )
    )

    instrumentator.instrument(app)

    # Expose /metrics endpoint (only in non-production or with debug on)
    if not settings.is_production or settings.debug:
        instrumentator.expose(app, endpoint="/metrics", include_in_schema=False)

    return instrumentator
