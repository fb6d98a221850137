"""Prometheus metrics for the Vulnerability Router."""

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

vulnerability_reports_total = Counter(
    "vulnerability_reports_total",
    "Total number of vulnerability reports by severity and type",
    ["severity", "type"],
)

vulnrouter_messages_rejected_total = Counter(
    "vulnrouter_messages_rejected_total",
    "Total inbound messages rejected before routing",
    ["reason"],  # decode_error
)

# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

vulnrouter_routing_decisions_total = Counter(
    "vulnrouter_routing_decisions_total",
    "Total routing decisions by category and outcome",
    ["category", "outcome"],  # dispatched | suppressed
)

vulnrouter_config_updates_total = Counter(
    "vulnrouter_config_updates_total",
    "Total routing rule replacements applied by operators",
    ["category"],
)

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

vulnrouter_notifications_total = Counter(
    "vulnrouter_notifications_total",
    "Total outbound notification attempts",
    ["status"],  # sent | http_error | timeout | transport_error | skipped
)

vulnrouter_notification_latency_seconds = Histogram(
    "vulnrouter_notification_latency_seconds",
    "Outbound notification latency in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)
