"""
Metrics definitions for PitGuard.

This module defines Prometheus metrics for monitoring
the prediction loop, alerting and live stream fan-out.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
ticks_total = Counter(
    "update_ticks_total",
    "Number of completed update-loop ticks"
)

tick_failures = Counter(
    "update_tick_failures_total",
    "Number of update-loop ticks that raised"
)

alerts_emitted = Counter(
    "alerts_emitted_total",
    "Number of alerts appended to the live feed",
    ["kind"]
)

compliance_records = Counter(
    "compliance_records_total",
    "Number of compliance log records appended",
    ["status"]
)

events_published = Counter(
    "stream_events_published_total",
    "Number of stream events published to the broadcast channel",
    ["type"]
)

subscribers_dropped = Counter(
    "stream_subscribers_dropped_total",
    "Number of subscribers dropped because their queue overflowed"
)

ingest_rejected = Counter(
    "ingest_rejected_total",
    "Number of ingestion payloads rejected by validation",
    ["kind"]
)

notify_failures = Counter(
    "notify_failures_total",
    "Number of failed outbound alert deliveries"
)

# 히스토그램 메트릭
tick_seconds = Histogram(
    "update_tick_duration_seconds",
    "Time spent in one update-loop tick",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

# 게이지 메트릭
active_subscribers = Gauge(
    "stream_active_subscribers",
    "Current number of live stream subscribers"
)

high_risk_zones = Gauge(
    "high_risk_zones",
    "Number of zones currently classified high"
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Service uptime in seconds"
)
