from __future__ import annotations

from prometheus_client import Counter, Histogram

REPORTS_INGESTED = Counter(
    "dmarc_reports_ingested_total",
    "Incoming reports by outcome",
    ["outcome"],
)
REPORTS_DELETED = Counter(
    "dmarc_reports_deleted_total",
    "Reports removed by bulk delete or retention",
)
DOMAINS_PROVISIONED = Counter(
    "dmarc_domains_provisioned_total",
    "Domains created automatically while saving a report",
)
MIGRATION_STEPS = Counter(
    "dmarc_migration_steps_total",
    "Schema upgrade steps applied",
    ["step"],
)
QUERY_LATENCY = Histogram(
    "dmarc_query_duration_seconds",
    "Report store query latency",
    ["operation"],
)
