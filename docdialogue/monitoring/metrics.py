"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

ingests_total = Counter("docdialogue_ingests_total",
                        "Total number of ingest runs started")
ingest_failures_total = Counter(
    "docdialogue_ingest_failures_total",
    "Total number of ingest runs aborted, by failing stage",
    ["stage"])
ingest_warnings_total = Counter(
    "docdialogue_ingest_warnings_total",
    "Best-effort bookkeeping writes that failed, by stage",
    ["stage"])
ingest_stage_seconds = Histogram(
    "docdialogue_ingest_stage_seconds", "Ingest stage duration in seconds",
    ["stage"], buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0])

queries_total = Counter("docdialogue_queries_total",
                        "Total number of retrieval queries", ["endpoint"])
query_errors_total = Counter(
    "docdialogue_query_errors_total", "Total number of retrieval errors",
    ["endpoint"])
query_latency_seconds = Histogram(
    "docdialogue_query_latency_seconds", "Query latency in seconds",
    ["endpoint"], buckets=[0.1, 0.5, 1.0, 2.0, 5.0])

retry_attempts_total = Counter(
    "docdialogue_retry_attempts_total",
    "Attempts made by retry policies", ["operation"])
