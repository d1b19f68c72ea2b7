"""Prometheus exporter helpers."""

from __future__ import annotations

from prometheus_client import Counter, Gauge


generation_runs_total = Counter(
    "generation_runs_total",
    "Generation runs by terminal outcome.",
    ["outcome"],
)

job_submissions_total = Counter(
    "job_submissions_total",
    "Image generation jobs submitted to the backend.",
)

poll_errors_total = Counter(
    "poll_errors_total",
    "Job status polls that failed, split by transient and permanent errors.",
    ["kind"],
)

active_polls = Gauge(
    "active_polls",
    "Number of currently running job poll timers.",
)
