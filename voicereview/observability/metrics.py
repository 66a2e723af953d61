"""
Prometheus metrics for the review assignment service.
"""

from prometheus_client import Counter, Histogram, Gauge


# ── Full scans ───────────────────────────────────────────────
full_scan_pages_total = Counter(
    "full_scan_pages_total",
    "Page requests issued by the paginated full-scan reader",
    ["label"],
)

full_scan_rows = Histogram(
    "full_scan_rows",
    "Rows returned by a complete full scan",
    ["label"],
    buckets=[10, 100, 1000, 5000, 10000, 50000, 100000, 500000],
)

# ── Eligibility ──────────────────────────────────────────────
eligible_queue_size = Histogram(
    "eligible_queue_size",
    "Recordings eligible for a reviewer per queue request",
    buckets=[0, 1, 10, 50, 100, 500, 1000, 5000],
)

# ── Review commits ───────────────────────────────────────────
review_commits_total = Counter(
    "review_commits_total",
    "Review commit attempts by outcome",
    ["outcome"],
)

review_commit_duration_seconds = Histogram(
    "review_commit_duration_seconds",
    "Time to run the review commit protocol",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1, 5],
)

# ── Contributions ────────────────────────────────────────────
contribution_cache_refresh_total = Counter(
    "contribution_cache_refresh_total",
    "Rebuilds of the sentence contributor mapping",
)

recordings_submitted_total = Counter(
    "recordings_submitted_total",
    "Recording submissions by result",
    ["result"],
)

# ── Auditor ──────────────────────────────────────────────────
audit_duplicate_reviews_deleted_total = Counter(
    "audit_duplicate_reviews_deleted_total",
    "Duplicate review rows deleted by the auditor",
)

audit_recordings_fixed_total = Counter(
    "audit_recordings_fixed_total",
    "Recordings whose review set or status was repaired by the auditor",
)

audit_last_duplicate_recordings = Gauge(
    "audit_last_duplicate_recordings",
    "Recordings with more than one review found by the last audit",
)
