"""Prometheus metric inventory.

HTTP metrics are fed by ``MetricsMiddleware``; the domain counters are
incremented where the decision is made (redeemer, issuer, guard, plan
enforcer).  Keeping every definition here gives one place to look when
building dashboards.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Membership & invitations
# ---------------------------------------------------------------------------

INVITES_ISSUED = Counter(
    "invites_issued_total",
    "Invite codes issued",
    ["kind"],  # "staff" or "parent"
)

INVITE_REDEMPTIONS = Counter(
    "invite_redemptions_total",
    "Invite redemption attempts by outcome",
    # outcome: joined, already_member, not_found, expired, exhausted,
    # inactive, linked, conflict
    ["kind", "outcome"],
)

ACCESS_DENIALS = Counter(
    "access_denials_total",
    "Requests rejected by the access guard",
    ["check"],  # super_admin, org_member, org_admin, child_access
)

PLAN_LIMIT_REJECTIONS = Counter(
    "plan_limit_rejections_total",
    "Mutations rejected by the plan limit enforcer",
    ["resource", "reason"],
)
