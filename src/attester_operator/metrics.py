"""Prometheus metrics for the Attester Operator."""

from prometheus_client import Counter, Gauge, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "attester_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "attester_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

error_total = Counter(
    "attester_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

# Policy and signer metrics
policy_compilations_total = Counter(
    "attester_operator_policy_compilations_total",
    "Total number of policy compilations",
    ["result"],
)

secret_operations_total = Counter(
    "attester_operator_secret_operations_total",
    "Total number of signer secret operations",
    ["operation", "result"],
)

active_attesters = Gauge(
    "attester_operator_active_attesters",
    "Number of attesters currently published in the registry",
)

# Event filter metrics
filtered_events_total = Counter(
    "attester_operator_filtered_events_total",
    "Watch events suppressed before reconciliation",
    ["reason"],
)

# API call metrics
api_call_total = Counter(
    "attester_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "attester_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)
