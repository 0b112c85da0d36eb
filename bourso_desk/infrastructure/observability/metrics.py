"""Prometheus metrics for sessions, transfers, DCA jobs and brokerage calls"""

from prometheus_client import Counter, Histogram

# Session metrics
session_transition_counter = Counter(
    "bourso_session_transitions_total",
    "Session state transitions",
    ["state"],
)

auth_failure_counter = Counter(
    "bourso_auth_failures_total",
    "Authentication failures",
    ["kind"],  # invalid_credentials | mfa_exhausted | other
)

mfa_challenge_counter = Counter(
    "bourso_mfa_challenges_total",
    "MFA challenges presented to the user",
    ["type"],
)

# Transfer metrics
transfer_counter = Counter(
    "bourso_transfers_total",
    "Transfer submissions",
    ["outcome"],  # succeeded | failed
)

# Job metrics
job_execution_counter = Counter(
    "bourso_job_executions_total",
    "DCA job executions",
    ["outcome"],  # succeeded | failed | skipped
)

# Brokerage adapter metrics
adapter_latency_histogram = Histogram(
    "brokerage_call_latency_seconds",
    "Brokerage adapter call latency",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

adapter_failure_counter = Counter(
    "brokerage_call_failures_total",
    "Failed brokerage adapter calls",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_session_transition(state: str) -> None:
    session_transition_counter.labels(state=state).inc()


def record_auth_failure(kind: str) -> None:
    auth_failure_counter.labels(kind=kind).inc()


def record_mfa_challenge(challenge_type: str) -> None:
    mfa_challenge_counter.labels(type=challenge_type or "unknown").inc()


def record_transfer(succeeded: bool) -> None:
    transfer_counter.labels(outcome="succeeded" if succeeded else "failed").inc()


def record_job_execution(outcome: str) -> None:
    job_execution_counter.labels(outcome=outcome).inc()
