"""Prometheus metrics for decision mix, representment flow and external dispatch"""

from prometheus_client import Counter, Histogram

# Decision metrics
decision_counter = Counter(
    "chargeback_decision_total",
    "Chargeback policy decisions made",
    ["decision_kind", "rule"],
)

idempotent_replay_counter = Counter(
    "chargeback_decision_replays_total",
    "Evaluations answered from an existing decision",
)

# Representment metrics
transition_counter = Counter(
    "representment_transitions_total",
    "Representment state transitions applied",
    ["event", "target"],
)

rejected_transition_counter = Counter(
    "representment_rejected_transitions_total",
    "Transitions refused because of the current state",
    ["event"],
)

credit_reversal_counter = Counter(
    "temporary_credit_reversals_total",
    "Temporary credits reversed after the bank accepted a representment",
)

# Dispatch metrics
dispatch_latency_histogram = Histogram(
    "dispatch_latency_seconds",
    "External side-effect call latency",
    ["kind"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

dispatch_failure_counter = Counter(
    "dispatch_failures_total",
    "Failed external side-effect attempts",
    ["kind"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_decision(decision_kind: str, rule_id: str, replayed: bool = False) -> None:
    """Record decision mix; replays are counted separately so the mix is not inflated"""
    if replayed:
        idempotent_replay_counter.inc()
        return
    decision_counter.labels(decision_kind=decision_kind, rule=rule_id).inc()


def record_transition(event: str, target: str) -> None:
    transition_counter.labels(event=event, target=target).inc()
