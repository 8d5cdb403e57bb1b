"""
Prometheus metrics for the coordinator and the workers.
"""
from prometheus_client import Counter, Gauge


# Coordinator metrics
coordinator_metrics = {
    "dispatches": Counter(
        "users_cluster_dispatches_total",
        "Requests dispatched to workers",
        ["worker"]
    ),
    "dispatch_errors": Counter(
        "users_cluster_dispatch_errors_total",
        "Requests that could not be delivered to the selected worker",
        ["worker"]
    ),
    "events": Counter(
        "users_cluster_replication_events_total",
        "Mutation events applied to the authoritative mirror",
        ["operation"]
    ),
    "mirror_size": Gauge(
        "users_cluster_mirror_size",
        "Number of users in the authoritative mirror"
    ),
    "alive_workers": Gauge(
        "users_cluster_alive_workers",
        "Number of worker processes still running"
    )
}


# Worker metrics
worker_metrics = {
    "operations": Counter(
        "users_worker_operations_total",
        "Resource service calls",
        ["operation", "outcome"]
    ),
    "snapshots": Counter(
        "users_worker_snapshots_total",
        "Replication snapshots applied to the local store"
    ),
    "store_size": Gauge(
        "users_worker_store_size",
        "Number of users in the local store"
    )
}


# Replication channel metrics
channel_metrics = {
    "deliveries": Counter(
        "users_replication_deliveries_total",
        "Replication messages handled by a channel",
        ["channel", "result"]  # delivered, dropped_unreachable, dropped_overflow
    )
}
