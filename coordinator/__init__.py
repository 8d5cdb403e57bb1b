"""
Coordinator (primary) for the users cluster.

The coordinator accepts all client traffic and never runs CRUD logic
itself. It spawns a fixed pool of worker processes, proxies each inbound
request to the next worker in round-robin order, and relays mutation
events: every event is applied to an authoritative mirror and the
resulting snapshot is pushed to every worker.
"""

__version__ = "1.0.0"
