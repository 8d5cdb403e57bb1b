"""
Shared building blocks for the coordinator and worker processes.

Contains the data models exchanged between processes, the domain errors,
the in-memory resource store, the replication channel and the ambient
logging, metrics and environment helpers.
"""

__version__ = "1.0.0"
