"""
Worker runtime for the users cluster.

A worker owns one in-memory replica of the user collection, serves the
CRUD API on its private port and reports every mutation to the
coordinator, which pushes the resulting snapshot back to all workers.

Key responsibilities:
- Validate drafts and identifiers
- Apply create/read/update/delete to the local store
- Forward mutation events to the coordinator (fire-and-forget)
- Replace the local store when a snapshot arrives
"""

__version__ = "1.0.0"
