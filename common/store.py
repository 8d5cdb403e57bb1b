"""
In-memory resource store.

One instance is owned by each worker process. The coordinator keeps one
more as its authoritative mirror, fed only through apply().
"""
import logging
from typing import Iterable, List, Optional

from common.models import MutationEvent, OperationType, User

logger = logging.getLogger(__name__)


class ResourceStore:
    """
    Ordered collection of users, kept in insertion order.

    The store is confined to the event loop of the process that owns it,
    so no locking is done here.
    """

    def __init__(self, users: Optional[Iterable[User]] = None):
        self._users: List[User] = list(users or [])

    def __len__(self) -> int:
        return len(self._users)

    def all(self) -> List[User]:
        """Return a copy of the collection."""
        return list(self._users)

    def find(self, user_id: str) -> Optional[User]:
        for user in self._users:
            if user.id == user_id:
                return user
        return None

    def append(self, user: User) -> None:
        self._users.append(user)

    def replace(self, user: User) -> bool:
        """
        Replace the record with the same id, keeping its position.

        Returns:
            bool: True if a record was replaced, False if none matched
        """
        for position, current in enumerate(self._users):
            if current.id == user.id:
                self._users[position] = user
                return True
        return False

    def remove(self, user_id: str) -> Optional[User]:
        """Remove and return the record with the given id, if any."""
        for position, current in enumerate(self._users):
            if current.id == user_id:
                return self._users.pop(position)
        return None

    def replace_all(self, users: Iterable[User]) -> None:
        """Swap the whole collection for a snapshot received from elsewhere."""
        self._users = list(users)

    def apply(self, event: MutationEvent) -> None:
        """
        Apply a mutation event produced by some worker.

        Applying the same event twice leaves the store unchanged, so a
        create for a known id behaves like an update and an update for an
        unknown id is ignored.
        """
        record = event.record

        if event.operation == OperationType.CREATE:
            if not self.replace(record):
                self.append(record)
        elif event.operation == OperationType.UPDATE:
            if not self.replace(record):
                logger.warning(f"Update for unknown user {record.id} ignored")
        elif event.operation == OperationType.DELETE:
            self.remove(record.id)
