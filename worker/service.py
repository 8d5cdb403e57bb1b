"""
File: worker/service.py
Resource service: validation and CRUD over a worker's in-memory store.

Every successful create, update and delete publishes exactly one
MutationEvent. Reads and rejected calls publish nothing.
"""
import logging
from functools import wraps
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from common.errors import InvalidBody, InvalidIdentifier, NotFound, ServiceError
from common.metrics import worker_metrics
from common.models import MutationEvent, OperationType, User, UserDraft
from common.store import ResourceStore
from common.utils import generate_id, is_valid_uuid

logger = logging.getLogger("worker.service")

EventPublisher = Callable[[MutationEvent], None]


def tracked(operation: str) -> Callable:
    """
    Decorator that counts service calls by operation and outcome.

    The outcome is "ok" or the name of the domain error that was raised.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                result = func(*args, **kwargs)
            except ServiceError as e:
                worker_metrics["operations"].labels(operation=operation, outcome=type(e).__name__).inc()
                raise
            worker_metrics["operations"].labels(operation=operation, outcome="ok").inc()
            return result
        return wrapper
    return decorator


def parse_draft(draft: Any) -> UserDraft:
    """
    Validate a create/update payload.

    Args:
        draft: Raw JSON body (bytes or str) or an already decoded object

    Returns:
        UserDraft: The validated draft

    Raises:
        InvalidBody: If the payload is not a JSON object with a text
            username, a numeric age and a list of text hobbies
    """
    try:
        if isinstance(draft, (bytes, bytearray, str)):
            return UserDraft.model_validate_json(draft)
        return UserDraft.model_validate(draft)
    except ValidationError as e:
        raise InvalidBody(f"{e.error_count()} validation error(s)") from e


class UserService:
    """
    CRUD operations on one resource store.
    """

    def __init__(self, store: ResourceStore, publish: Optional[EventPublisher] = None):
        """
        Args:
            store: Store the service operates on
            publish: Receives the event of every successful mutation;
                None when running without a coordinator
        """
        self.store = store
        self.publish = publish

    @tracked("list")
    def list(self) -> List[User]:
        return self.store.all()

    @tracked("get")
    def get(self, user_id: str) -> User:
        return self._require_user(user_id)

    @tracked("create")
    def create(self, draft: Any) -> User:
        body = parse_draft(draft)
        user = User(id=generate_id(), **body.model_dump())
        self.store.append(user)
        self._emit(OperationType.CREATE, user)
        return user

    @tracked("update")
    def update(self, user_id: str, draft: Any) -> User:
        # Identifier and existence are checked before the body is decoded
        current = self._require_user(user_id)
        body = parse_draft(draft)
        user = User(id=current.id, **body.model_dump())
        self.store.replace(user)
        self._emit(OperationType.UPDATE, user)
        return user

    @tracked("delete")
    def delete(self, user_id: str) -> None:
        user = self._require_user(user_id)
        self.store.remove(user.id)
        self._emit(OperationType.DELETE, user)

    def _require_user(self, user_id: str) -> User:
        if not is_valid_uuid(user_id):
            raise InvalidIdentifier(user_id)

        user = self.store.find(user_id)
        if user is None:
            raise NotFound(user_id)
        return user

    def _emit(self, operation: OperationType, user: User) -> None:
        worker_metrics["store_size"].set(len(self.store))
        logger.debug(f"{operation.value} {user.id}")
        if self.publish is not None:
            self.publish(MutationEvent(operation=operation, record=user))
