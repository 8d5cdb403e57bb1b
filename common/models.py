"""
Data models shared by the coordinator and the workers.
"""
from enum import Enum
from typing import List, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr


class OperationType(str, Enum):
    """State-changing operations that produce a mutation event."""
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class UserDraft(BaseModel):
    """Create/update payload: a user without its server-assigned id."""
    # Strict types so that "20" is not coerced into an age or true into a number;
    # NaN and infinities cannot be rendered back as JSON
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    username: StrictStr
    age: Union[StrictInt, StrictFloat]
    hobbies: List[StrictStr]


class User(UserDraft):
    """A stored user record."""
    id: str


class MutationEvent(BaseModel):
    """Record of a single successful create, update or delete."""
    operation: OperationType
    record: User


class Snapshot(BaseModel):
    """Complete view of the data set pushed from the coordinator to a worker."""
    users: List[User] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: int
