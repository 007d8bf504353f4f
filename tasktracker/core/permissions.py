"""
Ownership-based authorization.

``decide`` is a pure function over an already-loaded resource and the caller;
it never touches the database. Route guards in ``core.dependencies`` load the
resource first (absent resource -> 404) and only then ask for a decision
(present but denied -> 403), so the two failures never blur together.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass

from tasktracker.core.exceptions import ForbiddenException
from tasktracker.models.task import Task
from tasktracker.models.user import User


class Decision(enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Identity:
    """The caller as seen by the guard: who they are and what role they hold."""

    id: uuid.UUID
    role: str

    @classmethod
    def of(cls, user: User) -> "Identity":
        return cls(id=user.id, role=user.role)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def decide(identity: Identity, resource: Task | User) -> Decision:
    """Evaluate the ownership rules in order and return the first match."""
    if identity.is_admin:
        return Decision.ALLOW
    if isinstance(resource, Task):
        if resource.is_owned_by(identity.id):
            return Decision.ALLOW
        return Decision.DENY
    if isinstance(resource, User):
        if resource.id == identity.id:
            return Decision.ALLOW
        return Decision.DENY
    return Decision.DENY


def ensure_allowed(identity: Identity, resource: Task | User) -> None:
    """Raise ForbiddenException unless ``decide`` allows the caller."""
    if decide(identity, resource) is Decision.DENY:
        kind = "task" if isinstance(resource, Task) else "resource"
        raise ForbiddenException(f"Not authorized to modify this {kind}")
