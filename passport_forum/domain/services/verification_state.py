"""Lifecycle rules for verifiable posts and comments."""

from typing import Dict, FrozenSet

from ..models.entity import EntityKind, EntityStatus

TRANSITIONS: Dict[EntityStatus, FrozenSet[EntityStatus]] = {
    EntityStatus.PENDING: frozenset({EntityStatus.POSTED, EntityStatus.FAILED}),
    EntityStatus.POSTED: frozenset(),
    EntityStatus.FAILED: frozenset(),
}


class InvalidTransitionError(Exception):
    """A status change the lifecycle does not allow."""

    def __init__(self, current: EntityStatus, target: EntityStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from {current.value} to {target.value}")


class EntityAlreadyFinalizedError(Exception):
    """A callback arrived for an entity that already left the pending state."""

    def __init__(self, kind: EntityKind, entity_id: str, status: EntityStatus = None):
        self.kind = kind
        self.entity_id = entity_id
        self.status = status
        state = f" ({status.value})" if status else ""
        super().__init__(f"{kind.value} {entity_id} was already finalized{state}")


def is_terminal(status: EntityStatus) -> bool:
    return not TRANSITIONS[status]


def can_transition(current: EntityStatus, target: EntityStatus) -> bool:
    """Check whether ``current -> target`` is a legal lifecycle step."""
    return target in TRANSITIONS[current]


def ensure_transition(current: EntityStatus, target: EntityStatus) -> EntityStatus:
    """Validate a lifecycle step.

    Returns:
        The target status

    Raises:
        InvalidTransitionError: If the step is not allowed
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target
