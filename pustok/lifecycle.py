"""Lifecycle states shared by every catalog entity.

An entity starts ``NEW`` until it is flushed, is ``ACTIVE`` or ``INACTIVE``
depending on its soft-delete flag, and ends ``DELETED`` once the row is gone.
A hard delete is only reachable from ``INACTIVE``.
"""

import enum


class Lifecycle(str, enum.Enum):
    NEW = "new"
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


_TRANSITIONS: dict[Lifecycle, frozenset[Lifecycle]] = {
    Lifecycle.NEW: frozenset({Lifecycle.ACTIVE}),
    Lifecycle.ACTIVE: frozenset({Lifecycle.INACTIVE}),
    Lifecycle.INACTIVE: frozenset({Lifecycle.ACTIVE, Lifecycle.DELETED}),
    Lifecycle.DELETED: frozenset(),
}


class LifecycleError(ValueError):
    def __init__(self, current: Lifecycle, target: Lifecycle):
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


def can_transition(current: Lifecycle, target: Lifecycle) -> bool:
    return target in _TRANSITIONS[current]


def transition(current: Lifecycle, target: Lifecycle) -> Lifecycle:
    if not can_transition(current, target):
        raise LifecycleError(current, target)
    return target


def toggled(current: Lifecycle) -> Lifecycle:
    """Target state of a soft-delete toggle."""
    if current is Lifecycle.ACTIVE:
        return transition(current, Lifecycle.INACTIVE)
    return transition(current, Lifecycle.ACTIVE)
