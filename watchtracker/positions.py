"""Position arithmetic for the three ordered lists of a list group.

Nothing here touches the database. Each function describes the
position changes an operation needs as :class:`PositionShift` values,
which the membership store turns into bulk updates.
"""

from dataclasses import dataclass

from .models import ListType

EMPTY_PARTITION = -1


@dataclass(frozen=True)
class PositionShift:
    """Add ``delta`` to every member of ``list_type`` whose position is in [lower, upper].

    A bound of ``None`` leaves that side of the range open.
    """

    list_type: ListType
    delta: int
    lower: int | None = None
    upper: int | None = None

    def applies_to(self, position: int) -> bool:
        if self.lower is not None and position < self.lower:
            return False
        if self.upper is not None and position > self.upper:
            return False
        return True


def append_position(current_max: int) -> int:
    """Position for a title appended to a partition whose highest position is ``current_max``."""
    if current_max < EMPTY_PARTITION:
        raise ValueError(f"current_max must be >= {EMPTY_PARTITION}, got {current_max}")
    return current_max + 1


def reorder_within_list(list_type: ListType, old_position: int, new_position: int) -> list[PositionShift]:
    """Sibling shifts for moving one member from ``old_position`` to ``new_position``.

    Moving later pulls the members in (old, new] back by one; moving
    earlier pushes the members in [new, old) forward by one. The moved
    member itself is excluded by the caller and written separately.
    """
    if old_position == new_position:
        return []
    if old_position < new_position:
        return [PositionShift(list_type, -1, lower=old_position + 1, upper=new_position)]
    return [PositionShift(list_type, 1, lower=new_position, upper=old_position - 1)]


def move_across_lists(
    source_type: ListType,
    old_position: int,
    destination_type: ListType,
    target_position: int,
) -> list[PositionShift]:
    """Shifts for moving a member out of one list and into another.

    The source list closes the vacated slot, the destination opens one
    at ``target_position``.
    """
    if source_type == destination_type:
        raise ValueError("move_across_lists needs two different list types")
    return [
        PositionShift(source_type, -1, lower=old_position + 1),
        PositionShift(destination_type, 1, lower=target_position),
    ]


def close_gap(list_type: ListType, removed_position: int) -> list[PositionShift]:
    return [PositionShift(list_type, -1, lower=removed_position + 1)]

