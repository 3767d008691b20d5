"""Add, move, reposition and remove titles within a list group.

Each public operation runs as one transaction on the caller's session:
the list group row is locked first so concurrent operations on the same
group serialize, every read re-fetches current state, and the session
is committed only when the whole sequence (shifts, moved-item write,
normalization) has succeeded. Any failure rolls the transaction back
and propagates; nothing is retried here.

Normalization runs after every structural change. It renumbers a
partition to 0..N-1 in display order and is a no-op when positions are
already dense, so it also repairs drift left by writes made outside
these operations.
"""

import logging
import uuid
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import memberships
from .errors import NotFoundError, StoreError, ValidationError
from .models import ListMembership, ListType
from .positions import append_position, close_gap, move_across_lists, reorder_within_list

logger = logging.getLogger(__name__)


def parse_list_type(value) -> ListType:
    if isinstance(value, ListType):
        return value
    try:
        return ListType(str(value))
    except ValueError:
        raise ValidationError("Invalid list type") from None


def _check_position(value, upper: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Position must be a non-negative integer")
    if value < 0:
        raise ValidationError("Position must be a non-negative integer")
    if value > upper:
        raise ValidationError(f"Position {value} is out of range (max {upper})")
    return value


@asynccontextmanager
async def _list_group_transaction(db: AsyncSession, list_group_id: uuid.UUID, owned: bool):
    if not owned:
        raise NotFoundError("List group not found")
    try:
        list_group = await memberships.lock_list_group(db, list_group_id)
        if list_group is None:
            raise NotFoundError("List group not found")
        yield list_group
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Commit failed for list group %s", list_group_id)
        raise StoreError("The list could not be updated right now. Please try again.") from exc
    except Exception:
        await db.rollback()
        raise


async def normalize_positions(db: AsyncSession, list_group_id: uuid.UUID, list_type: ListType) -> int:
    """Renumber one partition to 0..N-1 in display order; returns rows rewritten."""
    rewritten = 0
    members = await memberships.list_members(db, list_group_id, list_type)
    for index, member in enumerate(members):
        if member.position != index:
            await memberships.update_position(db, member.title_id, list_group_id, index)
            rewritten += 1
    if rewritten:
        logger.warning(
            "Normalized %d position(s) in list group %s (%s)",
            rewritten,
            list_group_id,
            ListType(list_type).value,
        )
    return rewritten


async def add_to_list(
    db: AsyncSession,
    title_id: uuid.UUID,
    list_group_id: uuid.UUID,
    list_type,
    *,
    owned: bool,
) -> ListMembership:
    list_type = parse_list_type(list_type)
    async with _list_group_transaction(db, list_group_id, owned):
        if not await memberships.title_exists(db, title_id):
            raise NotFoundError("Title not found")
        if await memberships.get_membership(db, title_id, list_group_id) is not None:
            raise ValidationError("Title already exists in this list group")

        position = append_position(await memberships.max_position(db, list_group_id, list_type))
        membership = await memberships.upsert_membership(db, title_id, list_group_id, list_type, position)
        logger.debug("Added title %s to %s at %d in list group %s", title_id, list_type.value, position, list_group_id)
    return membership


async def _reposition(
    db: AsyncSession,
    membership: ListMembership,
    new_position: int,
) -> None:
    list_type = ListType(membership.list_type)
    shifts = reorder_within_list(list_type, membership.position, new_position)
    for shift in shifts:
        await memberships.shift_positions(db, membership.list_group_id, shift, exclude_title_id=membership.title_id)
    await memberships.update_position(db, membership.title_id, membership.list_group_id, new_position)


async def move_to_list(
    db: AsyncSession,
    title_id: uuid.UUID,
    list_group_id: uuid.UUID,
    new_list_type,
    new_position: int | None = None,
    *,
    owned: bool,
) -> ListMembership:
    new_list_type = parse_list_type(new_list_type)
    async with _list_group_transaction(db, list_group_id, owned):
        membership = await memberships.get_membership(db, title_id, list_group_id)
        if membership is None:
            raise NotFoundError("Title not in this list group")
        old_list_type = ListType(membership.list_type)
        old_position = membership.position

        if old_list_type == new_list_type:
            count = await memberships.count_members(db, list_group_id, old_list_type)
            target = old_position if new_position is None else _check_position(new_position, count - 1)
            await _reposition(db, membership, target)
        else:
            if new_position is None:
                target = append_position(await memberships.max_position(db, list_group_id, new_list_type))
            else:
                count = await memberships.count_members(db, list_group_id, new_list_type)
                target = _check_position(new_position, count)
            for shift in move_across_lists(old_list_type, old_position, new_list_type, target):
                await memberships.shift_positions(db, list_group_id, shift, exclude_title_id=title_id)
            await memberships.upsert_membership(db, title_id, list_group_id, new_list_type, target)

        await normalize_positions(db, list_group_id, old_list_type)
        if old_list_type != new_list_type:
            await normalize_positions(db, list_group_id, new_list_type)
        await memberships.touch_list_group(db, list_group_id)
        moved = await memberships.get_membership(db, title_id, list_group_id)
        logger.debug(
            "Moved title %s from %s[%d] to %s[%d] in list group %s",
            title_id,
            old_list_type.value,
            old_position,
            new_list_type.value,
            moved.position,
            list_group_id,
        )
    return moved


async def update_position_within_list(
    db: AsyncSession,
    title_id: uuid.UUID,
    list_group_id: uuid.UUID,
    new_position: int,
    *,
    owned: bool,
) -> ListMembership:
    if isinstance(new_position, bool) or not isinstance(new_position, int) or new_position < 0:
        raise ValidationError("Position must be a non-negative integer")
    async with _list_group_transaction(db, list_group_id, owned):
        membership = await memberships.get_membership(db, title_id, list_group_id)
        if membership is None:
            raise NotFoundError("Title not in this list group")
        if membership.position == new_position:
            return membership

        list_type = ListType(membership.list_type)
        count = await memberships.count_members(db, list_group_id, list_type)
        _check_position(new_position, count - 1)
        await _reposition(db, membership, new_position)
        await normalize_positions(db, list_group_id, list_type)
        await memberships.touch_list_group(db, list_group_id)
        updated = await memberships.get_membership(db, title_id, list_group_id)
    return updated


async def remove_from_list(
    db: AsyncSession,
    title_id: uuid.UUID,
    list_group_id: uuid.UUID,
    *,
    owned: bool,
) -> None:
    async with _list_group_transaction(db, list_group_id, owned):
        membership = await memberships.get_membership(db, title_id, list_group_id)
        if membership is None:
            raise NotFoundError("Title not in this list group")
        list_type = ListType(membership.list_type)
        removed_position = membership.position

        await memberships.remove_membership(db, title_id, list_group_id)
        for shift in close_gap(list_type, removed_position):
            await memberships.shift_positions(db, list_group_id, shift)
        await normalize_positions(db, list_group_id, list_type)
        await memberships.touch_list_group(db, list_group_id)
        logger.debug("Removed title %s from %s in list group %s", title_id, list_type.value, list_group_id)
