"""Membership store: reads and writes of (title, list group) memberships.

Every function takes the request's ``AsyncSession`` and issues its own
statements; none of them commits. Reads always re-fetch from the
database so a caller never works from identity-map state left behind by
an earlier bulk update. Database failures surface as ``StoreError``.
"""

import functools
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import StoreError
from .models import ListGroup, ListMembership, ListType, Title
from .positions import EMPTY_PARTITION, PositionShift

logger = logging.getLogger(__name__)


def _store_call(fn):
    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception("Membership store call %s failed", fn.__name__)
            raise StoreError("The list could not be updated right now. Please try again.") from exc

    return wrapper


def _partition(list_group_id: uuid.UUID, list_type: ListType):
    return (
        ListMembership.list_group_id == list_group_id,
        ListMembership.list_type == ListType(list_type).value,
    )


@_store_call
async def lock_list_group(db: AsyncSession, list_group_id: uuid.UUID) -> ListGroup | None:
    """Row-lock the list group for the rest of the transaction."""
    return (
        await db.execute(
            select(ListGroup)
            .where(ListGroup.id == list_group_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


@_store_call
async def title_exists(db: AsyncSession, title_id: uuid.UUID) -> bool:
    count_value = await db.scalar(select(func.count(Title.id)).where(Title.id == title_id))
    return bool(count_value)


@_store_call
async def get_membership(db: AsyncSession, title_id: uuid.UUID, list_group_id: uuid.UUID) -> ListMembership | None:
    return (
        await db.execute(
            select(ListMembership)
            .where(
                ListMembership.title_id == title_id,
                ListMembership.list_group_id == list_group_id,
            )
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


@_store_call
async def list_members(db: AsyncSession, list_group_id: uuid.UUID, list_type: ListType) -> list[ListMembership]:
    """Members of one partition in display order.

    Ties on position only exist after a failed write; the most recently
    written member then sorts first.
    """
    rows = (
        await db.execute(
            select(ListMembership)
            .where(*_partition(list_group_id, list_type))
            .order_by(
                ListMembership.position.asc(),
                ListMembership.updated_at.desc(),
                ListMembership.title_id.asc(),
            )
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    return list(rows)


@_store_call
async def count_members(db: AsyncSession, list_group_id: uuid.UUID, list_type: ListType) -> int:
    count_value = await db.scalar(
        select(func.count(ListMembership.id)).where(*_partition(list_group_id, list_type))
    )
    return int(count_value or 0)


@_store_call
async def max_position(db: AsyncSession, list_group_id: uuid.UUID, list_type: ListType) -> int:
    value = await db.scalar(
        select(func.max(ListMembership.position)).where(*_partition(list_group_id, list_type))
    )
    return EMPTY_PARTITION if value is None else int(value)


@_store_call
async def touch_list_group(db: AsyncSession, list_group_id: uuid.UUID) -> None:
    await db.execute(
        update(ListGroup)
        .where(ListGroup.id == list_group_id)
        .values(updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )


@_store_call
async def upsert_membership(
    db: AsyncSession,
    title_id: uuid.UUID,
    list_group_id: uuid.UUID,
    list_type: ListType,
    position: int,
) -> ListMembership:
    now = datetime.now(timezone.utc)
    list_type = ListType(list_type)
    result = await db.execute(
        update(ListMembership)
        .where(
            ListMembership.title_id == title_id,
            ListMembership.list_group_id == list_group_id,
        )
        .values(list_type=list_type.value, position=position, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.add(
            ListMembership(
                title_id=title_id,
                list_group_id=list_group_id,
                list_type=list_type.value,
                position=position,
                added_at=now,
                updated_at=now,
            )
        )
        await db.flush()
    await touch_list_group(db, list_group_id)
    membership = await get_membership(db, title_id, list_group_id)
    return membership


@_store_call
async def update_position(db: AsyncSession, title_id: uuid.UUID, list_group_id: uuid.UUID, new_position: int) -> bool:
    result = await db.execute(
        update(ListMembership)
        .where(
            ListMembership.title_id == title_id,
            ListMembership.list_group_id == list_group_id,
        )
        .values(position=new_position, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


@_store_call
async def shift_positions(
    db: AsyncSession,
    list_group_id: uuid.UUID,
    shift: PositionShift,
    *,
    exclude_title_id: uuid.UUID | None = None,
) -> int:
    """Apply one ``PositionShift`` to its partition; returns the number of rows moved."""
    if shift.delta == 0:
        return 0
    conditions = list(_partition(list_group_id, shift.list_type))
    if shift.lower is not None:
        conditions.append(ListMembership.position >= shift.lower)
    if shift.upper is not None:
        conditions.append(ListMembership.position <= shift.upper)
    if exclude_title_id is not None:
        conditions.append(ListMembership.title_id != exclude_title_id)
    result = await db.execute(
        update(ListMembership)
        .where(*conditions)
        .values(position=ListMembership.position + shift.delta)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


@_store_call
async def remove_membership(db: AsyncSession, title_id: uuid.UUID, list_group_id: uuid.UUID) -> bool:
    result = await db.execute(
        delete(ListMembership)
        .where(
            ListMembership.title_id == title_id,
            ListMembership.list_group_id == list_group_id,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


@_store_call
async def remove_list_group_memberships(db: AsyncSession, list_group_id: uuid.UUID) -> int:
    result = await db.execute(
        delete(ListMembership)
        .where(ListMembership.list_group_id == list_group_id)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)
