import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import memberships
from .audit import add_audit_log
from .auth import get_current_user
from .database import get_db
from .models import Genre, ListGroup, ListMembership, ListType, Rating, Title, User
from .routes_titles import _serialize_title

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lists", tags=["lists"])

LIST_KEYS = {
    ListType.WATCH_QUEUE.value: "watch_queue",
    ListType.CURRENTLY_WATCHING.value: "currently_watching",
    ListType.ALREADY_WATCHED.value: "already_watched",
}


class CreateListGroupRequest(BaseModel):
    genre_id: UUID


def _serialize_genre(genre: Genre) -> dict:
    return {"id": str(genre.id), "name": genre.name}


def _serialize_list_group(list_group: ListGroup, title_count: int | None = None) -> dict:
    payload = {
        "id": str(list_group.id),
        "genre": _serialize_genre(list_group.genre) if list_group.genre else None,
        "created_at": list_group.created_at.isoformat() if list_group.created_at else None,
        "updated_at": list_group.updated_at.isoformat() if list_group.updated_at else None,
    }
    if title_count is not None:
        payload["title_count"] = int(title_count)
    return payload


async def _get_list_group_or_404(db: AsyncSession, user_id, list_group_id: UUID) -> ListGroup:
    list_group = (
        await db.execute(
            select(ListGroup).where(
                ListGroup.id == list_group_id,
                ListGroup.user_id == user_id,
            )
        )
    ).scalar_one_or_none()
    if not list_group:
        raise HTTPException(status_code=404, detail="List group not found")
    return list_group


async def _list_group_titles(db: AsyncSession, list_group_id: UUID) -> dict:
    rows = (
        await db.execute(
            select(Title, ListMembership.list_type, ListMembership.position)
            .join(ListMembership, ListMembership.title_id == Title.id)
            .where(ListMembership.list_group_id == list_group_id)
            .order_by(ListMembership.position.asc(), ListMembership.updated_at.desc())
        )
    ).all()
    titles = {key: [] for key in LIST_KEYS.values()}
    for title, list_type, position in rows:
        key = LIST_KEYS.get(list_type)
        if key is None:
            continue
        titles[key].append(_serialize_title(title, list_type=list_type, position=position))
    return titles


async def _list_group_stats(db: AsyncSession, list_group_id: UUID) -> dict:
    counts = dict(
        (
            await db.execute(
                select(ListMembership.list_type, func.count(ListMembership.id))
                .where(ListMembership.list_group_id == list_group_id)
                .group_by(ListMembership.list_type)
            )
        ).all()
    )
    rated_count, average_rating = (
        await db.execute(
            select(func.count(Rating.id), func.avg(Rating.stars))
            .join(ListMembership, ListMembership.title_id == Rating.title_id)
            .where(ListMembership.list_group_id == list_group_id)
        )
    ).one()
    return {
        "total_titles": int(sum(counts.values())),
        "watch_queue": int(counts.get(ListType.WATCH_QUEUE.value, 0)),
        "currently_watching": int(counts.get(ListType.CURRENTLY_WATCHING.value, 0)),
        "already_watched": int(counts.get(ListType.ALREADY_WATCHED.value, 0)),
        "rated_count": int(rated_count or 0),
        "average_rating": round(float(average_rating), 2) if average_rating is not None else None,
    }


@router.post("", status_code=201)
async def create_list_group(
    body: CreateListGroupRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    genre = (await db.execute(select(Genre).where(Genre.id == body.genre_id))).scalar_one_or_none()
    if not genre:
        raise HTTPException(status_code=400, detail="Genre not found")

    existing = (
        await db.execute(
            select(ListGroup.id).where(
                ListGroup.user_id == user.id,
                ListGroup.genre_id == genre.id,
            )
        )
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="A list group for that genre already exists")

    list_group = ListGroup(user_id=user.id, genre_id=genre.id)
    db.add(list_group)
    try:
        await db.flush()
        add_audit_log(
            db,
            action="list_group.create",
            message=f"Created list group for genre {genre.name}.",
            actor_user=user,
            list_group_id=list_group.id,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A list group for that genre already exists")

    list_group.genre = genre
    logger.info("User %s created list group %s (%s)", user.id, list_group.id, genre.name)
    return {"ok": True, "list_group": _serialize_list_group(list_group, 0)}


@router.get("")
async def list_list_groups(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = (
        await db.execute(
            select(ListGroup, func.count(ListMembership.id))
            .join(Genre, Genre.id == ListGroup.genre_id)
            .outerjoin(ListMembership, ListMembership.list_group_id == ListGroup.id)
            .where(ListGroup.user_id == user.id)
            .group_by(ListGroup.id, Genre.name)
            .order_by(Genre.name.asc())
        )
    ).all()
    return {
        "results": [
            _serialize_list_group(list_group, int(title_count or 0))
            for list_group, title_count in rows
        ]
    }


@router.get("/{list_group_id}")
async def get_list_group(
    list_group_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    list_group = await _get_list_group_or_404(db, user.id, list_group_id)
    titles = await _list_group_titles(db, list_group.id)
    stats = await _list_group_stats(db, list_group.id)
    return {
        "list_group": {
            **_serialize_list_group(list_group, stats["total_titles"]),
            "titles": titles,
            "stats": stats,
        }
    }


@router.delete("/{list_group_id}")
async def delete_list_group(
    list_group_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    list_group = await _get_list_group_or_404(db, user.id, list_group_id)
    genre_name = list_group.genre.name if list_group.genre else "unknown"
    removed_memberships = await memberships.remove_list_group_memberships(db, list_group.id)
    await db.delete(list_group)
    add_audit_log(
        db,
        action="list_group.delete",
        message=f"Deleted list group for genre {genre_name} ({removed_memberships} titles unlinked).",
        actor_user=user,
        list_group_id=list_group_id,
    )
    await db.commit()
    logger.info("User %s deleted list group %s", user.id, list_group_id)
    return {"ok": True, "removed": True}


@router.get("/{list_group_id}/stats")
async def get_list_group_stats(
    list_group_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    list_group = await _get_list_group_or_404(db, user.id, list_group_id)
    return {"stats": await _list_group_stats(db, list_group.id)}
