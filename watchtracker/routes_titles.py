import logging
from datetime import datetime, timezone
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import reordering
from .auth import get_current_user
from .database import get_db
from .models import ListGroup, ListMembership, ListType, StreamingService, Title, User
from .routes_ratings import _serialize_rating

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/titles", tags=["titles"])

ListTypeName = Literal["WATCH_QUEUE", "CURRENTLY_WATCHING", "ALREADY_WATCHED"]


def _serialize_service(service: StreamingService) -> dict:
    return {"id": str(service.id), "name": service.name, "logo_url": service.logo_url}


def _serialize_title(title: Title, list_type: str | None = None, position: int | None = None) -> dict:
    payload = {
        "id": str(title.id),
        "type": title.title_type,
        "name": title.name,
        "tmdb_id": title.tmdb_id,
        "release_year": title.release_year,
        "poster_url": title.poster_url,
        "overview": title.overview,
        "services": [_serialize_service(service) for service in title.services],
        "rating": _serialize_rating(title.rating) if title.rating else None,
        "created_at": title.created_at.isoformat() if title.created_at else None,
        "updated_at": title.updated_at.isoformat() if title.updated_at else None,
    }
    if list_type is not None:
        payload["list_type"] = list_type
        payload["position"] = int(position or 0)
    return payload


def _serialize_membership(membership: ListMembership) -> dict:
    return {
        "title_id": str(membership.title_id),
        "list_group_id": str(membership.list_group_id),
        "list_type": membership.list_type,
        "position": int(membership.position),
        "added_at": membership.added_at.isoformat() if membership.added_at else None,
        "updated_at": membership.updated_at.isoformat() if membership.updated_at else None,
    }


async def _user_owns_list_group(db: AsyncSession, user_id, list_group_id: UUID) -> bool:
    count_value = await db.scalar(
        select(func.count(ListGroup.id)).where(
            ListGroup.id == list_group_id,
            ListGroup.user_id == user_id,
        )
    )
    return bool(count_value)


async def _get_title_or_404(db: AsyncSession, title_id: UUID) -> Title:
    title = (
        await db.execute(
            select(Title).where(Title.id == title_id).execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not title:
        raise HTTPException(status_code=404, detail="Title not found")
    return title


class CreateTitleRequest(BaseModel):
    type: Literal["MOVIE", "TV_SERIES"]
    name: str = Field(min_length=1, max_length=255)
    tmdb_id: str | None = Field(default=None, max_length=40)
    release_year: str | None = Field(default=None, max_length=10)
    poster_url: str | None = Field(default=None, max_length=500)
    overview: str | None = Field(default=None, max_length=5000)


class TitleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    release_year: str | None = Field(default=None, max_length=10)
    poster_url: str | None = Field(default=None, max_length=500)
    overview: str | None = Field(default=None, max_length=5000)


class AddToListRequest(BaseModel):
    list_group_id: UUID
    list_type: ListTypeName


class MoveToListRequest(BaseModel):
    list_group_id: UUID
    new_list_type: ListTypeName
    new_position: int | None = Field(default=None, ge=0)


class UpdatePositionRequest(BaseModel):
    list_group_id: UUID
    new_position: int = Field(ge=0)


class LinkServiceRequest(BaseModel):
    service_id: UUID


@router.post("", status_code=201)
async def create_title(
    body: CreateTitleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Title name is required")
    tmdb_id = (body.tmdb_id or "").strip() or None

    if tmdb_id:
        existing = (
            await db.execute(
                select(Title).where(Title.title_type == body.type, Title.tmdb_id == tmdb_id)
            )
        ).scalar_one_or_none()
        if existing:
            return {"ok": True, "title": _serialize_title(existing), "created": False}

    title = Title(
        title_type=body.type,
        name=name,
        tmdb_id=tmdb_id,
        release_year=(body.release_year or "").strip() or None,
        poster_url=(body.poster_url or "").strip() or None,
        overview=(body.overview or "").strip() or None,
    )
    db.add(title)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with another request creating the same external title.
        await db.rollback()
        existing = (
            await db.execute(
                select(Title).where(Title.title_type == body.type, Title.tmdb_id == tmdb_id)
            )
        ).scalar_one_or_none()
        if not existing:
            raise HTTPException(status_code=409, detail="Title could not be created")
        return {"ok": True, "title": _serialize_title(existing), "created": False}

    title = await _get_title_or_404(db, title.id)
    logger.info("User %s created title %s (%s)", user.id, title.id, title.name)
    return {"ok": True, "title": _serialize_title(title), "created": True}


@router.get("/search")
async def search_titles(
    q: str = Query(""),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    term = q.strip()
    if not term:
        raise HTTPException(status_code=400, detail="Search term is required")
    rows = (
        await db.execute(
            select(Title)
            .where(func.lower(Title.name).contains(term.lower()))
            .order_by(Title.name.asc())
            .limit(limit)
        )
    ).scalars().all()
    return {"results": [_serialize_title(row) for row in rows]}


@router.get("/my-titles")
async def list_my_titles(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title_ids = (
        select(ListMembership.title_id)
        .join(ListGroup, ListGroup.id == ListMembership.list_group_id)
        .where(ListGroup.user_id == user.id)
    )
    rows = (
        await db.execute(
            select(Title).where(Title.id.in_(title_ids)).order_by(Title.name.asc())
        )
    ).scalars().all()
    return {"results": [_serialize_title(row) for row in rows]}


@router.get("/{title_id}")
async def get_title(
    title_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title = await _get_title_or_404(db, title_id)
    return {"title": _serialize_title(title)}


@router.patch("/{title_id}")
async def update_title(
    title_id: UUID,
    body: TitleUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title = await _get_title_or_404(db, title_id)
    updates = body.model_dump(exclude_unset=True)
    if "name" in updates:
        name = (updates["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Title name is required")
        title.name = name
    if "release_year" in updates:
        title.release_year = (updates["release_year"] or "").strip() or None
    if "poster_url" in updates:
        title.poster_url = (updates["poster_url"] or "").strip() or None
    if "overview" in updates:
        title.overview = (updates["overview"] or "").strip() or None
    if updates:
        title.updated_at = datetime.now(timezone.utc)
        await db.commit()
        title = await _get_title_or_404(db, title_id)
    return {"ok": True, "title": _serialize_title(title)}


@router.post("/{title_id}/add-to-list")
async def add_title_to_list(
    title_id: UUID,
    body: AddToListRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    owned = await _user_owns_list_group(db, user.id, body.list_group_id)
    membership = await reordering.add_to_list(
        db,
        title_id,
        body.list_group_id,
        ListType(body.list_type),
        owned=owned,
    )
    return {"ok": True, "membership": _serialize_membership(membership)}


@router.patch("/{title_id}/move")
async def move_title_to_list(
    title_id: UUID,
    body: MoveToListRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    owned = await _user_owns_list_group(db, user.id, body.list_group_id)
    membership = await reordering.move_to_list(
        db,
        title_id,
        body.list_group_id,
        ListType(body.new_list_type),
        body.new_position,
        owned=owned,
    )
    return {"ok": True, "membership": _serialize_membership(membership)}


@router.patch("/{title_id}/position")
async def update_title_position(
    title_id: UUID,
    body: UpdatePositionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    owned = await _user_owns_list_group(db, user.id, body.list_group_id)
    membership = await reordering.update_position_within_list(
        db,
        title_id,
        body.list_group_id,
        body.new_position,
        owned=owned,
    )
    return {"ok": True, "membership": _serialize_membership(membership)}


@router.delete("/{title_id}/lists/{list_group_id}")
async def remove_title_from_list(
    title_id: UUID,
    list_group_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    owned = await _user_owns_list_group(db, user.id, list_group_id)
    await reordering.remove_from_list(db, title_id, list_group_id, owned=owned)
    return {"ok": True, "removed": True}


@router.post("/{title_id}/services")
async def link_title_to_service(
    title_id: UUID,
    body: LinkServiceRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title = await _get_title_or_404(db, title_id)
    service = (
        await db.execute(select(StreamingService).where(StreamingService.id == body.service_id))
    ).scalar_one_or_none()
    if not service:
        raise HTTPException(status_code=404, detail="Streaming service not found")
    if any(linked.id == service.id for linked in title.services):
        return {"ok": True, "linked": False}
    title.services.append(service)
    await db.commit()
    return {"ok": True, "linked": True}


@router.delete("/{title_id}/services/{service_id}")
async def unlink_title_from_service(
    title_id: UUID,
    service_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title = await _get_title_or_404(db, title_id)
    remaining = [linked for linked in title.services if linked.id != service_id]
    if len(remaining) == len(title.services):
        return {"ok": True, "removed": False}
    title.services = remaining
    await db.commit()
    return {"ok": True, "removed": True}
