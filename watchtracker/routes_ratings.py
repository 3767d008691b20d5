from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import get_current_user
from .database import get_db
from .models import ListGroup, ListMembership, Rating, Title, User

router = APIRouter(prefix="/api/ratings", tags=["ratings"])

MIN_STARS = 1
MAX_STARS = 5


class RatingRequest(BaseModel):
    stars: int = Field(ge=MIN_STARS, le=MAX_STARS)
    review: str | None = Field(default=None, max_length=5000)


def _serialize_rating(rating: Rating) -> dict:
    return {
        "id": str(rating.id),
        "title_id": str(rating.title_id),
        "stars": int(rating.stars),
        "review": rating.review,
        "created_at": rating.created_at.isoformat() if rating.created_at else None,
        "updated_at": rating.updated_at.isoformat() if rating.updated_at else None,
    }


def _serialize_rated_title(rating: Rating, title: Title) -> dict:
    return {
        **_serialize_rating(rating),
        "title": {
            "id": str(title.id),
            "type": title.title_type,
            "name": title.name,
            "release_year": title.release_year,
            "poster_url": title.poster_url,
        },
    }


def _user_title_ids(user_id):
    return (
        select(ListMembership.title_id)
        .join(ListGroup, ListGroup.id == ListMembership.list_group_id)
        .where(ListGroup.user_id == user_id)
    )


async def _require_user_title(db: AsyncSession, user_id, title_id: UUID) -> None:
    count_value = await db.scalar(
        select(func.count(ListMembership.id))
        .join(ListGroup, ListGroup.id == ListMembership.list_group_id)
        .where(ListGroup.user_id == user_id, ListMembership.title_id == title_id)
    )
    if not count_value:
        raise HTTPException(status_code=404, detail="Title not found in your lists")


async def _get_rating(db: AsyncSession, title_id: UUID) -> Rating | None:
    return (
        await db.execute(
            select(Rating).where(Rating.title_id == title_id).execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def _rated_titles(db: AsyncSession, user_id, *order_by, stars: int | None = None, limit: int | None = None) -> list[dict]:
    query = (
        select(Rating, Title)
        .join(Title, Title.id == Rating.title_id)
        .where(Rating.title_id.in_(_user_title_ids(user_id)))
    )
    if stars is not None:
        query = query.where(Rating.stars == stars)
    query = query.order_by(*order_by)
    if limit is not None:
        query = query.limit(limit)
    rows = (await db.execute(query)).all()
    return [_serialize_rated_title(rating, title) for rating, title in rows]


@router.put("/titles/{title_id}")
async def upsert_rating(
    title_id: UUID,
    body: RatingRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_user_title(db, user.id, title_id)
    review = (body.review or "").strip() or None
    now = datetime.now(timezone.utc)
    rating = await _get_rating(db, title_id)
    created = rating is None
    if created:
        rating = Rating(title_id=title_id, stars=body.stars, review=review, created_at=now, updated_at=now)
        db.add(rating)
    else:
        rating.stars = body.stars
        rating.review = review
        rating.updated_at = now
    await db.commit()
    return {"ok": True, "rating": _serialize_rating(rating), "created": created}


@router.get("/titles/{title_id}")
async def get_rating(
    title_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_user_title(db, user.id, title_id)
    rating = await _get_rating(db, title_id)
    return {"rating": _serialize_rating(rating) if rating else None}


@router.delete("/titles/{title_id}")
async def delete_rating(
    title_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_user_title(db, user.id, title_id)
    rating = await _get_rating(db, title_id)
    if not rating:
        return {"ok": True, "removed": False}
    await db.delete(rating)
    await db.commit()
    return {"ok": True, "removed": True}


@router.get("/my-ratings")
async def my_ratings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"results": await _rated_titles(db, user.id, Rating.updated_at.desc())}


@router.get("/stats")
async def rating_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = (
        await db.execute(
            select(Rating.stars, func.count(Rating.id))
            .where(Rating.title_id.in_(_user_title_ids(user.id)))
            .group_by(Rating.stars)
        )
    ).all()
    by_stars = {str(stars): 0 for stars in range(MIN_STARS, MAX_STARS + 1)}
    total = 0
    weighted = 0
    for stars, count_value in rows:
        by_stars[str(stars)] = int(count_value)
        total += int(count_value)
        weighted += int(stars) * int(count_value)
    return {
        "total_rated": total,
        "average_rating": round(weighted / total, 2) if total else None,
        "by_stars": by_stars,
    }


@router.get("/top-rated")
async def top_rated(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    results = await _rated_titles(
        db, user.id, Rating.stars.desc(), Rating.updated_at.desc(), limit=limit
    )
    return {"results": results}


@router.get("/recent")
async def recent_ratings(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"results": await _rated_titles(db, user.id, Rating.updated_at.desc(), limit=limit)}


@router.get("/by-stars/{stars}")
async def ratings_by_stars(
    stars: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if stars < MIN_STARS or stars > MAX_STARS:
        raise HTTPException(status_code=400, detail=f"Stars must be between {MIN_STARS} and {MAX_STARS}")
    results = await _rated_titles(db, user.id, Rating.updated_at.desc(), stars=stars)
    return {"results": results}
