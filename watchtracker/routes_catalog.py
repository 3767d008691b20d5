from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db
from .models import Genre, StreamingService, Title, title_services
from .routes_lists import _serialize_genre
from .routes_titles import _serialize_service, _serialize_title

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/genres")
async def list_genres(db: AsyncSession = Depends(get_db)):
    rows = (await db.execute(select(Genre).order_by(Genre.name.asc()))).scalars().all()
    return {"results": [_serialize_genre(row) for row in rows]}


@router.get("/genres/{genre_id}")
async def get_genre(genre_id: UUID, db: AsyncSession = Depends(get_db)):
    genre = (await db.execute(select(Genre).where(Genre.id == genre_id))).scalar_one_or_none()
    if not genre:
        raise HTTPException(status_code=404, detail="Genre not found")
    return {"genre": _serialize_genre(genre)}


@router.get("/services")
async def list_services(db: AsyncSession = Depends(get_db)):
    rows = (
        await db.execute(select(StreamingService).order_by(StreamingService.name.asc()))
    ).scalars().all()
    return {"results": [_serialize_service(row) for row in rows]}


async def _get_service_or_404(db: AsyncSession, service_id: UUID) -> StreamingService:
    service = (
        await db.execute(select(StreamingService).where(StreamingService.id == service_id))
    ).scalar_one_or_none()
    if not service:
        raise HTTPException(status_code=404, detail="Streaming service not found")
    return service


@router.get("/services/{service_id}")
async def get_service(service_id: UUID, db: AsyncSession = Depends(get_db)):
    service = await _get_service_or_404(db, service_id)
    return {"service": _serialize_service(service)}


@router.get("/services/{service_id}/titles")
async def list_service_titles(
    service_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    service = await _get_service_or_404(db, service_id)
    rows = (
        await db.execute(
            select(Title)
            .join(title_services, title_services.c.title_id == Title.id)
            .where(title_services.c.service_id == service.id)
            .order_by(Title.name.asc())
            .limit(limit)
        )
    ).scalars().all()
    return {"results": [_serialize_title(row) for row in rows]}
