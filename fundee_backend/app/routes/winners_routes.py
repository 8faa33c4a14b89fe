"""Публичная лента последних победителей (главный экран)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fundee_backend.app.deps import get_db, make_etag
from fundee_backend.app.schemas.draws_schemas import RecentWinnerOut, RecentWinnersOut
from fundee_backend.app.services.winners_service import get_recent_winners

router = APIRouter(prefix="/winners", tags=["winners"])


@router.get("/recent", response_model=RecentWinnersOut, summary="Последние победители")
async def recent_winners(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> RecentWinnersOut:
    rows = await get_recent_winners(db, limit=limit)
    etag = make_etag({"kind": "recent_winners", "ids": [r.winner_id for r in rows]})
    return RecentWinnersOut(items=[RecentWinnerOut.model_validate(r) for r in rows], etag=etag)


__all__ = ["router"]
