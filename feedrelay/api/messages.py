"""Stored message endpoints: read access to the SQL storage sink."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feedrelay.config import settings
from feedrelay.database import get_session
from feedrelay.models.message import MessageListResponse, StoredMessage, StoredMessageResponse

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("", response_model=MessageListResponse)
async def list_messages(
    platform: str | None = Query(None),
    source_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    """List persisted messages, newest first."""
    if not settings.persist_messages:
        raise HTTPException(status_code=503, detail="Message persistence is disabled")

    query = select(StoredMessage).order_by(desc(StoredMessage.id))

    if platform:
        query = query.where(StoredMessage.platform == platform)
    if source_id:
        query = query.where(StoredMessage.source_id == source_id)

    # Count total
    count_query = select(func.count()).select_from(query.subquery())
    total = (await session.execute(count_query)).scalar() or 0

    # Paginate
    query = query.offset((page - 1) * page_size).limit(page_size)
    result = await session.execute(query)
    rows = result.scalars().all()

    return MessageListResponse(
        messages=[StoredMessageResponse.model_validate(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )
