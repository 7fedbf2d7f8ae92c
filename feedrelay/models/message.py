"""Persisted message model: one row per message that reached the storage sink."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from feedrelay.database import Base


# ─── SQLAlchemy Model ────────────────────────────────────────────


class StoredMessage(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("platform", "source_id", "message_id", name="uq_messages_dedup_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(255))
    platform: Mapped[str] = mapped_column(String(50), index=True)
    source_id: Mapped[str] = mapped_column(String(255), index=True)
    channel_id: Mapped[str] = mapped_column(String(255))
    author_id: Mapped[str] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[str] = mapped_column(String(64), index=True)
    raw_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    ingested_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), index=True
    )


# ─── Pydantic Schemas ────────────────────────────────────────────


class StoredMessageResponse(BaseModel):
    id: int
    message_id: str
    platform: str
    source_id: str
    channel_id: str
    author_id: str
    content: str
    created_at: str
    ingested_at: datetime

    model_config = {"from_attributes": True}


class MessageListResponse(BaseModel):
    messages: list[StoredMessageResponse]
    total: int
    page: int
    page_size: int
