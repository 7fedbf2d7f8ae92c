"""Canonical message record produced by every connector."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class Message:
    """One normalized event from an external platform.

    ``(platform, source_id, id)`` identifies the logical event; two messages
    sharing that triple are treated as the same event by the pipeline.
    """

    id: str
    platform: str
    source_id: str
    channel_id: str
    author_id: str
    content: str
    created_at: str
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def dedup_key(self) -> str:
        return f"{self.platform}:{self.source_id}:{self.id}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
