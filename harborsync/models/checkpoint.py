"""Data models for the resumable session checkpoint."""

import uuid
from datetime import datetime
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer

CHECKPOINT_SCHEMA_VERSION = 1


class ConfigSnapshot(BaseModel):
    """Minimal description of a run's parameters.

    Stored inside the checkpoint so a resume against a different
    destination or transfer mode can be detected and refused.
    """

    model_config = ConfigDict(frozen=True)

    mode: str = "originals"
    media: str = "all"
    sort_order: str = "oldest"
    backup_mode: str = "smart_incremental"
    server_url: Optional[str] = None
    device_id: Optional[str] = None
    folder_destination: Optional[str] = None

    def incompatibilities(self, current: "ConfigSnapshot") -> List[str]:
        """Return the names of fields that differ from ``current``."""
        return [
            name
            for name in type(self).model_fields
            if getattr(self, name) != getattr(current, name)
        ]


class SessionStats(BaseModel):
    """Counters carried across a pause"""

    uploaded_count: int = Field(0, ge=0)
    skipped_count: int = Field(0, ge=0)
    error_count: int = Field(0, ge=0)


class SessionCheckpoint(BaseModel):
    """Durable record of one resumable run"""

    model_config = ConfigDict(protected_namespaces=())

    version: int = CHECKPOINT_SCHEMA_VERSION
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = Field(default_factory=datetime.now)
    last_updated_at: datetime = Field(default_factory=datetime.now)
    paused_at: Optional[datetime] = None
    config_snapshot: ConfigSnapshot
    processed_item_ids: Set[str] = Field(default_factory=set)
    error_item_ids: Set[str] = Field(default_factory=set)
    pause_index: int = Field(0, ge=0)
    total_items_at_pause: int = Field(0, ge=0)
    stats: SessionStats = Field(default_factory=SessionStats)

    @field_serializer("processed_item_ids", "error_item_ids")
    def _serialize_ids(self, ids: Set[str]) -> List[str]:
        return sorted(ids)

    @property
    def remaining_items(self) -> int:
        """Items still to process when the run resumes"""
        return max(0, self.total_items_at_pause - len(self.processed_item_ids))

    def summary(self) -> str:
        """One-line description for observers, e.g. 'Paused 2026-01-02 10:15 - 40 remaining'"""
        when = self.paused_at or self.last_updated_at
        return f"Paused {when:%Y-%m-%d %H:%M} - {self.remaining_items} remaining"
