"""Typed records tracked by the todosync scanner and metadata store."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class ItemStatus(str, Enum):
    """Lifecycle states for a detected marker comment."""

    OPEN = "open"
    COMPLETED = "completed"
    SNOOZED = "snoozed"


class Priority(str, Enum):
    """Priority bucket derived from the marker keyword."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DetectedItem(RecordModel):
    """Marker comment found during the most recent scan of its file."""

    id: str
    file_path: str
    line_number: int
    type: str
    raw_text: str
    description: str
    due_date: Optional[date] = None
    due_date_raw: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    status: ItemStatus = ItemStatus.OPEN
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    snoozed_until: Optional[date] = None


class PersistedMeta(RecordModel):
    """User-controlled state kept for every id ever detected."""

    id: str
    status: ItemStatus = ItemStatus.OPEN
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    snoozed_until: Optional[date] = None


class ScannerConfig(RecordModel):
    """File discovery and pattern settings consumed by the scanner."""

    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    scan_on_save: bool = True
    custom_patterns: List[str] = Field(default_factory=list)
    max_files: int = 1000
    batch_size: int = 20
