"""Result types for cache refreshes and document scans."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .records import CachedRecord


class ScanMode(str, Enum):
    """How a scan selects documents."""

    FULL = "full"
    INCREMENTAL = "incremental"


class ScanStatus(str, Enum):
    """Outcome of one scan cycle."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RefreshSummary:
    """Outcome of refreshing every metadata category."""

    duration_seconds: float
    sizes: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration_ms": round(self.duration_seconds * 1000, 1),
            "sizes": dict(self.sizes),
        }


@dataclass
class ScanBatch:
    """
    Documents selected by one scan, with the reference data to interpret them.

    Handed to the downstream processor. ``since`` is the watermark the batch
    was selected against (None for a full scan).
    """

    mode: ScanMode
    documents: list[dict[str, Any]]
    tags: list[CachedRecord]
    correspondents: list[CachedRecord]
    document_types: list[CachedRecord]
    started_at: datetime
    since: Optional[str] = None

    def __len__(self) -> int:
        return len(self.documents)


@dataclass
class ScanResult:
    """
    Outcome of one scan cycle.

    ``watermark_after`` equals ``watermark_before`` unless the batch was
    processed successfully.
    """

    status: ScanStatus
    mode: Optional[ScanMode] = None
    document_count: int = 0
    started_at: Optional[datetime] = None
    watermark_before: Optional[str] = None
    watermark_after: Optional[str] = None
    duration_seconds: float = 0.0
    message: Optional[str] = None

    @property
    def advanced(self) -> bool:
        """True if this scan moved the watermark."""
        return self.watermark_after is not None and self.watermark_after != self.watermark_before

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for serialization."""
        return {
            "status": self.status.value,
            "mode": self.mode.value if self.mode else None,
            "document_count": self.document_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "watermark_before": self.watermark_before,
            "watermark_after": self.watermark_after,
            "duration_seconds": round(self.duration_seconds, 2),
            "message": self.message,
        }
