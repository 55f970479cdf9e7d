"""Data models for the Suno library and sync runs."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from .exceptions import InvalidResponseError
from utils.constants import PRIMARY_FORMAT, LOSSLESS_FORMAT


class AudioFormat(str, Enum):
    """Requested audio format."""
    MP3 = "mp3"
    WAV = "wav"
    BOTH = "both"

    @property
    def extensions(self) -> List[str]:
        """File extensions to fetch, primary format first."""
        if self is AudioFormat.BOTH:
            return [PRIMARY_FORMAT, LOSSLESS_FORMAT]
        return [self.value]


class SyncMode(str, Enum):
    """How much of the remote listing a run fetches."""
    INCREMENTAL = "incremental"
    FULL = "full"


class LibraryItem(BaseModel):
    """One archivable track and the metadata the API returned for it."""
    id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    downloaded_at: Optional[datetime] = None

    @field_validator('id')
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Reject blank ids."""
        if not v or not v.strip():
            raise ValueError("id must not be empty")
        return v

    @classmethod
    def from_record(cls, record: Any) -> "LibraryItem":
        """Build an item from a raw listing record.

        Args:
            record: One element of a listing page

        Returns:
            Library item wrapping the record verbatim

        Raises:
            InvalidResponseError: If the record is not an object with an id
        """
        if not isinstance(record, dict):
            raise InvalidResponseError(f"Library record is not an object: {record!r}"[:200])

        item_id = record.get('id')
        if item_id is None or str(item_id).strip() == "":
            raise InvalidResponseError("Library record has no id", response_data=record)

        created_at = record.get('created_at')
        return cls(
            id=str(item_id),
            payload=record,
            created_at=str(created_at) if created_at is not None else None
        )

    @property
    def title(self) -> str:
        """Display title, falling back to 'untitled'."""
        return self.payload.get('title') or "untitled"

    @property
    def audio_url(self) -> Optional[str]:
        """Primary media URL if the track has one."""
        return self.payload.get('audio_url') or None

    def stamped(self, when: Optional[datetime] = None) -> "LibraryItem":
        """Copy of the item with ``downloaded_at`` set."""
        return self.model_copy(update={'downloaded_at': when or datetime.now()})


class SyncOptions(BaseModel):
    """Caller-supplied options for one sync run."""
    limit: Optional[int] = None
    rate_limit_ms: Optional[int] = Field(None, ge=0)
    format: AudioFormat = AudioFormat.MP3
    full_sync: bool = False
    verify_files: bool = False

    @field_validator('limit')
    @classmethod
    def validate_limit(cls, v: Optional[int]) -> Optional[int]:
        """Treat zero or negative limits as 'no limit'."""
        if v is not None and v <= 0:
            return None
        return v


class SyncErrorEntry(BaseModel):
    """An error recorded against one item."""
    item_id: str
    message: str


class SyncResult(BaseModel):
    """Aggregate outcome of a sync run."""
    user: str
    mode: SyncMode = SyncMode.INCREMENTAL
    downloaded: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    candidates: int = 0
    migrated: int = 0
    errors: List[SyncErrorEntry] = Field(default_factory=list)
    warnings: List[SyncErrorEntry] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        """Get run duration in seconds."""
        if not self.started_at:
            return 0.0
        end = self.finished_at or datetime.now()
        return max(0.0, (end - self.started_at).total_seconds())
