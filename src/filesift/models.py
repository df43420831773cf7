# src/filesift/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class IgnoreMode(str, Enum):
    AUTOMATIC = "automatic"
    GLOBAL = "global"


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timedOut"
    FAILED = "failed"


class ScanStatus(str, Enum):
    """Status values carried by scan events, as seen by the host."""
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    TIMED_OUT = "timedOut"
    ERROR = "error"
    BUSY = "busy"


class SkipReason(str, Enum):
    TOO_LARGE = "too-large"
    PERMISSION_DENIED = "permission-denied"
    NOT_FOUND = "not-found"
    BUSY = "busy"
    TOO_MANY_OPEN_FILES = "too-many-open-files"
    INVALID_ENCODING = "invalid-encoding"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class FileRecord:
    """Immutable per-file result of a scan."""
    name: str
    path: str
    rel_path: str
    size: int
    is_binary: bool = False
    is_skipped: bool = False
    skip_reason: Optional[SkipReason] = None
    token_count: int = 0
    content: Optional[str] = None
    excluded_by_default: bool = False

    def __post_init__(self):
        if self.is_skipped and (self.content is not None or self.token_count):
            raise ValueError(f"Skipped record {self.rel_path} cannot carry content or tokens")
        if self.is_binary and self.content is not None:
            raise ValueError(f"Binary record {self.rel_path} cannot carry content")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "path": self.path,
            "relativePath": self.rel_path,
            "size": self.size,
            "isBinary": self.is_binary,
            "isSkipped": self.is_skipped,
            "tokenCount": self.token_count,
            "excludedByDefault": self.excluded_by_default,
        }
        if self.skip_reason is not None:
            data["error"] = self.skip_reason.value
        if self.content is not None:
            data["content"] = self.content
        return data


@dataclass(frozen=True)
class ScanEvent:
    status: ScanStatus
    directories_processed: int = 0
    files_processed: int = 0
    file_records: Optional[Tuple[FileRecord, ...]] = None
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not ScanStatus.PROCESSING

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape of the event for the host's status stream."""
        data: Dict[str, Any] = {"status": self.status.value}
        if self.status is ScanStatus.PROCESSING:
            data["directoriesProcessed"] = self.directories_processed
            data["filesProcessed"] = self.files_processed
        if self.file_records is not None:
            data["fileRecords"] = [r.to_dict() for r in self.file_records]
        if self.message is not None:
            data["message"] = self.message
        return data


@dataclass
class ScanResult:
    """What a call to start_scan hands back once the terminal event is out."""
    status: ScanStatus
    records: List[FileRecord] = field(default_factory=list)
    directories_processed: int = 0
    files_processed: int = 0
    error: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return sum(r.token_count for r in self.records)


@dataclass(frozen=True)
class IgnoreFilterCacheEntry:
    """A compiled ignore filter plus the raw patterns it was built from."""
    filter: Any
    provenance: Dict[str, Any]
