"""Bounded in-memory audit trail.

One ``AuditLog`` is created per application context and handed to the
components that write to it. When full, the oldest entry is dropped.
"""
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from typing import Deque, List, Optional

from .credentials import system_clock


@dataclass(frozen=True)
class AuditEntry:
    timestamp: int
    level: str
    message: str
    target: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


class AuditLog:
    def __init__(self, capacity: int = 10000):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: Deque[AuditEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def add(self, level: str, message: str, target: Optional[str] = None, timestamp: Optional[int] = None) -> None:
        self.record(AuditEntry(
            timestamp=system_clock() if timestamp is None else timestamp,
            level=level,
            message=message,
            target=target,
        ))

    def recent(self, limit: int) -> List[AuditEntry]:
        """Up to ``limit`` newest entries, oldest first"""
        if limit <= 0:
            return []
        with self._lock:
            entries = list(self._entries)
        return entries[-limit:]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class AuditLogHandler(logging.Handler):
    """Mirrors log records into an AuditLog"""

    def __init__(self, audit: AuditLog, level=logging.INFO):
        super().__init__(level)
        self.audit = audit

    def emit(self, record: logging.LogRecord) -> None:
        # already written to the trail by the component that logged it
        if getattr(record, "audited", False):
            return
        try:
            self.audit.record(AuditEntry(
                timestamp=int(record.created),
                level=record.levelname.lower(),
                message=record.getMessage(),
                target=record.name,
            ))
        except Exception:
            self.handleError(record)
