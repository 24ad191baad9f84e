"""
Process-wide progress storage for running conversions.

Written by the conversion workers, read by polling clients. Entries live only
as long as the process; nothing is persisted.
"""
import threading
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ProgressSnapshot:
    job_id: str
    percent: float = 0.0  # 0 -> 100
    total_duration_seconds: Optional[float] = None


class ProgressTracker:
    """Keyed progress map guarded by a single lock. Last write wins per job id."""

    def __init__(self) -> None:
        self._store: Dict[str, ProgressSnapshot] = {}
        self._lock = threading.Lock()

    def set(self, job_id: str, snapshot: ProgressSnapshot) -> None:
        with self._lock:
            self._store[job_id] = snapshot

    def update(self, job_id: str, percent: float, total_duration_seconds: Optional[float] = None) -> None:
        self.set(job_id, ProgressSnapshot(job_id, percent, total_duration_seconds))

    def get(self, job_id: str) -> ProgressSnapshot:
        with self._lock:
            snapshot = self._store.get(job_id)
        return snapshot if snapshot is not None else ProgressSnapshot(job_id)

    def remove(self, job_id: str) -> None:
        with self._lock:
            self._store.pop(job_id, None)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._store
