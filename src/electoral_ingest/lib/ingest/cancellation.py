"""In-process cancellation flags.

A fast-path check consulted by the import loop between windows and chunks.
The persisted job status stays authoritative; this set only saves a
database round-trip per check. Request handlers and import tasks may touch
it from different threads, so every access is taken under a lock.
"""

import threading
import uuid


class CancellationRegistry:
    """Thread-safe set of job ids with a pending cancellation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled: set[str] = set()

    def request(self, job_id: uuid.UUID | str) -> None:
        with self._lock:
            self._cancelled.add(str(job_id))

    def is_cancelled(self, job_id: uuid.UUID | str) -> bool:
        with self._lock:
            return str(job_id) in self._cancelled

    def clear(self, job_id: uuid.UUID | str) -> None:
        with self._lock:
            self._cancelled.discard(str(job_id))

    def reset(self) -> None:
        """Drop every flag (used at shutdown and between tests)."""
        with self._lock:
            self._cancelled.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cancelled)


# Singleton shared by the API process and its import tasks
cancellation_registry = CancellationRegistry()
