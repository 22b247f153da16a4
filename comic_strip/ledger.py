"""
In-memory request ledger.

Holds every comic request by id for the life of the process. Entries are
dropped by sweep() once older than the retention window, whatever their
status. Nothing is written to disk.
"""

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from comic_strip.models import ComicBrief, TrackedRequest

logger = logging.getLogger(__name__)


class RequestLedger:
    """
    Thread-safe map of request id → TrackedRequest.

    Flask handler threads read it while pipeline coroutines on the service
    loop update the requests it holds.

    Args:
        retention_hours: Age after which sweep() drops an entry
        clock: Source of "now", injectable for tests
    """

    def __init__(self, retention_hours: float = 2.0,
                 clock: Callable[[], datetime] = datetime.now):
        self.retention = timedelta(hours=retention_hours)
        self._clock = clock
        self._requests: dict[str, TrackedRequest] = {}
        self._lock = threading.Lock()

    def create(self, brief: ComicBrief) -> TrackedRequest:
        """Register a new pending request for a brief."""
        request = TrackedRequest(
            request_id=str(uuid.uuid4()),
            brief=brief,
            created_at=self._clock(),
        )
        with self._lock:
            self._requests[request.request_id] = request
        return request

    def get(self, request_id: str) -> Optional[TrackedRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def list_recent(self, limit: int = 10) -> list[TrackedRequest]:
        """Newest first."""
        with self._lock:
            requests = list(self._requests.values())
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests[:limit]

    def sweep(self) -> int:
        """Remove requests older than the retention window. Returns count removed."""
        cutoff = self._clock() - self.retention
        with self._lock:
            expired = [rid for rid, r in self._requests.items() if r.created_at < cutoff]
            for rid in expired:
                del self._requests[rid]

        if expired:
            logger.info(f"Cleaned up {len(expired)} old comic requests")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._requests
