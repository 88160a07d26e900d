"""In-memory registry of run statuses.

Single-writer rule: only the task executing a run mutates its RunStatus,
and it does so through mutate()/append_log() under the registry lock.
Readers get deep-copied snapshots, so they never observe a half-applied
update.

Retention: terminal runs older than the TTL are evicted, and at most
max_retained terminal runs are kept (oldest completed first). Runs that
are still in progress are never evicted.
"""

import copy
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from agentic_api_testgen.constants import DEFAULT_MAX_RETAINED_RUNS, DEFAULT_RUN_TTL_S
from agentic_api_testgen.models import LogEntry, RunStatus

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RunRegistry:
    def __init__(
        self,
        max_retained: int = DEFAULT_MAX_RETAINED_RUNS,
        ttl_s: float = DEFAULT_RUN_TTL_S,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_retained = max_retained
        self.ttl = timedelta(seconds=ttl_s)
        self.clock = clock
        self._runs: Dict[str, RunStatus] = {}
        self._lock = threading.RLock()

    def create(self, run_id: str, max_iterations: int) -> RunStatus:
        status = RunStatus(
            run_id=run_id,
            phase="planning",
            current_iteration=0,
            max_iterations=max_iterations,
            started_at=self.clock(),
        )
        with self._lock:
            if run_id in self._runs:
                raise ValueError(f"Run already registered: {run_id}")
            self._runs[run_id] = status
            self._evict_locked()
        return copy.deepcopy(status)

    def get(self, run_id: str) -> Optional[RunStatus]:
        """Snapshot of a run, or None if unknown (or evicted)."""
        with self._lock:
            self._evict_locked()
            status = self._runs.get(run_id)
            return copy.deepcopy(status) if status is not None else None

    def list_runs(self) -> List[RunStatus]:
        with self._lock:
            self._evict_locked()
            return [copy.deepcopy(s) for s in self._runs.values()]

    def mutate(self, run_id: str, update: Callable[[RunStatus], None]) -> None:
        """Apply an in-place update to a run's status under the lock."""
        with self._lock:
            status = self._runs.get(run_id)
            if status is None:
                raise KeyError(run_id)
            update(status)

    def append_log(self, run_id: str, phase: str, message: str) -> LogEntry:
        entry = LogEntry(timestamp=self.clock(), phase=phase, message=message)
        self.mutate(run_id, lambda s: s.log.append(entry))
        return entry

    def _evict_locked(self) -> int:
        now = self.clock()
        terminal = [s for s in self._runs.values() if s.is_terminal]

        expired = [
            s.run_id for s in terminal
            if s.completed_at is not None and now - s.completed_at > self.ttl
        ]
        for run_id in expired:
            del self._runs[run_id]

        remaining = sorted(
            (s for s in terminal if s.run_id not in expired),
            key=lambda s: s.completed_at or s.started_at,
        )
        overflow = max(len(remaining) - self.max_retained, 0)
        for status in remaining[:overflow]:
            del self._runs[status.run_id]

        evicted = len(expired) + overflow
        if evicted:
            logger.debug("Evicted %d terminal run(s)", evicted)
        return evicted

    def evict(self) -> int:
        with self._lock:
            return self._evict_locked()

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)
