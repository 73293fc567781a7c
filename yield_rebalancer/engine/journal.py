"""Record of recent rebalance attempts and the state each ended in."""

from __future__ import annotations

import itertools
import threading
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import pandas as pd

from yield_rebalancer.data.constants import DEFAULT_HISTORY_SIZE


class RebalanceStatus(str, Enum):
    """Lifecycle of a single rebalance attempt.

    Committed, rejected and failed are terminal.
    """

    REQUESTED = "requested"
    VALIDATED = "validated"
    EXECUTING = "executing"
    COMMITTED = "committed"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RebalanceStatus.COMMITTED, RebalanceStatus.REJECTED, RebalanceStatus.FAILED)


_ALLOWED = {
    RebalanceStatus.REQUESTED: {RebalanceStatus.VALIDATED, RebalanceStatus.REJECTED},
    RebalanceStatus.VALIDATED: {RebalanceStatus.EXECUTING},
    RebalanceStatus.EXECUTING: {RebalanceStatus.COMMITTED, RebalanceStatus.FAILED},
}


def _now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class RebalanceAttempt:
    """One ``execute_rebalance`` call as seen by the journal."""

    attempt_id: int
    caller: str
    source_pool_id: str
    target_pool_id: str
    amount: int
    status: RebalanceStatus = RebalanceStatus.REQUESTED
    source_apy: int | None = None
    target_apy: int | None = None
    adjusted_gain: int | None = None
    error: str | None = None
    requested_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None

    def advance(self, status: RebalanceStatus, **changes: Any) -> "RebalanceAttempt":
        """Return a copy moved to ``status``; illegal transitions raise."""
        if status not in _ALLOWED.get(self.status, set()):
            raise ValueError(f"Illegal transition {self.status.value} -> {status.value}")
        if status.is_terminal:
            changes.setdefault("finished_at", _now())
        return replace(self, status=status, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


class RebalanceJournal:
    """In-memory journal of rebalance attempts.

    At most ``max_attempts`` entries are kept; once full, the oldest
    finished attempts are dropped first. Attempts still in flight are never
    dropped.
    """

    def __init__(self, max_attempts: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._attempts: dict[int, RebalanceAttempt] = {}

    def _evict(self) -> None:
        """Drop the oldest finished attempts beyond capacity; caller holds the lock."""
        excess = len(self._attempts) - self.max_attempts
        if excess <= 0:
            return
        stale = [aid for aid, a in self._attempts.items() if a.status.is_terminal][:excess]
        for attempt_id in stale:
            del self._attempts[attempt_id]

    def open(self, caller: str, source_pool_id: str, target_pool_id: str, amount: int) -> RebalanceAttempt:
        with self._lock:
            attempt = RebalanceAttempt(
                attempt_id=next(self._ids),
                caller=caller,
                source_pool_id=source_pool_id,
                target_pool_id=target_pool_id,
                amount=amount,
            )
            self._attempts[attempt.attempt_id] = attempt
            self._evict()
        return attempt

    def record(self, attempt: RebalanceAttempt) -> RebalanceAttempt:
        with self._lock:
            self._attempts[attempt.attempt_id] = attempt
            if attempt.status.is_terminal:
                self._evict()
        return attempt

    def get(self, attempt_id: int) -> RebalanceAttempt:
        with self._lock:
            return self._attempts[attempt_id]

    def attempts(self) -> list[RebalanceAttempt]:
        with self._lock:
            return list(self._attempts.values())

    def to_dataframe(self) -> pd.DataFrame:
        rows = [a.to_dict() for a in self.attempts()]
        if not rows:
            columns = [f.name for f in fields(RebalanceAttempt)]
            return pd.DataFrame(columns=columns).set_index("attempt_id")
        return pd.DataFrame(rows).set_index("attempt_id")

    def __len__(self) -> int:
        return len(self._attempts)
