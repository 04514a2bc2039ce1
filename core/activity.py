"""Per-user throttle for "last active" writes.

At most one permitted write per user per window, however many requests ask.
One tracker lives for the whole process; it is built in ``main.create_app``
and handed to routes through ``app.state``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class UserActivity:
    last_update: float
    pending_update: bool


@dataclass
class ActivityStatus:
    last_update: Optional[float]
    is_pending: bool
    next_update_available: float
    checked_at: float

    @property
    def seconds_until_next_update(self) -> float:
        return max(0.0, self.next_update_available - self.checked_at)


class ActivityTracker:
    def __init__(
        self,
        *,
        window_seconds: int = 300,
        max_users: int = 10_000,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds
        self.max_users = max_users
        self._clock = clock
        self._lock = Lock()
        self._users: Dict[str, UserActivity] = {}

    def _expired(self, record: UserActivity, now: float) -> bool:
        return now - record.last_update >= self.window_seconds

    def should_update_activity(self, user_id: str) -> bool:
        """Permit a write and mark it pending, or refuse without touching state."""
        now = self._clock()
        with self._lock:
            record = self._users.get(user_id)
            if record is not None and not self._expired(record, now):
                return False
            if record is None and len(self._users) >= self.max_users:
                self._sweep_locked(now)
                if len(self._users) >= self.max_users:
                    logger.warning(
                        f"Activity tracker full ({self.max_users} users in window), refusing {user_id}"
                    )
                    return False
            self._users[user_id] = UserActivity(last_update=now, pending_update=True)
            return True

    def mark_activity_updated(self, user_id: str) -> None:
        with self._lock:
            record = self._users.get(user_id)
            if record is not None:
                record.pending_update = False

    def get_activity_status(self, user_id: str) -> ActivityStatus:
        now = self._clock()
        with self._lock:
            record = self._users.get(user_id)
            if record is None:
                return ActivityStatus(last_update=None, is_pending=False, next_update_available=now, checked_at=now)
            return ActivityStatus(
                last_update=record.last_update,
                is_pending=record.pending_update,
                next_update_available=max(now, record.last_update + self.window_seconds),
                checked_at=now,
            )

    def tracked_users_count(self) -> int:
        with self._lock:
            return len(self._users)

    def clear_user_activity(self, user_id: str) -> None:
        with self._lock:
            self._users.pop(user_id, None)

    def clear_all_activity(self) -> None:
        with self._lock:
            self._users.clear()

    def _sweep_locked(self, now: float) -> int:
        stale = [uid for uid, record in self._users.items() if self._expired(record, now)]
        for uid in stale:
            del self._users[uid]
        return len(stale)

    def sweep(self) -> int:
        """Forget users whose window has elapsed. Their next check is permitted either way."""
        with self._lock:
            removed = self._sweep_locked(self._clock())
        if removed:
            logger.info(f"Activity tracker sweep removed {removed} users")
        return removed

    def activity_summary(self) -> dict:
        now = self._clock()
        with self._lock:
            users: List[dict] = [
                {
                    "user_id": uid,
                    "last_update": record.last_update,
                    "pending_update": record.pending_update,
                    "minutes_since_last_update": round((now - record.last_update) / 60, 1),
                }
                for uid, record in self._users.items()
            ]
        return {
            "total_tracked_users": len(users),
            "throttle_window_minutes": self.window_seconds / 60,
            "users": users,
        }
