"""
Employee display ids.

Non-admin users with a joining year get an id like ``2024EMP-007``. The
number is one global sequence ordered by when the joining year was recorded,
so ids stay stable once assigned. The pass is expensive, so it runs at most
once per EMP_ID_REFRESH_SECONDS per process; concurrent callers wait for the
pass already in flight and share its result. A forced call never settles
for a pass that was already running when it arrived.

The guard is per process. Several app instances would each run their own pass;
the result converges either way.
"""
import logging
import threading
import time
from concurrent.futures import Future, wait
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.counter import Counter
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

COUNTER_NAME = "employeeId"
MIN_JOINING_YEAR = 1900
MAX_JOINING_YEAR = 2100


def make_emp_id(joining_year: int, seq: int) -> str:
    return f"{joining_year}EMP-{seq:03d}"


def has_valid_joining_year(user: User) -> bool:
    return user.joining_year is not None and MIN_JOINING_YEAR <= user.joining_year <= MAX_JOINING_YEAR


def _sort_time(value: Optional[datetime]) -> datetime:
    # SQLite hands back naive values; compare everything naive
    if value is None:
        return datetime.min
    return value.replace(tzinfo=None)


class EmployeeIdAssigner:

    def __init__(self, interval_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.interval_seconds = settings.emp_id_refresh_seconds if interval_seconds is None else interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight: Optional[Future] = None
        self._last_run_at: Optional[float] = None
        self._last_result: Optional[Dict] = None

    def reset(self):
        with self._lock:
            self._in_flight = None
            self._last_run_at = None
            self._last_result = None

    def ensure(self, db: Session, force: bool = False) -> Dict:
        if force:
            # A pass already running may have read users before the caller committed
            with self._lock:
                earlier = self._in_flight
            if earlier is not None:
                wait([earlier])

        with self._lock:
            if self._in_flight is not None:
                future, leader = self._in_flight, False
            elif (
                not force
                and self._last_result is not None
                and self._clock() - self._last_run_at < self.interval_seconds
            ):
                return self._last_result
            else:
                future, leader = Future(), True
                self._in_flight = future

        if not leader:
            return future.result()

        try:
            result = self._assign(db)
        except Exception as exc:
            with self._lock:
                self._in_flight = None
            future.set_exception(exc)
            raise

        with self._lock:
            self._last_run_at = self._clock()
            self._last_result = result
            self._in_flight = None
        future.set_result(result)
        return result

    def _assign(self, db: Session) -> Dict:
        users = db.query(User).filter(User.role != UserRole.ADMIN).all()

        # Without a joining year a user keeps no id
        for user in users:
            if not has_valid_joining_year(user) and (user.emp_id or user.joining_year_updated_at):
                user.emp_id = None
                user.joining_year_updated_at = None

        eligible = [u for u in users if has_valid_joining_year(u)]
        for user in eligible:
            if user.joining_year_updated_at is None:
                # Backfilled once so later profile edits cannot reshuffle ids
                user.joining_year_updated_at = user.updated_at or user.created_at or datetime.now(timezone.utc)

        eligible.sort(key=lambda u: (_sort_time(u.joining_year_updated_at), u.id))
        expected = {u.id: make_emp_id(u.joining_year, seq) for seq, u in enumerate(eligible, start=1)}
        stale = [u for u in eligible if u.emp_id != expected[u.id]]

        if stale:
            # Two phases so swapping ids never trips the unique constraint
            for user in eligible:
                user.emp_id = None
            db.flush()
            for user in eligible:
                user.emp_id = expected[user.id]

        counter = db.get(Counter, COUNTER_NAME)
        if counter is None:
            counter = Counter(name=COUNTER_NAME, seq=0)
            db.add(counter)
        counter.seq = max(counter.seq or 0, len(eligible))

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise

        if stale:
            logger.info(f"Employee ids reassigned: {len(stale)} of {len(eligible)} changed")
        return {"changed": bool(stale), "total_with_joining_year": len(eligible), "updated": len(stale)}


employee_id_assigner = EmployeeIdAssigner()
