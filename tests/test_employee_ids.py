import pytest
import threading
from datetime import datetime, timezone
from app.models.counter import Counter
from app.models.user import UserRole
from app.services.employee_ids import EmployeeIdAssigner, make_emp_id


def test_emp_id_format():
    assert make_emp_id(2024, 7) == "2024EMP-007"
    assert make_emp_id(2019, 1234) == "2019EMP-1234"


def test_ids_follow_one_global_sequence(db_session, make_user):
    early = make_user(joining_year=2023, joining_year_updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    late = make_user(joining_year=2021, joining_year_updated_at=datetime(2024, 6, 1, tzinfo=timezone.utc))
    no_year = make_user()
    admin = make_user(UserRole.ADMIN, joining_year=2020)

    result = EmployeeIdAssigner(interval_seconds=300).ensure(db_session)

    assert result["changed"] is True
    assert result["total_with_joining_year"] == 2
    assert early.emp_id == "2023EMP-001"
    assert late.emp_id == "2021EMP-002"
    assert no_year.emp_id is None
    assert admin.emp_id is None
    assert db_session.get(Counter, "employeeId").seq == 2


def test_removing_joining_year_clears_id(db_session, make_user):
    user = make_user(joining_year=2022)
    assigner = EmployeeIdAssigner(interval_seconds=0)
    assigner.ensure(db_session)
    assert user.emp_id == "2022EMP-001"

    user.joining_year = None
    db_session.commit()
    assigner.ensure(db_session)
    assert user.emp_id is None
    assert user.joining_year_updated_at is None


def test_invalid_joining_year_gets_no_id(db_session, make_user):
    user = make_user(joining_year=1850)
    EmployeeIdAssigner(interval_seconds=0).ensure(db_session)
    assert user.emp_id is None


def test_second_pass_within_interval_is_cached(db_session, make_user):
    make_user(joining_year=2022)
    now = {"t": 1000.0}
    assigner = EmployeeIdAssigner(interval_seconds=300, clock=lambda: now["t"])

    first = assigner.ensure(db_session)
    make_user(joining_year=2023)
    assert assigner.ensure(db_session) is first

    now["t"] += 301
    refreshed = assigner.ensure(db_session)
    assert refreshed["total_with_joining_year"] == 2


def test_concurrent_callers_share_the_in_flight_pass(db_session, monkeypatch):
    assigner = EmployeeIdAssigner(interval_seconds=300)
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_assign(db):
        calls.append(db)
        started.set()
        release.wait(timeout=5)
        return {"changed": False, "total_with_joining_year": 0, "updated": 0}
    monkeypatch.setattr(assigner, "_assign", slow_assign)

    results = []
    leader = threading.Thread(target=lambda: results.append(assigner.ensure(db_session)))
    leader.start()
    assert started.wait(timeout=5)
    follower = threading.Thread(target=lambda: results.append(assigner.ensure(db_session)))
    follower.start()
    release.set()
    leader.join(timeout=5)
    follower.join(timeout=5)

    assert len(calls) == 1
    assert len(results) == 2
    assert results[0] is results[1]


def test_forced_call_does_not_reuse_a_pass_started_earlier(db_session, monkeypatch):
    assigner = EmployeeIdAssigner(interval_seconds=300)
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_assign(db):
        calls.append(db)
        if len(calls) == 1:
            started.set()
            release.wait(timeout=5)
            return {"changed": False, "total_with_joining_year": 0, "updated": 0}
        return {"changed": True, "total_with_joining_year": 1, "updated": 1}
    monkeypatch.setattr(assigner, "_assign", slow_assign)

    results = {}
    earlier = threading.Thread(target=lambda: results.setdefault("earlier", assigner.ensure(db_session)))
    earlier.start()
    assert started.wait(timeout=5)
    forced = threading.Thread(target=lambda: results.setdefault("forced", assigner.ensure(db_session, force=True)))
    forced.start()
    release.set()
    earlier.join(timeout=5)
    forced.join(timeout=5)

    assert len(calls) == 2
    assert results["earlier"]["updated"] == 0
    assert results["forced"]["updated"] == 1
