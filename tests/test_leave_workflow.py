import pytest
from datetime import date
from app.core.exceptions import (
    AccessDeniedError,
    DuplicateAllotmentError,
    InsufficientBalanceError,
    InvalidLeaveRequestError,
    NotAllottedError,
    SelfApprovalForbiddenError,
)
from app.models.audit_log import AuditLog
from app.models.leave_request import HalfDay, LeaveKind, LeaveRequest, LeaveStatus
from app.models.notification import Notification
from app.services.audit import AuditService
from app.services.balance_ledger import BalanceLedger
from app.services.leave_amount import LeaveAmount
from app.services.leave_workflow import AmountSpec, LeaveRequestWorkflow, is_transition_allowed
from app.services.notification import NotificationService

MONDAY = date(2025, 3, 3)


def _allot(db_session, employee, category, actor, amount):
    return BalanceLedger(db_session).allot(employee.id, category.id, amount, actor_id=actor.id)


def _remaining(db_session, employee, category):
    allotment = BalanceLedger(db_session).get_allotment(employee.id, category.id)
    db_session.refresh(allotment)
    return BalanceLedger.stored_remaining(allotment)


def _one_day(workflow, employee, category, day):
    return workflow.submit(employee, category.id, day, day, "Personal errand")


def test_casual_leave_approve_three_then_reject_one(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(10))
    workflow = LeaveRequestWorkflow(db_session)

    requests = [_one_day(workflow, employee, casual_leave, MONDAY.replace(day=3 + i)) for i in range(3)]
    for request in requests:
        workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)
    assert _remaining(db_session, employee, casual_leave) == LeaveAmount.days(7)

    workflow.decide(admin_user, requests[1].id, LeaveStatus.REJECTED, rejection_reason="Team offsite")
    assert _remaining(db_session, employee, casual_leave) == LeaveAmount.days(8)


def test_short_leave_time_range_consumes_minutes(db_session, short_leave, admin_user, employee):
    _allot(db_session, employee, short_leave, admin_user, LeaveAmount.hours_minutes(2, 0))
    workflow = LeaveRequestWorkflow(db_session)

    request = workflow.submit(
        employee, short_leave.id, MONDAY, MONDAY, "Doctor",
        amount_spec=AmountSpec(short_leave_from="08:00", short_leave_to="09:30"),
    )
    assert request.minutes == 90
    workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)

    remaining = _remaining(db_session, employee, short_leave)
    assert (remaining.hours, remaining.minutes) == (0, 30)


def test_approve_then_reject_restores_balance(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    before = _remaining(db_session, employee, casual_leave)

    request = workflow.submit(employee, casual_leave.id, MONDAY, date(2025, 3, 4), "Trip")
    workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)
    assert _remaining(db_session, employee, casual_leave) == LeaveAmount.days(3)

    workflow.decide(admin_user, request.id, LeaveStatus.REJECTED)
    assert _remaining(db_session, employee, casual_leave) == before


def test_exact_balance_allowed_and_over_balance_refused(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(2))
    workflow = LeaveRequestWorkflow(db_session)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        workflow.submit(employee, casual_leave.id, MONDAY, date(2025, 3, 5), "Too long")
    assert exc_info.value.remaining == LeaveAmount.days(2)
    assert exc_info.value.requested == LeaveAmount.days(3)

    request = workflow.submit(employee, casual_leave.id, MONDAY, date(2025, 3, 4), "Just right")
    assert request.status == LeaveStatus.PENDING.value
    assert request.days == 2.0


def test_employee_needs_an_allotment(db_session, casual_leave, employee):
    with pytest.raises(NotAllottedError):
        _one_day(LeaveRequestWorkflow(db_session), employee, casual_leave, MONDAY)


def test_admin_can_file_without_allotment(db_session, casual_leave, admin_user, employee):
    request = LeaveRequestWorkflow(db_session).submit(
        admin_user, casual_leave.id, MONDAY, MONDAY, "Filed by admin", employee_id=employee.id
    )
    assert request.employee_id == employee.id


def test_employee_cannot_file_for_someone_else(db_session, casual_leave, employee, make_user):
    other = make_user()
    with pytest.raises(AccessDeniedError):
        LeaveRequestWorkflow(db_session).submit(
            employee, casual_leave.id, MONDAY, MONDAY, "Covering", employee_id=other.id
        )


def test_half_day_is_half_a_day(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(1))
    workflow = LeaveRequestWorkflow(db_session)
    request = workflow.submit(
        employee, casual_leave.id, MONDAY, MONDAY, "Afternoon off",
        amount_spec=AmountSpec(half_day=HalfDay.SECOND_HALF),
    )
    assert request.days == 0.5
    assert request.half_day == "second-half"

    with pytest.raises(InvalidLeaveRequestError):
        workflow.submit(
            employee, casual_leave.id, MONDAY, date(2025, 3, 4), "Two halves",
            amount_spec=AmountSpec(half_day=HalfDay.FIRST_HALF),
        )


def test_amount_shape_must_match_category_unit(db_session, casual_leave, short_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    _allot(db_session, employee, short_leave, admin_user, LeaveAmount.hours_minutes(4, 0))
    workflow = LeaveRequestWorkflow(db_session)

    with pytest.raises(InvalidLeaveRequestError):
        workflow.submit(
            employee, casual_leave.id, MONDAY, MONDAY, "x",
            amount_spec=AmountSpec(short_leave_from="10:00", short_leave_to="11:00"),
        )
    with pytest.raises(InvalidLeaveRequestError):
        workflow.submit(employee, short_leave.id, MONDAY, MONDAY, "no range")
    with pytest.raises(InvalidLeaveRequestError):
        workflow.submit(
            employee, short_leave.id, MONDAY, MONDAY, "backwards",
            amount_spec=AmountSpec(short_leave_from="11:00", short_leave_to="10:00"),
        )
    with pytest.raises(InvalidLeaveRequestError):
        workflow.submit(employee, casual_leave.id, date(2025, 3, 5), MONDAY, "end before start")


def test_short_leave_must_fit_in_one_day(db_session, short_leave, admin_user, employee):
    _allot(db_session, employee, short_leave, admin_user, LeaveAmount.hours_minutes(10, 0))
    with pytest.raises(InvalidLeaveRequestError):
        LeaveRequestWorkflow(db_session).submit(
            employee, short_leave.id, MONDAY, date(2025, 3, 5), "three mornings",
            amount_spec=AmountSpec(short_leave_from="08:00", short_leave_to="09:00"),
        )
    assert db_session.query(LeaveRequest).count() == 0


def test_hr_cannot_decide_own_request(db_session, casual_leave, admin_user, hr_user):
    _allot(db_session, hr_user, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, hr_user, casual_leave, MONDAY)

    with pytest.raises(SelfApprovalForbiddenError):
        workflow.decide(hr_user, request.id, LeaveStatus.APPROVED)

    decided = workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)
    assert decided.approver_id == admin_user.id


def test_employee_cannot_decide(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, employee, casual_leave, MONDAY)
    with pytest.raises(AccessDeniedError):
        workflow.decide(employee, request.id, LeaveStatus.APPROVED)


def test_approval_rechecks_balance(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(3))
    workflow = LeaveRequestWorkflow(db_session)
    first = workflow.submit(employee, casual_leave.id, MONDAY, date(2025, 3, 4), "a")
    second = workflow.submit(employee, casual_leave.id, date(2025, 3, 10), date(2025, 3, 11), "b")

    workflow.decide(admin_user, first.id, LeaveStatus.APPROVED)
    with pytest.raises(InsufficientBalanceError):
        workflow.decide(admin_user, second.id, LeaveStatus.APPROVED)
    db_session.refresh(second)
    assert second.status == LeaveStatus.PENDING.value


def test_decisions_are_recorded_in_deduction_history(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, employee, casual_leave, MONDAY)
    workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)
    workflow.decide(admin_user, request.id, LeaveStatus.REJECTED)

    history = AuditService(db_session).deduction_history(employee.id)
    assert [entry.action for entry in history] == ["leave_restored", "leave_deducted"]
    assert history[1].details["remaining"] == "4 days"
    # History lives in the audit log, never as extra leave requests
    assert db_session.query(LeaveRequest).count() == 1


def test_deleting_approved_request_restores_balance(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, employee, casual_leave, MONDAY)
    workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)

    with pytest.raises(AccessDeniedError):
        workflow.delete_request(employee, request.id)

    workflow.delete_request(admin_user, request.id)
    assert _remaining(db_session, employee, casual_leave) == LeaveAmount.days(5)


def test_employee_can_withdraw_pending_request(db_session, casual_leave, admin_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, employee, casual_leave, MONDAY)
    workflow.delete_request(employee, request.id)
    assert db_session.get(LeaveRequest, request.id) is None


def test_edit_allotment_recomputes_remaining(db_session, casual_leave, admin_user, employee):
    allotment = _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, employee, casual_leave, MONDAY)
    workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)

    edited = workflow.edit_allotment(admin_user, allotment.id, days=12, note="Annual top-up")
    assert edited.granted_days == 12.0
    assert edited.remaining_days == 11.0
    assert edited.note == "Annual top-up"


def test_edit_allotment_cannot_duplicate_a_pair(db_session, casual_leave, admin_user, employee, make_user):
    from app.services.leave_categories import LeaveCategoryRegistry
    sick = LeaveCategoryRegistry(db_session).create("Sick Leave")
    casual = _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    _allot(db_session, employee, sick, admin_user, LeaveAmount.days(5))

    with pytest.raises(DuplicateAllotmentError):
        LeaveRequestWorkflow(db_session).edit_allotment(admin_user, casual.id, category_id=sick.id)


def test_listing_is_scoped_for_employees(db_session, casual_leave, admin_user, employee, make_user):
    other = make_user()
    for person in (employee, other):
        _allot(db_session, person, casual_leave, admin_user, LeaveAmount.days(5))
        _one_day(LeaveRequestWorkflow(db_session), person, casual_leave, MONDAY)
    workflow = LeaveRequestWorkflow(db_session)

    assert {r.employee_id for r in workflow.list_requests(employee)} == {employee.id}
    assert len(workflow.list_requests(admin_user)) == 2
    assert len(workflow.list_requests(admin_user, employee_id=other.id)) == 1


def test_penalty_deductions_hidden_unless_requested(db_session, casual_leave, admin_user, employee):
    db_session.add(LeaveRequest(
        employee_id=employee.id, category_id=casual_leave.id, days=0.5, minutes=0,
        start_date=MONDAY, end_date=MONDAY, reason="Penalty", status=LeaveStatus.APPROVED.value,
        kind=LeaveKind.PENALTY_DEDUCTION.value, penalty_day=MONDAY,
    ))
    db_session.commit()
    workflow = LeaveRequestWorkflow(db_session)
    assert workflow.list_requests(admin_user) == []
    assert len(workflow.list_requests(admin_user, include_system=True)) == 1


def test_employees_on_leave(db_session, casual_leave, admin_user, employee, make_user):
    other = make_user()
    workflow = LeaveRequestWorkflow(db_session)
    away = workflow.submit(admin_user, casual_leave.id, MONDAY, date(2025, 3, 5), "Away", employee_id=employee.id)
    workflow.submit(admin_user, casual_leave.id, MONDAY, MONDAY, "Pending only", employee_id=other.id)
    workflow.decide(admin_user, away.id, LeaveStatus.APPROVED)

    assert workflow.employees_on_leave(date(2025, 3, 4)) == [employee.id]
    assert workflow.employees_on_leave(date(2025, 3, 6)) == []


def test_allotted_categories(db_session, casual_leave, short_leave, admin_user, employee):
    _allot(db_session, employee, short_leave, admin_user, LeaveAmount.hours_minutes(1, 0))
    names = [c.name for c in LeaveRequestWorkflow(db_session).allotted_categories(employee.id)]
    assert names == ["Short Day Leave"]


def test_notifications_are_sent_to_approvers_and_employee(db_session, casual_leave, admin_user, hr_user, employee):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, employee, casual_leave, MONDAY)

    pushed_to = {n.user_id for n in db_session.query(Notification).all()}
    assert pushed_to == {admin_user.id, hr_user.id}

    workflow.decide(hr_user, request.id, LeaveStatus.APPROVED)
    mine = db_session.query(Notification).filter(Notification.user_id == employee.id).all()
    assert [n.title for n in mine] == ["Leave Approved"]


def test_notification_failure_does_not_undo_decision(db_session, casual_leave, admin_user, employee, monkeypatch):
    _allot(db_session, employee, casual_leave, admin_user, LeaveAmount.days(5))
    workflow = LeaveRequestWorkflow(db_session)
    request = _one_day(workflow, employee, casual_leave, MONDAY)

    def broken_email(*args, **kwargs):
        raise ConnectionError("SMTP down")
    monkeypatch.setattr(NotificationService, "send_email", staticmethod(broken_email))

    decided = workflow.decide(admin_user, request.id, LeaveStatus.APPROVED)
    assert decided.status == LeaveStatus.APPROVED.value
    assert _remaining(db_session, employee, casual_leave) == LeaveAmount.days(4)
    assert db_session.query(AuditLog).filter(AuditLog.action == "leave_deducted").count() == 1


def test_transition_rules():
    assert is_transition_allowed("pending", "approved")
    assert is_transition_allowed("pending", "rejected")
    assert is_transition_allowed("approved", "rejected")
    assert not is_transition_allowed("rejected", "approved")
    assert not is_transition_allowed("approved", "approved")
    assert not is_transition_allowed("approved", "pending")
