import uuid
from datetime import datetime, timedelta, timezone

import pytest

from formflow.db.enums import AssignmentTargetType, DerivedStatus
from formflow.services import (
    form_assignment_service,
    form_review_service,
    form_submission_service,
)
from formflow.services.errors import AssignmentNotFound, AuthenticationRequired, FormNotFound


NOW = datetime.now(timezone.utc)


def _assign(db, form, target_id=None, due_at=None):
    target_type = AssignmentTargetType.USER if target_id else AssignmentTargetType.ALL
    return form_assignment_service.create_assignment(
        db, form.id, target_type, target_id, due_at, created_by=None
    )


def test_create_user_assignment_requires_target(db, form):
    with pytest.raises(ValueError):
        form_assignment_service.create_assignment(
            db, form.id, AssignmentTargetType.USER, None, None, created_by=None
        )


def test_all_assignment_drops_target_id(db, form):
    assignment = form_assignment_service.create_assignment(
        db, form.id, AssignmentTargetType.ALL, uuid.uuid4(), None, created_by=None
    )

    assert assignment.target_type == "all"
    assert assignment.target_id is None


def test_assignment_for_unknown_form(db):
    with pytest.raises(FormNotFound):
        form_assignment_service.create_assignment(
            db, uuid.uuid4(), AssignmentTargetType.ALL, None, None, created_by=None
        )


def test_list_and_delete_assignments(db, form):
    first = _assign(db, form)
    second = _assign(db, form, target_id=uuid.uuid4())

    listed = form_assignment_service.list_assignments_for_form(db, form.id)
    assert {a.id for a in listed} == {first.id, second.id}

    form_assignment_service.delete_assignment(db, first.id)
    assert [a.id for a in form_assignment_service.list_assignments_for_form(db, form.id)] == [second.id]

    with pytest.raises(AssignmentNotFound):
        form_assignment_service.delete_assignment(db, first.id)


def test_my_forms_only_lists_own_and_everyone_assignments(db, make_form):
    learner = uuid.uuid4()
    mine = make_form(name="Mine")
    everyone = make_form(name="Everyone")
    other = make_form(name="Other")
    _assign(db, mine, target_id=learner)
    _assign(db, everyone)
    _assign(db, other, target_id=uuid.uuid4())

    listed = form_assignment_service.list_assigned_forms(db, learner)

    assert {row.form_name for row in listed} == {"Mine", "Everyone"}
    assert {row.status for row in listed} == {DerivedStatus.NOT_STARTED}


def test_my_forms_listing_order(db, make_form):
    learner = uuid.uuid4()
    reviewer = uuid.uuid4()
    forms = {name: make_form(name=name) for name in ("A", "B", "C", "D")}
    _assign(db, forms["A"], target_id=learner)
    _assign(db, forms["B"], target_id=learner, due_at=NOW + timedelta(days=5))
    _assign(db, forms["C"], target_id=learner)
    _assign(db, forms["D"], target_id=learner, due_at=NOW + timedelta(days=2))

    form_submission_service.submit(db, forms["A"].id, learner, {"name": "Ada"})
    submitted_b = form_submission_service.submit(db, forms["B"].id, learner, {"name": "Ada"})
    form_review_service.reject(db, submitted_b.id, reviewer, "Redo")
    form_submission_service.save(db, forms["C"].id, learner, {"bio": "wip"})

    listed = form_assignment_service.list_assigned_forms(db, learner)

    assert [(row.form_name, row.status) for row in listed] == [
        ("B", DerivedStatus.REJECTED),
        ("C", DerivedStatus.STARTED),
        ("D", DerivedStatus.NOT_STARTED),
        ("A", DerivedStatus.SUBMITTED),
    ]


def test_my_forms_requires_user(db):
    with pytest.raises(AuthenticationRequired):
        form_assignment_service.list_assigned_forms(db, None)


def test_open_marks_started_once(db, form):
    learner = uuid.uuid4()
    _assign(db, form, target_id=learner)

    assignment, read_only = form_assignment_service.open_assignment(db, form.id, learner)
    first_started = assignment.started_at

    assert read_only is False
    assert first_started is not None

    assignment, _ = form_assignment_service.open_assignment(db, form.id, learner)
    assert assignment.started_at == first_started

    listed = form_assignment_service.list_assigned_forms(db, learner)
    assert listed[0].status == DerivedStatus.STARTED


def test_open_submitted_form_is_read_only_and_not_restarted(db, form):
    learner = uuid.uuid4()
    _assign(db, form, target_id=learner)
    form_submission_service.submit(db, form.id, learner, {"name": "Ada"})

    assignment, read_only = form_assignment_service.open_assignment(db, form.id, learner)

    assert read_only is True
    assert assignment.started_at is None


def test_open_without_assignment(db, form):
    assignment, read_only = form_assignment_service.open_assignment(db, form.id, uuid.uuid4())

    assert assignment is None
    assert read_only is False
