from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from models.assignment import Assignment, Submission, SubmissionStatus
from schemas.assignment import AssignmentCreate

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def assignment_fields(**overrides):
    fields = dict(
        _id="a1", title="Essay", description="", due_date=NOW, created_by="t1",
        max_marks=100, allow_late_submission=True, penalty_percentage=10,
        created_at=NOW, updated_at=NOW,
    )
    fields.update(overrides)
    return fields


def test_penalty_requires_late_submission():
    with pytest.raises(ValidationError):
        Assignment(**assignment_fields(allow_late_submission=False, penalty_percentage=5))

    assignment = Assignment(**assignment_fields(allow_late_submission=False, penalty_percentage=None))
    assert assignment.penalty_percentage is None


def test_max_marks_must_be_positive():
    with pytest.raises(ValidationError):
        Assignment(**assignment_fields(max_marks=0))


def test_naive_datetimes_from_the_store_are_utc():
    assignment = Assignment(**assignment_fields(due_date=datetime(2024, 3, 10, 12, 0)))
    assert assignment.due_date == NOW
    assert assignment.due_date.tzinfo is not None


def test_graded_submission_needs_marks():
    fields = dict(
        _id="s1", assignment_id="a1", student_id="st1", submitted_at=NOW,
        created_at=NOW, updated_at=NOW, status=SubmissionStatus.GRADED,
    )
    with pytest.raises(ValidationError):
        Submission(**fields)

    graded = Submission(**fields, marks=42, feedback="ok")
    assert graded.is_graded


def test_create_payload_drops_penalty_when_late_not_allowed():
    payload = AssignmentCreate(
        title="Essay", description="Describe", due_date=NOW,
        allow_late_submission=False, penalty_percentage=20,
    )
    assert payload.penalty_percentage is None


def test_create_payload_defaults():
    payload = AssignmentCreate(title="Essay", description="Describe", due_date=NOW)
    assert payload.max_marks == 100
    assert payload.allow_late_submission is True
    assert payload.penalty_percentage == 10


def test_create_payload_rejects_empty_description():
    with pytest.raises(ValidationError):
        AssignmentCreate(title="Essay", description="  ", due_date=NOW)
