import math
from datetime import datetime
from typing import Iterable, List, Optional

from models.assignment import Assignment, Submission, SubmissionStatus
from models.common import as_utc, utcnow
from schemas.assignment import AssignmentSummary, StudentDashboard, TeacherDashboard

SECONDS_PER_DAY = 60 * 60 * 24


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else utcnow()


def is_overdue(assignment: Assignment, now: Optional[datetime] = None) -> bool:
    return _now(now) > assignment.due_date


def days_until_due(assignment: Assignment, now: Optional[datetime] = None) -> int:
    """Whole days left, rounded up. Zero or negative once the due date is reached."""
    remaining = (assignment.due_date - _now(now)).total_seconds()
    return math.ceil(remaining / SECONDS_PER_DAY)


def days_overdue(assignment: Assignment, now: Optional[datetime] = None) -> int:
    """Days past the due date, counted like ``days_until_due``.

    Late by less than a whole day still reads as one day.
    """
    if not is_overdue(assignment, now):
        return 0
    return max(1, -days_until_due(assignment, now))


def _days(count: int) -> str:
    return f"{count} day" if count == 1 else f"{count} days"


def due_status_text(assignment: Assignment, now: Optional[datetime] = None) -> str:
    if is_overdue(assignment, now):
        return f"Overdue by {_days(days_overdue(assignment, now))}"
    days = days_until_due(assignment, now)
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    return f"{days} days remaining"


def late_policy_text(assignment: Assignment) -> str:
    if not assignment.allow_late_submission:
        return "No late submissions"
    if assignment.penalty_percentage:
        return f"Late allowed ({assignment.penalty_percentage:g}% penalty)"
    return "Late allowed"


def late_penalty_text(assignment: Assignment) -> Optional[str]:
    """Warning shown to a student about to hand in late work."""
    if not assignment.allow_late_submission or not assignment.penalty_percentage:
        return None
    return f"Late penalty: {assignment.penalty_percentage:g}% per day"


def grade_percentage(submission: Submission, assignment: Assignment) -> Optional[int]:
    if submission.marks is None:
        return None
    return round(submission.marks / assignment.max_marks * 100)


def average_score(submissions: Iterable[Submission]) -> Optional[float]:
    """Mean marks over graded submissions; ungraded ones are left out entirely."""
    marks = [s.marks for s in submissions if s.marks is not None]
    if not marks:
        return None
    return sum(marks) / len(marks)


def assignment_summary(submissions: List[Submission]) -> AssignmentSummary:
    return AssignmentSummary(
        total_submissions=len(submissions),
        graded_submissions=sum(1 for s in submissions if s.status == SubmissionStatus.GRADED),
        late_submissions=sum(1 for s in submissions if s.is_late),
    )


def teacher_dashboard(assignments: List[Assignment],
                      submissions: List[Submission]) -> TeacherDashboard:
    return TeacherDashboard(
        total_assignments=len(assignments),
        total_submissions=len(submissions),
        pending_grading=sum(1 for s in submissions if s.status == SubmissionStatus.SUBMITTED),
        completed_grading=sum(1 for s in submissions if s.status == SubmissionStatus.GRADED),
    )


def student_dashboard(assignments: List[Assignment], submissions: List[Submission],
                      now: Optional[datetime] = None) -> StudentDashboard:
    """Counts for one student; ``submissions`` must already be that student's."""
    submitted_ids = {s.assignment_id for s in submissions}
    pending = [a for a in assignments if a.id not in submitted_ids]
    return StudentDashboard(
        total_assignments=len(assignments),
        completed=len(assignments) - len(pending),
        pending=len(pending),
        overdue=sum(1 for a in pending if is_overdue(a, now)),
        average_score=average_score(submissions),
    )
