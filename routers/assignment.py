from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from config import get_settings
from dependencies import get_store, require_student, require_teacher
from errors import ValidationFailed
from models.assignment import Assignment
from schemas.assignment import (
    AssignmentCreate, AssignmentOut, AssignmentSummary, GradeSubmission,
    StudentDashboard, SubmissionOut, TeacherDashboard, UploadedFile
)
from services import stats
from services.sync import SyncStore

router = APIRouter(prefix="/assignments", tags=["Assignments"])


def _assignment_out(assignment: Assignment) -> AssignmentOut:
    return AssignmentOut(
        **assignment.model_dump(),
        is_overdue=stats.is_overdue(assignment),
        days_until_due=stats.days_until_due(assignment),
        due_status=stats.due_status_text(assignment),
        late_policy=stats.late_policy_text(assignment),
    )


def _submission_out(submission) -> SubmissionOut:
    return SubmissionOut.model_validate(submission)


async def _read_upload(file: UploadFile, max_size: int) -> bytes:
    """Read at most max_size bytes; larger uploads are refused without buffering them."""
    name = file.filename or "upload"
    if file.size is not None and file.size > max_size:
        raise ValidationFailed(f"{name} is larger than {max_size} bytes")
    content = await file.read(max_size + 1)
    if len(content) > max_size:
        raise ValidationFailed(f"{name} is larger than {max_size} bytes")
    return content


def _get_assignment_or_404(store: SyncStore, assignment_id: str) -> Assignment:
    assignment = store.get_assignment(assignment_id)
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )
    return assignment


# -------------------- ASSIGNMENTS -------------------- #
@router.get("/", response_model=List[AssignmentOut])
async def get_assignments(store: SyncStore = Depends(get_store)):
    """All assignments, newest first"""
    return [_assignment_out(a) for a in store.assignments]


@router.post("/", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    assignment_data: AssignmentCreate,
    store: SyncStore = Depends(require_teacher)
):
    """Create a new assignment (Teacher only)"""
    assignment = await store.create_assignment(assignment_data)
    return _assignment_out(assignment)


@router.get("/dashboard", response_model=Union[TeacherDashboard, StudentDashboard])
async def get_dashboard(store: SyncStore = Depends(get_store)):
    """Headline numbers for the signed-in user's dashboard"""
    if store.user.is_teacher:
        return stats.teacher_dashboard(store.assignments, store.submissions)
    return stats.student_dashboard(
        store.assignments, store.get_student_submissions(store.user.id)
    )


@router.get("/pending", response_model=List[AssignmentOut])
async def get_pending_assignments(store: SyncStore = Depends(require_student)):
    """Assignments the student has not submitted yet"""
    return [_assignment_out(a) for a in store.pending_assignments(store.user.id)]


@router.get("/submissions/mine", response_model=List[SubmissionOut])
async def get_my_submissions(store: SyncStore = Depends(require_student)):
    """Get current user's submissions"""
    return [_submission_out(s) for s in store.get_student_submissions(store.user.id)]


@router.put("/submissions/{submission_id}/grade", response_model=SubmissionOut)
async def grade_submission(
    submission_id: str,
    grade_data: GradeSubmission,
    store: SyncStore = Depends(require_teacher)
):
    """Grade a submission (Teacher only)"""
    graded = await store.update_submission(submission_id, grade_data.marks, grade_data.feedback)
    return _submission_out(graded)


@router.get("/{assignment_id}", response_model=AssignmentOut)
async def get_assignment(assignment_id: str, store: SyncStore = Depends(get_store)):
    """Get a specific assignment"""
    return _assignment_out(_get_assignment_or_404(store, assignment_id))


@router.get("/{assignment_id}/summary", response_model=AssignmentSummary)
async def get_assignment_summary(
    assignment_id: str,
    store: SyncStore = Depends(require_teacher)
):
    _get_assignment_or_404(store, assignment_id)
    return stats.assignment_summary(store.get_assignment_submissions(assignment_id))


@router.get("/{assignment_id}/submissions", response_model=List[SubmissionOut])
async def get_assignment_submissions(
    assignment_id: str,
    store: SyncStore = Depends(require_teacher)
):
    """Get all submissions for an assignment (Teacher only)"""
    _get_assignment_or_404(store, assignment_id)
    return [_submission_out(s) for s in store.get_assignment_submissions(assignment_id)]


@router.post("/{assignment_id}/submit", response_model=SubmissionOut)
async def submit_assignment(
    assignment_id: str,
    files: List[UploadFile] = File(...),
    store: SyncStore = Depends(require_student)
):
    """Submit one or more files; a resubmission replaces the previous one"""
    max_size = get_settings().MAX_UPLOAD_SIZE
    uploads = [
        UploadedFile(
            name=file.filename or "upload",
            content=await _read_upload(file, max_size),
            type=file.content_type or "application/octet-stream"
        )
        for file in files
    ]
    submission = await store.submit_assignment(assignment_id, uploads)
    return _submission_out(submission)


@router.get("/{assignment_id}/late-penalty", response_model=Optional[str])
async def get_late_penalty(assignment_id: str, store: SyncStore = Depends(get_store)):
    """Penalty warning for submitting now, if any"""
    assignment = _get_assignment_or_404(store, assignment_id)
    if not stats.is_overdue(assignment):
        return None
    return stats.late_penalty_text(assignment)
