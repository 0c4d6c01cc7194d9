from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from models.assignment import FileObject, SubmissionStatus
from models.common import UTCDateTime


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    due_date: UTCDateTime
    max_marks: int = Field(100, gt=0)
    allow_late_submission: bool = True
    penalty_percentage: Optional[float] = Field(10, ge=0)

    @field_validator("title", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @model_validator(mode="after")
    def _drop_penalty_without_late_submission(self):
        # The penalty only means something when late work is accepted
        if not self.allow_late_submission:
            self.penalty_percentage = None
        return self


class UploadedFile(BaseModel):
    """A file picked by the student, before it reaches object storage."""
    name: str = Field(min_length=1)
    content: bytes
    type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class GradeSubmission(BaseModel):
    marks: float = Field(ge=0)
    feedback: Optional[str] = ""


class AssignmentOut(BaseModel):
    id: str
    title: str
    description: str
    due_date: datetime
    created_by: str
    max_marks: int
    allow_late_submission: bool
    penalty_percentage: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    # Derived on every read
    is_overdue: bool
    days_until_due: int
    due_status: str
    late_policy: str

    model_config = ConfigDict(from_attributes=True)


class SubmissionOut(BaseModel):
    id: str
    assignment_id: str
    student_id: str
    student_name: Optional[str] = None
    submitted_at: datetime
    files: List[FileObject]
    is_late: bool
    marks: Optional[float] = None
    feedback: Optional[str] = None
    status: SubmissionStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssignmentSummary(BaseModel):
    total_submissions: int
    graded_submissions: int
    late_submissions: int


class TeacherDashboard(BaseModel):
    total_assignments: int
    total_submissions: int
    pending_grading: int
    completed_grading: int


class StudentDashboard(BaseModel):
    total_assignments: int
    completed: int
    pending: int
    overdue: int
    average_score: Optional[float] = None
