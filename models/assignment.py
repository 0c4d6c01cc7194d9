from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator
from enum import Enum

from models.common import UTCDateTime


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    GRADED = "graded"


class FileObject(BaseModel):
    name: str
    url: str
    size: int = Field(ge=0)
    type: str

    model_config = ConfigDict(frozen=True)


class Assignment(BaseModel):
    id: str = Field(alias="_id")
    title: str
    description: str = ""
    due_date: UTCDateTime
    created_by: str
    max_marks: int = Field(gt=0)
    allow_late_submission: bool = False
    penalty_percentage: Optional[float] = Field(None, ge=0)
    created_at: UTCDateTime
    updated_at: UTCDateTime

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )

    @model_validator(mode="after")
    def _penalty_needs_late_submission(self):
        if self.penalty_percentage is not None and not self.allow_late_submission:
            raise ValueError("penalty_percentage is only allowed with late submission")
        return self


class Submission(BaseModel):
    id: str = Field(alias="_id")
    assignment_id: str
    student_id: str
    student_name: Optional[str] = None
    submitted_at: UTCDateTime
    files: List[FileObject] = Field(default_factory=list)
    is_late: bool = False
    marks: Optional[float] = Field(None, ge=0)
    feedback: Optional[str] = None
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    created_at: UTCDateTime
    updated_at: UTCDateTime

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )

    @model_validator(mode="after")
    def _graded_needs_marks(self):
        if self.status == SubmissionStatus.GRADED and self.marks is None:
            raise ValueError("a graded submission must carry marks")
        return self

    @property
    def is_graded(self) -> bool:
        return self.status == SubmissionStatus.GRADED
