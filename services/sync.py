import asyncio
import enum
import logging
import os
import time
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import ValidationError

from config import get_settings
from crud.assignment import AssignmentCRUD, SubmissionCRUD
from errors import AppError, PermissionDenied, StoreReadFailed, UploadFailed, ValidationFailed
from models.assignment import Assignment, FileObject, Submission
from models.common import utcnow
from models.user import RoleEnum, Session, User
from schemas.assignment import AssignmentCreate, UploadedFile
from services.auth import SIGNED_IN, SIGNED_OUT, AuthClient
from services.profile import ProfileResolver
from services.realtime import ASSIGNMENTS, SUBMISSIONS, ChangeEvent, ChangeFeed, Subscription
from services.stats import is_overdue
from services.storage import FileStorage

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    ANONYMOUS = "anonymous"


class SyncStore:
    """Session-scoped view of the assignment data.

    Holds the signed-in user together with the assignment and submission
    collections, keeps them fresh through change notifications, and runs the
    create/submit/grade operations.
    """

    def __init__(self, auth: AuthClient, resolver: ProfileResolver,
                 assignment_crud: AssignmentCRUD, submission_crud: SubmissionCRUD,
                 storage: FileStorage, feed: ChangeFeed, bucket: Optional[str] = None):
        self.auth = auth
        self.resolver = resolver
        self.assignment_crud = assignment_crud
        self.submission_crud = submission_crud
        self.storage = storage
        self.feed = feed
        self.bucket = bucket or get_settings().STORAGE_BUCKET

        self.state = SessionState.UNINITIALIZED
        self.user: Optional[User] = None
        self.assignments: List[Assignment] = []
        self.submissions: List[Submission] = []

        # Bumped on every user change; fetches started under an older
        # generation are not applied.
        self._generation = 0
        # Per collection: an older fetch finishing late must not overwrite a newer one
        self._fetch_seq = {ASSIGNMENTS: 0, SUBMISSIONS: 0}
        self._applied_seq = {ASSIGNMENTS: 0, SUBMISSIONS: 0}
        self._signing_in = False
        self._subscriptions: List[Subscription] = []
        self._auth_subscription = auth.on_auth_state_change(self._on_auth_event)

    # -------------------- LIFECYCLE -------------------- #
    async def start(self):
        """Pick up an existing session, if there is one."""
        self.state = SessionState.LOADING
        session = await self.auth.get_current_session()
        if session is None:
            self._reset()
            return
        try:
            user = await self.resolver.resolve(session.user_id)
        except AppError as e:
            logger.error("Error fetching user profile: %s", e)
            self._reset()
            return
        await self._set_user(user)

    async def login(self, email: str, password: str, role: RoleEnum) -> User:
        self.state = SessionState.LOADING
        self._signing_in = True
        try:
            user = await self.resolver.sign_in(email, password, role)
        except AppError:
            self._reset()
            raise
        finally:
            self._signing_in = False
        await self._set_user(user)
        return user

    async def logout(self):
        await self.resolver.sign_out()
        # sign_out emits SIGNED_OUT, but a store without a session gets no event
        self._reset()

    def close(self):
        self._generation += 1
        self._unsubscribe_changes()
        self._auth_subscription.unsubscribe()

    async def _on_auth_event(self, event: str, session: Optional[Session]):
        if event == SIGNED_IN and session is not None and not self._signing_in:
            self.state = SessionState.LOADING
            try:
                user = await self.resolver.resolve(session.user_id)
            except AppError as e:
                logger.error("Error fetching user profile: %s", e)
                self._reset()
                return
            await self._set_user(user)
        elif event == SIGNED_OUT:
            self._reset()

    async def _set_user(self, user: User):
        self._generation += 1
        self._unsubscribe_changes()
        self.user = user
        self.state = SessionState.READY
        await self.refresh_all()
        self._subscribe_changes()

    def _reset(self):
        # Full reset: the next session may belong to someone else
        self._generation += 1
        self._unsubscribe_changes()
        self.user = None
        self.assignments = []
        self.submissions = []
        self.state = SessionState.ANONYMOUS

    def _subscribe_changes(self):
        self._subscriptions = [
            self.feed.subscribe(ASSIGNMENTS, self._on_assignments_changed),
            self.feed.subscribe(SUBMISSIONS, self._on_submissions_changed),
        ]

    def _unsubscribe_changes(self):
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    async def _on_assignments_changed(self, event: ChangeEvent):
        await self.fetch_assignments()

    async def _on_submissions_changed(self, event: ChangeEvent):
        await self.fetch_submissions()

    # -------------------- FETCHING -------------------- #
    def _begin_fetch(self, table: str):
        self._fetch_seq[table] += 1
        return self._generation, self._fetch_seq[table]

    def _may_apply(self, table: str, generation: int, seq: int) -> bool:
        if generation != self._generation or self.user is None:
            return False
        if seq < self._applied_seq[table]:
            return False
        self._applied_seq[table] = seq
        return True

    async def fetch_assignments(self):
        generation, seq = self._begin_fetch(ASSIGNMENTS)
        try:
            assignments = await self.assignment_crud.list_assignments()
        except StoreReadFailed as e:
            logger.error("Error fetching assignments: %s", e, exc_info=True)
            return
        if self._may_apply(ASSIGNMENTS, generation, seq):
            self.assignments = assignments

    async def fetch_submissions(self):
        generation, seq = self._begin_fetch(SUBMISSIONS)
        try:
            submissions = await self.submission_crud.list_submissions()
        except StoreReadFailed as e:
            logger.error("Error fetching submissions: %s", e, exc_info=True)
            return
        if self._may_apply(SUBMISSIONS, generation, seq):
            self.submissions = submissions

    async def refresh_all(self):
        await asyncio.gather(self.fetch_assignments(), self.fetch_submissions())

    # -------------------- AUTHORIZATION -------------------- #
    def _require_user(self, role: Optional[RoleEnum] = None) -> User:
        if self.user is None:
            raise PermissionDenied("Sign in first")
        if role is not None and self.user.role != role:
            raise PermissionDenied(f"Only a {role.value} can do this")
        return self.user

    # -------------------- MUTATIONS -------------------- #
    async def create_assignment(self, data) -> Assignment:
        """Create an assignment owned by the signed-in teacher.

        Local state is not touched; the new row arrives with the next
        assignments refresh.
        """
        user = self._require_user(RoleEnum.teacher)
        try:
            payload = data if isinstance(data, AssignmentCreate) else AssignmentCreate(**data)
        except ValidationError as e:
            raise ValidationFailed(str(e)) from e

        assignment_data = payload.model_dump()
        assignment_data["created_by"] = user.id
        assignment = await self.assignment_crud.create_assignment(assignment_data)
        logger.info("Assignment %s created by %s", assignment.id, user.id)
        return assignment

    async def _find_assignment(self, assignment_id: str) -> Assignment:
        assignment = self.get_assignment(assignment_id)
        if assignment is None:
            # Local state may be stale; ask the store before giving up
            assignment = await self.assignment_crud.get_assignment_by_id(assignment_id)
        if assignment is None:
            raise ValidationFailed(f"Assignment {assignment_id} not found")
        return assignment

    async def _upload(self, student_id: str, assignment_id: str, stamp: int,
                      upload: UploadedFile) -> FileObject:
        safe_name = os.path.basename(upload.name.replace("\\", "/"))
        file_name = f"{stamp}-{uuid.uuid4().hex[:8]}-{safe_name}"
        file_path = f"submissions/{student_id}/{assignment_id}/{file_name}"
        await self.storage.upload(self.bucket, file_path, upload.content, upload.type)
        return FileObject(
            name=upload.name,
            url=self.storage.get_public_url(self.bucket, file_path),
            size=upload.size,
            type=upload.type,
        )

    async def submit_assignment(self, assignment_id: str,
                                files: Sequence[UploadedFile]) -> Submission:
        user = self._require_user(RoleEnum.student)
        if not files:
            raise ValidationFailed("Select at least one file to submit")

        max_size = get_settings().MAX_UPLOAD_SIZE
        for upload in files:
            if upload.size > max_size:
                raise ValidationFailed(f"{upload.name} is larger than {max_size} bytes")

        assignment = await self._find_assignment(assignment_id)
        submitted_at = utcnow()
        is_late = is_overdue(assignment, submitted_at)
        if is_late and not assignment.allow_late_submission:
            raise ValidationFailed("This assignment no longer accepts submissions")

        stamp = int(time.time() * 1000)
        try:
            uploaded = await asyncio.gather(*(
                self._upload(user.id, assignment_id, stamp, upload) for upload in files
            ))
        except UploadFailed:
            logger.error("Submission of %s by %s aborted", assignment_id, user.id)
            raise

        submission = await self.submission_crud.upsert_submission(
            assignment_id, user.id, list(uploaded), is_late, submitted_at
        )
        logger.info(
            "Submission %s saved for %s (%d files, late=%s)",
            submission.id, assignment_id, len(uploaded), is_late
        )
        return submission

    async def update_submission(self, submission_id: str, marks: float,
                                feedback: Optional[str] = "") -> Submission:
        self._require_user(RoleEnum.teacher)

        submission = next((s for s in self.submissions if s.id == submission_id), None)
        if submission is None:
            submission = await self.submission_crud.get_submission_by_id(submission_id)
        if submission is None:
            raise ValidationFailed(f"Submission {submission_id} not found")

        assignment = await self._find_assignment(submission.assignment_id)
        if marks is None or not 0 <= marks <= assignment.max_marks:
            raise ValidationFailed(f"Marks must be between 0 and {assignment.max_marks}")

        graded = await self.submission_crud.grade_submission(submission_id, marks, feedback)
        if graded is None:
            raise ValidationFailed(f"Submission {submission_id} not found")
        logger.info("Submission %s graded %s/%s", submission_id, marks, assignment.max_marks)
        return graded

    # -------------------- DERIVED VIEWS -------------------- #
    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        return next((a for a in self.assignments if a.id == assignment_id), None)

    def get_student_submissions(self, student_id: str) -> List[Submission]:
        return [s for s in self.submissions if s.student_id == student_id]

    def get_assignment_submissions(self, assignment_id: str) -> List[Submission]:
        return [s for s in self.submissions if s.assignment_id == assignment_id]

    def _submitted_ids(self, student_id: str) -> set:
        return {s.assignment_id for s in self.get_student_submissions(student_id)}

    def pending_assignments(self, student_id: str) -> List[Assignment]:
        submitted = self._submitted_ids(student_id)
        return [a for a in self.assignments if a.id not in submitted]

    def completed_assignments(self, student_id: str) -> List[Assignment]:
        submitted = self._submitted_ids(student_id)
        return [a for a in self.assignments if a.id in submitted]

    def overdue_assignments(self, student_id: str,
                            now: Optional[datetime] = None) -> List[Assignment]:
        return [a for a in self.pending_assignments(student_id) if is_overdue(a, now)]
