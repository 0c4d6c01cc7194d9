import logging
from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from crud.user import ProfileCRUD
from errors import StoreReadFailed, StoreWriteFailed
from models.assignment import Assignment, FileObject, Submission, SubmissionStatus
from models.common import convert_doc_to_model, to_object_id, utcnow
from services.realtime import ASSIGNMENTS, SUBMISSIONS, ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)

UNKNOWN_STUDENT = "Unknown Student"


def _convert(doc, model_class, what: str):
    try:
        return convert_doc_to_model(doc, model_class)
    except ValidationError as e:
        logger.error("Malformed %s %s: %s", what, doc.get("_id"), e)
        raise StoreReadFailed(f"Stored {what} is invalid") from e


class _NotifyingCRUD:
    table: str

    def __init__(self, db: AsyncIOMotorDatabase, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.collection = db[self.table]
        # None when another transport (change streams) reports writes
        self.feed = feed

    async def _notify(self, event_type: str, record_id):
        if self.feed is not None:
            await self.feed.publish(ChangeEvent(
                table=self.table,
                event_type=event_type,
                record_id=str(record_id) if record_id is not None else None
            ))


# Assignment CRUD Operations
class AssignmentCRUD(_NotifyingCRUD):
    table = ASSIGNMENTS

    async def create_assignment(self, assignment_data: dict) -> Assignment:
        # Add timestamps
        now = utcnow()
        assignment_data['created_at'] = now
        assignment_data['updated_at'] = now
        assignment_data['_id'] = ObjectId()

        try:
            result = await self.collection.insert_one(assignment_data)
        except PyMongoError as e:
            logger.error("Error creating assignment: %s", e)
            raise StoreWriteFailed("Failed to create assignment") from e

        await self._notify("INSERT", result.inserted_id)
        return convert_doc_to_model(dict(assignment_data), Assignment)

    async def list_assignments(self) -> List[Assignment]:
        """All assignments, newest first."""
        try:
            assignments = await self.collection.find().sort(
                "created_at", DESCENDING
            ).to_list(length=None)
        except PyMongoError as e:
            raise StoreReadFailed("Failed to fetch assignments") from e
        return [_convert(assignment, Assignment, "assignment") for assignment in assignments]

    async def get_assignment_by_id(self, assignment_id: str) -> Optional[Assignment]:
        object_id = to_object_id(assignment_id)
        if object_id is None:
            return None
        try:
            assignment = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            raise StoreReadFailed("Failed to fetch assignment") from e
        return _convert(assignment, Assignment, "assignment")


# Submission CRUD Operations
class SubmissionCRUD(_NotifyingCRUD):
    table = SUBMISSIONS

    def __init__(self, db: AsyncIOMotorDatabase, feed: Optional[ChangeFeed] = None):
        super().__init__(db, feed)
        self.profiles = ProfileCRUD(db)

    async def list_submissions(self) -> List[Submission]:
        """All submissions, newest first, with the student's display name joined in."""
        try:
            submissions = await self.collection.find().sort(
                "created_at", DESCENDING
            ).to_list(length=None)
        except PyMongoError as e:
            raise StoreReadFailed("Failed to fetch submissions") from e

        names = await self.profiles.get_names_by_ids(s["student_id"] for s in submissions)
        for submission in submissions:
            submission["student_name"] = names.get(submission["student_id"]) or UNKNOWN_STUDENT
        return [_convert(submission, Submission, "submission") for submission in submissions]

    async def get_submission_by_id(self, submission_id: str) -> Optional[Submission]:
        object_id = to_object_id(submission_id)
        if object_id is None:
            return None
        try:
            submission = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            raise StoreReadFailed("Failed to fetch submission") from e
        return _convert(submission, Submission, "submission")

    async def upsert_submission(self, assignment_id: str, student_id: str,
                                files: List[FileObject], is_late: bool,
                                submitted_at: datetime) -> Submission:
        """Insert or replace the one submission of a student for an assignment.

        A resubmission starts over: status goes back to submitted and any
        previous grade is cleared.
        """
        key = {"assignment_id": assignment_id, "student_id": student_id}
        update = {
            "$set": {
                "files": [f.model_dump() for f in files],
                "is_late": is_late,
                "status": SubmissionStatus.SUBMITTED.value,
                "submitted_at": submitted_at,
                "updated_at": submitted_at,
            },
            "$unset": {"marks": "", "feedback": ""},
            "$setOnInsert": {"created_at": submitted_at},
        }
        try:
            try:
                result = await self.collection.update_one(key, update, upsert=True)
            except DuplicateKeyError:
                # A concurrent upsert inserted the row first; update that row
                result = await self.collection.update_one(key, update)
            submission = await self.collection.find_one(key)
        except PyMongoError as e:
            logger.error("Error saving submission for %s/%s: %s", assignment_id, student_id, e)
            raise StoreWriteFailed("Failed to save submission") from e

        event_type = "INSERT" if result.upserted_id is not None else "UPDATE"
        await self._notify(event_type, submission["_id"])
        return _convert(submission, Submission, "submission")

    async def grade_submission(self, submission_id: str, marks: float,
                               feedback: Optional[str]) -> Optional[Submission]:
        object_id = to_object_id(submission_id)
        if object_id is None:
            return None
        update_data = {
            "marks": marks,
            "feedback": feedback,
            "status": SubmissionStatus.GRADED.value,
            "updated_at": utcnow()
        }
        try:
            result = await self.collection.update_one(
                {"_id": object_id},
                {"$set": update_data}
            )
        except PyMongoError as e:
            logger.error("Error grading submission %s: %s", submission_id, e)
            raise StoreWriteFailed("Failed to save grade") from e
        if result.matched_count == 0:
            return None

        await self._notify("UPDATE", object_id)
        return await self.get_submission_by_id(submission_id)
