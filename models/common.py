from datetime import datetime, timezone
from typing import Annotated, Optional

from bson import ObjectId
from pydantic import AfterValidator


def as_utc(value: datetime) -> datetime:
    # MongoDB hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


def to_object_id(value: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


# Helper function to convert MongoDB document to model
def convert_doc_to_model(doc, model_class):
    if doc and '_id' in doc:
        doc['_id'] = str(doc['_id'])
    return model_class(**doc) if doc else None
