# crud/user.py
import logging
from typing import Dict, Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import StoreReadFailed, StoreWriteFailed, ValidationFailed
from models.common import convert_doc_to_model, to_object_id, utcnow
from models.user import User, RoleEnum

logger = logging.getLogger(__name__)


class ProfileCRUD:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.profiles

    async def create_profile(self, user_id: str, name: str, email: str, role: RoleEnum,
                             avatar_url: Optional[str] = None) -> User:
        now = utcnow()
        profile_data = {
            "_id": ObjectId(user_id),
            "name": name,
            "email": email.lower(),
            "role": RoleEnum(role).value,
            "avatar_url": avatar_url,
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self.collection.insert_one(profile_data)
        except DuplicateKeyError as e:
            raise ValidationFailed("A profile with this email already exists") from e
        except PyMongoError as e:
            logger.error("Error creating profile for %s: %s", email, e)
            raise StoreWriteFailed("Failed to create profile") from e
        return convert_doc_to_model(profile_data, User)

    async def get_profile_by_id(self, user_id: str) -> Optional[User]:
        object_id = to_object_id(user_id)
        if object_id is None:
            return None
        try:
            profile = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Error getting profile %s: %s", user_id, e)
            raise StoreReadFailed("Failed to read profile") from e
        return convert_doc_to_model(profile, User)

    async def get_names_by_ids(self, user_ids: Iterable[str]) -> Dict[str, str]:
        """Display names keyed by profile id, for joining onto submissions."""
        object_ids = [oid for oid in (to_object_id(uid) for uid in set(user_ids)) if oid]
        if not object_ids:
            return {}
        try:
            profiles = await self.collection.find(
                {"_id": {"$in": object_ids}}, {"name": 1}
            ).to_list(length=None)
        except PyMongoError as e:
            logger.error("Error getting profile names: %s", e)
            raise StoreReadFailed("Failed to read profiles") from e
        return {str(profile["_id"]): profile.get("name", "") for profile in profiles}
