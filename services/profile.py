import logging

from crud.user import ProfileCRUD
from errors import AppError, ProfileNotFound, RoleMismatch
from models.user import RoleEnum, User
from services.auth import AuthClient

logger = logging.getLogger(__name__)


class ProfileResolver:
    """Turns an authenticated identity into the application's User."""

    def __init__(self, auth: AuthClient, profiles: ProfileCRUD):
        self.auth = auth
        self.profiles = profiles

    async def resolve(self, user_id: str) -> User:
        profile = await self.profiles.get_profile_by_id(user_id)
        if profile is None:
            raise ProfileNotFound(f"No profile for user {user_id}")
        return profile

    async def sign_in(self, email: str, password: str, role: RoleEnum) -> User:
        """Sign in for a role-specific dashboard.

        Any failure after the credentials were accepted signs the session
        out again before the error propagates.
        """
        session = await self.auth.sign_in(email, password)
        try:
            profile = await self.resolve(session.user_id)
            if profile.role != RoleEnum(role):
                raise RoleMismatch(
                    f"This account is a {profile.role.value}, not a {RoleEnum(role).value}"
                )
        except AppError:
            await self.auth.sign_out()
            raise

        logger.info("User %s signed in as %s", profile.id, profile.role.value)
        return profile

    async def sign_out(self):
        await self.auth.sign_out()
