# errors.py
from typing import Optional


class AppError(Exception):
    """Base class for every failure the store and its collaborators raise."""

    default_message = "Application error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationFailed(AppError):
    default_message = "Invalid email or password"


class RoleMismatch(AppError):
    default_message = "Account role does not match the requested dashboard"


class ProfileNotFound(AppError):
    default_message = "Profile not found"


class PermissionDenied(AppError):
    default_message = "You are not allowed to perform this action"


class ValidationFailed(AppError):
    default_message = "Invalid input"


class UploadFailed(AppError):
    default_message = "File upload failed"


class StoreWriteFailed(AppError):
    default_message = "Failed to write to the data store"


class StoreReadFailed(AppError):
    default_message = "Failed to read from the data store"
