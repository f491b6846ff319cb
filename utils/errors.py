"""Exceptions raised by the stores, the OTP ledger and the mail backends."""

from typing import Optional


class AuthServiceError(Exception):
    """Base exception for the auth service"""
    pass


class ConflictError(AuthServiceError):
    """Write rejected because of existing state"""
    pass


class UserExistsError(ConflictError):
    """A user with this email is already registered"""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User already exists: {email}")


class AuthError(AuthServiceError):
    """Bad credentials, or an invalid/expired token"""
    pass


class DeliveryError(AuthServiceError):
    """Email could not be handed to the provider"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitedError(AuthServiceError):
    """Too many requests from one client"""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        super().__init__(message)
