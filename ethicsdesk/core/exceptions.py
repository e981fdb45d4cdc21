"""
Custom Exceptions

Centralized exception definitions for better error handling.
FastAPI automatically converts these to appropriate HTTP responses.
"""
from fastapi import HTTPException, status


class OrganizationNotFoundError(HTTPException):
    """Raised when an organization cannot be found."""

    def __init__(self, identifier: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Organization not found: {identifier}" if identifier else "Organization not found"
        )


class UserNotFoundError(HTTPException):
    """Raised when user cannot be found."""

    def __init__(self, user_id: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User not found: {user_id}" if user_id else "User not found"
        )


class CaseNotFoundError(HTTPException):
    """Raised when a case cannot be found in the caller's organization."""

    def __init__(self, case_id: str = "", label: str = "Case"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} with ID {case_id} not found" if case_id else f"{label} not found"
        )


class ReportNotFoundError(HTTPException):
    """Raised when no report matches an access code."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No report found with that access code"
        )


class AttachmentNotFoundError(HTTPException):
    """Raised when attachment metadata cannot be found."""

    def __init__(self, attachment_id: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Attachment not found: {attachment_id}" if attachment_id else "Attachment not found"
        )


class StorageFileNotFoundError(HTTPException):
    """Raised by storage adapters when a key does not exist."""

    def __init__(self, key: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File not found: {key}" if key else "File not found"
        )


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class TenantIsolationError(HTTPException):
    """
    Raised when a tenant isolation violation is detected.

    This is a CRITICAL security error and should be logged/alerted on.
    """

    def __init__(self, detail: str = "Tenant isolation violation"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class RateLimitExceeded(HTTPException):
    """Raised when rate limit is exceeded."""

    def __init__(self, retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(retry_after)}
        )


class InvalidInputError(HTTPException):
    """Raised when input validation fails."""

    def __init__(self, detail: str = "Invalid input"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )
