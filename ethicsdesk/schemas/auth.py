"""
Authentication Schemas

Request/response models for authentication endpoints.
"""
from pydantic import BaseModel, EmailStr, Field


class Token(BaseModel):
    """JWT token pair response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenData(BaseModel):
    """Decoded access token data."""
    user_id: str
    organization_id: str
    session_id: str


class LoginRequest(BaseModel):
    """Login request body."""
    email: EmailStr
    password: str = Field(..., min_length=8)

    # Login happens before any tenant context exists, so the organization
    # is named explicitly
    organization_slug: str = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "email": "officer@acme.com",
                "password": "securepassword123",
                "organization_slug": "acme-corp"
            }
        }


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)
