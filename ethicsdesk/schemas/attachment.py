"""
Attachment Schemas
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class AttachmentResponse(BaseModel):
    id: str
    organization_id: str
    case_id: Optional[str]
    filename: str
    mime_type: str
    size: int
    uploaded_by_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
