"""
Attachment Model

Metadata for a file held by the storage adapter. The bytes live under
storage_key; this row is what ties them to a case and a tenant.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from ethicsdesk.database import Base
from ethicsdesk.core.tenancy import TenantScoped
import uuid


class Attachment(TenantScoped, Base):
    __tablename__ = "attachments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    case_id = Column(
        String(36),
        ForeignKey("cases.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    storage_key = Column(String(1024), nullable=False)
    filename = Column(String(255), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False)

    uploaded_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    case = relationship("Case", back_populates="attachments")

    __table_args__ = (
        Index('idx_attachment_org_case', 'organization_id', 'case_id'),
    )

    def __repr__(self):
        return f"<Attachment {self.filename} case={self.case_id}>"
