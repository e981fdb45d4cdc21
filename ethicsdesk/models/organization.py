"""
Organization Model

The organization is the tenant: the isolation boundary for every
tenant-scoped table.

This table is NOT tenant-scoped itself. It has no organization_id column
(it IS the tenant), and login has to look an organization up before any
tenant context can exist. Access control for organizations is therefore
the application's job, not the isolation layer's.
"""
from sqlalchemy import Column, String, Boolean, DateTime, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from ethicsdesk.database import Base
import uuid


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)

    # Tenant configuration, e.g. {"pipeline_stages": ["Triage", "Investigation", "Closed"]}
    settings = Column(JSON, nullable=False, default=dict)
    default_language = Column(String(10), nullable=False, default="en")

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="organization", passive_deletes=True)

    __table_args__ = (
        Index('idx_organization_active_slug', 'is_active', 'slug'),
    )

    def __repr__(self):
        return f"<Organization {self.slug}>"

    @property
    def pipeline_stages(self):
        """Configured pipeline stage names, empty when the tenant allows any stage."""
        return list((self.settings or {}).get("pipeline_stages") or [])
