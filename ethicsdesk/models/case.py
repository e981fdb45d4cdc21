"""
Case Model

A case is the unit of work for compliance staff: a report that arrived
through one of the portals, moved through the tenant's pipeline, given an
outcome, and possibly merged into another case.

Pipeline, outcome and merge state is stored as denormalized triples
(value, timestamp, actor) directly on the row so the case list can be
filtered without joins. History lives in the audit log.

Every actor column references users.id with ON DELETE SET NULL: deleting
a user must never delete or block the cases they touched.
"""
from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from ethicsdesk.database import Base
from ethicsdesk.core.tenancy import TenantScoped
import uuid
import enum


class CaseStatus(str, enum.Enum):
    NEW = "NEW"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class CaseOutcome(str, enum.Enum):
    SUBSTANTIATED = "SUBSTANTIATED"
    UNSUBSTANTIATED = "UNSUBSTANTIATED"
    INCONCLUSIVE = "INCONCLUSIVE"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    NO_VIOLATION = "NO_VIOLATION"


class SourceChannel(str, enum.Enum):
    HOTLINE = "HOTLINE"
    WEB_FORM = "WEB_FORM"
    PROXY = "PROXY"
    DIRECT_ENTRY = "DIRECT_ENTRY"
    CHATBOT = "CHATBOT"


class ReporterType(str, enum.Enum):
    ANONYMOUS = "ANONYMOUS"
    IDENTIFIED = "IDENTIFIED"
    PROXY = "PROXY"


class Severity(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def _actor_fk():
    return Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class Case(TenantScoped, Base):
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # ETH-<year>-<5 digit sequence>, unique within the organization
    reference_number = Column(String(20), nullable=False)

    status = Column(SQLEnum(CaseStatus, name="case_status"), default=CaseStatus.NEW, nullable=False, index=True)
    status_rationale = Column(Text, nullable=True)

    source_channel = Column(SQLEnum(SourceChannel, name="source_channel"), nullable=False)
    reporter_type = Column(
        SQLEnum(ReporterType, name="reporter_type"),
        default=ReporterType.ANONYMOUS,
        nullable=False
    )
    reporter_name = Column(String(255), nullable=True)
    reporter_email = Column(String(255), nullable=True)
    reporter_phone = Column(String(50), nullable=True)
    # Lets an anonymous reporter check status; unique across all organizations
    anonymous_access_code = Column(String(12), unique=True, nullable=True)

    severity = Column(SQLEnum(Severity, name="severity"), default=Severity.MEDIUM, nullable=False)
    details = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)

    intake_operator_id = _actor_fk()

    # Pipeline
    pipeline_id = Column(String(100), nullable=True)
    pipeline_stage = Column(String(100), nullable=True, index=True)
    pipeline_stage_at = Column(DateTime, nullable=True)
    pipeline_stage_by_id = _actor_fk()

    # Outcome
    outcome = Column(SQLEnum(CaseOutcome, name="case_outcome"), nullable=True)
    outcome_notes = Column(Text, nullable=True)
    outcome_at = Column(DateTime, nullable=True)
    outcome_by_id = _actor_fk()

    # Merge
    is_merged = Column(Boolean, default=False, nullable=False)
    merged_into_case_id = Column(
        String(36),
        ForeignKey("cases.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    merged_at = Column(DateTime, nullable=True)
    merged_by_id = _actor_fk()
    merged_reason = Column(Text, nullable=True)

    created_by_id = _actor_fk()
    updated_by_id = _actor_fk()

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    merged_into = relationship("Case", remote_side=[id], foreign_keys=[merged_into_case_id])
    attachments = relationship("Attachment", back_populates="case", passive_deletes=True)

    __table_args__ = (
        Index('idx_case_org_reference', 'organization_id', 'reference_number', unique=True),
        Index('idx_case_org_status', 'organization_id', 'status'),
        Index('idx_case_org_stage', 'organization_id', 'pipeline_stage'),
        Index('idx_case_org_created', 'organization_id', 'created_at'),
        Index('idx_case_org_merged', 'organization_id', 'is_merged'),
    )

    def __repr__(self):
        return f"<Case {self.reference_number} (organization={self.organization_id})>"
