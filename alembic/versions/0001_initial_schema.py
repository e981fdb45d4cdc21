"""Initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-01

Organizations, users, sessions, cases, audit logs and attachments.
Every actor column on cases/audit_logs/attachments is ON DELETE SET NULL
so deleting a user never removes or blocks the records they touched.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


USER_ROLES = (
    "SYSTEM_ADMIN", "COMPLIANCE_OFFICER", "TRIAGE_LEAD", "INVESTIGATOR",
    "POLICY_AUTHOR", "POLICY_REVIEWER", "DEPARTMENT_ADMIN", "MANAGER",
    "EMPLOYEE", "OPERATOR",
)


def _organization_fk() -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.String(36),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )


def _actor_fk(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.String(36),
        sa.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("default_language", sa.String(10), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)
    op.create_index("ix_organizations_is_active", "organizations", ["is_active"])
    op.create_index("idx_organization_active_slug", "organizations", ["is_active", "slug"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        _organization_fk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", sa.Enum(*USER_ROLES, name="user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_organization_id", "users", ["organization_id"])
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_is_active", "users", ["is_active"])
    op.create_index("idx_user_org_email", "users", ["organization_id", "email"], unique=True)
    op.create_index("idx_user_org_active", "users", ["organization_id", "is_active"])
    op.create_index("idx_user_org_role", "users", ["organization_id", "role"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        _organization_fk(),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.Column("previous_session_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sessions_organization_id", "sessions", ["organization_id"])
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("idx_session_org_user", "sessions", ["organization_id", "user_id"])

    op.create_table(
        "cases",
        sa.Column("id", sa.String(36), primary_key=True),
        _organization_fk(),
        sa.Column("reference_number", sa.String(20), nullable=False),
        sa.Column("status", sa.Enum("NEW", "OPEN", "CLOSED", name="case_status"), nullable=False),
        sa.Column("status_rationale", sa.Text(), nullable=True),
        sa.Column(
            "source_channel",
            sa.Enum("HOTLINE", "WEB_FORM", "PROXY", "DIRECT_ENTRY", "CHATBOT", name="source_channel"),
            nullable=False,
        ),
        sa.Column(
            "reporter_type",
            sa.Enum("ANONYMOUS", "IDENTIFIED", "PROXY", name="reporter_type"),
            nullable=False,
        ),
        sa.Column("reporter_name", sa.String(255), nullable=True),
        sa.Column("reporter_email", sa.String(255), nullable=True),
        sa.Column("reporter_phone", sa.String(50), nullable=True),
        sa.Column("anonymous_access_code", sa.String(12), nullable=True, unique=True),
        sa.Column("severity", sa.Enum("HIGH", "MEDIUM", "LOW", name="severity"), nullable=False),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        _actor_fk("intake_operator_id"),
        sa.Column("pipeline_id", sa.String(100), nullable=True),
        sa.Column("pipeline_stage", sa.String(100), nullable=True),
        sa.Column("pipeline_stage_at", sa.DateTime(), nullable=True),
        _actor_fk("pipeline_stage_by_id"),
        sa.Column(
            "outcome",
            sa.Enum(
                "SUBSTANTIATED", "UNSUBSTANTIATED", "INCONCLUSIVE",
                "POLICY_VIOLATION", "NO_VIOLATION",
                name="case_outcome",
            ),
            nullable=True,
        ),
        sa.Column("outcome_notes", sa.Text(), nullable=True),
        sa.Column("outcome_at", sa.DateTime(), nullable=True),
        _actor_fk("outcome_by_id"),
        sa.Column("is_merged", sa.Boolean(), nullable=False),
        sa.Column(
            "merged_into_case_id",
            sa.String(36),
            sa.ForeignKey("cases.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("merged_at", sa.DateTime(), nullable=True),
        _actor_fk("merged_by_id"),
        sa.Column("merged_reason", sa.Text(), nullable=True),
        _actor_fk("created_by_id"),
        _actor_fk("updated_by_id"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cases_organization_id", "cases", ["organization_id"])
    op.create_index("ix_cases_status", "cases", ["status"])
    op.create_index("ix_cases_pipeline_stage", "cases", ["pipeline_stage"])
    op.create_index("ix_cases_merged_into_case_id", "cases", ["merged_into_case_id"])
    op.create_index("idx_case_org_reference", "cases", ["organization_id", "reference_number"], unique=True)
    op.create_index("idx_case_org_status", "cases", ["organization_id", "status"])
    op.create_index("idx_case_org_stage", "cases", ["organization_id", "pipeline_stage"])
    op.create_index("idx_case_org_created", "cases", ["organization_id", "created_at"])
    op.create_index("idx_case_org_merged", "cases", ["organization_id", "is_merged"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        _organization_fk(),
        sa.Column(
            "entity_type",
            sa.Enum("CASE", "USER", "ORGANIZATION", "ATTACHMENT", "SESSION", name="audit_entity_type"),
            nullable=False,
        ),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column(
            "action_category",
            sa.Enum("CREATE", "UPDATE", "DELETE", "ACCESS", "SECURITY", "SYSTEM", name="audit_action_category"),
            nullable=False,
        ),
        sa.Column("action_description", sa.Text(), nullable=False),
        _actor_fk("actor_user_id"),
        sa.Column(
            "actor_type",
            sa.Enum("USER", "SYSTEM", "ANONYMOUS", "INTEGRATION", name="actor_type"),
            nullable=False,
        ),
        sa.Column("actor_name", sa.String(255), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("context", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_logs_organization_id", "audit_logs", ["organization_id"])
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index(
        "idx_audit_org_entity", "audit_logs",
        ["organization_id", "entity_type", "entity_id", "created_at"],
    )
    op.create_index("idx_audit_org_created", "audit_logs", ["organization_id", "created_at"])
    op.create_index("idx_audit_org_action", "audit_logs", ["organization_id", "action"])

    op.create_table(
        "attachments",
        sa.Column("id", sa.String(36), primary_key=True),
        _organization_fk(),
        sa.Column(
            "case_id",
            sa.String(36),
            sa.ForeignKey("cases.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("storage_key", sa.String(1024), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        _actor_fk("uploaded_by_id"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_attachments_organization_id", "attachments", ["organization_id"])
    op.create_index("ix_attachments_case_id", "attachments", ["case_id"])
    op.create_index("idx_attachment_org_case", "attachments", ["organization_id", "case_id"])


def downgrade() -> None:
    op.drop_table("attachments")
    op.drop_table("audit_logs")
    op.drop_table("cases")
    op.drop_table("sessions")
    op.drop_table("users")
    op.drop_table("organizations")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "actor_type", "audit_action_category", "audit_entity_type",
            "case_outcome", "severity", "reporter_type", "source_channel",
            "case_status", "user_role",
        ):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
