"""Row-level security policies

Revision ID: 0002_row_level_security
Revises: 0001_initial_schema
Create Date: 2026-10-01

Installs the tenant isolation rule in PostgreSQL for every tenant-scoped
table:

    organization_id = current_setting('app.current_organization')
    OR current_setting('app.bypass_rls') = 'true'

Both settings are written per transaction by the application session
(ethicsdesk.core.tenancy). FORCE makes the policy apply to the table owner
too. An unset setting reads as NULL/empty, so nothing matches.

The organizations table is intentionally left without a policy.
"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_row_level_security"
down_revision: Union[str, Sequence[str], None] = "0001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TENANT_TABLES = ("users", "sessions", "cases", "audit_logs", "attachments")

POLICY_EXPRESSION = (
    "organization_id = current_setting('app.current_organization', true) "
    "OR current_setting('app.bypass_rls', true) = 'true'"
)


def upgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return

    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY tenant_isolation ON {table} "
            f"USING ({POLICY_EXPRESSION}) "
            f"WITH CHECK ({POLICY_EXPRESSION})"
        )


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return

    for table in TENANT_TABLES:
        op.execute(f"DROP POLICY IF EXISTS tenant_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
