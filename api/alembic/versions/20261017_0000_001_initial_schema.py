"""Initial schema: users, teams, cases, assignment ledger, rules, notifications

Revision ID: 001
Revises: None
Create Date: 2026-10-17

"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


CASE_STATUS = ("OPEN", "ASSIGNED", "IN_PROGRESS", "RESOLVED", "CLOSED", "CANCELLED")
CASE_SEVERITY = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
CASE_CATEGORY = ("REVENUE_LOSS", "NETWORK_ISSUE", "FRAUD", "QUALITY", "OPERATIONAL", "CUSTOM")
ACTIVITY_TYPE = (
    "CREATED", "ASSIGNED", "ACKNOWLEDGED", "STATUS_CHANGE", "RESOLVED", "REOPENED",
    "CLOSED", "CANCELLED", "COMMENTED", "REFIRED", "SLA_BREACHED",
)
COMMENT_TYPE = ("USER", "SYSTEM", "ACTION")
ASSIGNMENT_REASON = (
    "INITIAL", "MANUAL", "WORKLOAD_BALANCE", "ESCALATION", "SHIFT_CHANGE",
    "UNAVAILABLE", "AUTO_ASSIGN", "TEAM_ROTATION",
)
ASSIGNMENT_STRATEGY = ("MANUAL", "ROUND_ROBIN", "LOAD_BASED", "TEAM_BASED")
NOTIFICATION_AUDIENCE = ("USER", "TEAM", "ADMINS")
NOTIFICATION_EVENT = (
    "CASE_ASSIGNED", "TEAM_CASE_CREATED", "UNASSIGNED_CASE_CREATED", "CASE_RESOLVED", "SLA_BREACHED",
)
NOTIFICATION_STATUS = ("PENDING", "SENT", "FAILED")

ENUMS = {
    "case_status_enum": CASE_STATUS,
    "case_severity_enum": CASE_SEVERITY,
    "case_category_enum": CASE_CATEGORY,
    "case_activity_type_enum": ACTIVITY_TYPE,
    "case_comment_type_enum": COMMENT_TYPE,
    "assignment_reason_enum": ASSIGNMENT_REASON,
    "assignment_strategy_enum": ASSIGNMENT_STRATEGY,
    "notification_audience_enum": NOTIFICATION_AUDIENCE,
    "notification_event_enum": NOTIFICATION_EVENT,
    "notification_status_enum": NOTIFICATION_STATUS,
}


def _enum(name: str) -> postgresql.ENUM:
    # Types are created up front so tables sharing one do not collide
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create the AlertCase schema."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("username", sa.String(50), nullable=False, unique=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="operator"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "teams",
        *_timestamps(),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("lead_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "case_sequences",
        sa.Column("year", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "cases",
        *_timestamps(),
        sa.Column("case_number", sa.String(20), nullable=False, unique=True, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", _enum("case_status_enum"), nullable=False, index=True),
        sa.Column("severity", _enum("case_severity_enum"), nullable=False, index=True),
        sa.Column("category", _enum("case_category_enum"), nullable=False),
        sa.Column("grafana_alert_uid", sa.String(255), nullable=True, index=True),
        sa.Column("grafana_alert_id", sa.String(255), nullable=True),
        sa.Column("grafana_rule_uid", sa.String(255), nullable=True, index=True),
        sa.Column("open_fingerprint", sa.String(255), nullable=True, unique=True),
        sa.Column("assigned_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("sla_deadline", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column("sla_breached", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("response_time_minutes", sa.Integer(), nullable=True),
        sa.Column("resolution_time_minutes", sa.Integer(), nullable=True),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("closure_reason", sa.Text(), nullable=True),
        sa.Column("affected_services", sa.String(500), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("alert_data", postgresql.JSONB(), nullable=True),
        sa.Column("alert_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_alert_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )

    for table, column, target in (
        ("case_user_assignments", "user_id", "users.id"),
        ("case_team_assignments", "team_id", "teams.id"),
    ):
        op.create_table(
            table,
            *_timestamps(),
            sa.Column("case_id", sa.Integer(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
            sa.Column(column, sa.Integer(), sa.ForeignKey(target, ondelete="CASCADE"), nullable=False, index=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.UniqueConstraint("case_id", column, name=f"uq_{table[:-1]}"),
        )

    op.create_table(
        "case_activities",
        *_timestamps(),
        sa.Column("case_id", sa.Integer(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("activity_type", _enum("case_activity_type_enum"), nullable=False),
        sa.Column("field_name", sa.String(100), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("performed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )

    op.create_table(
        "case_comments",
        *_timestamps(),
        sa.Column("case_id", sa.Integer(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("comment", sa.Text(), nullable=False),
        sa.Column("comment_type", _enum("case_comment_type_enum"), nullable=False),
        sa.Column("is_internal", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "assignment_history",
        *_timestamps(),
        sa.Column("case_id", sa.Integer(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("from_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("to_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("from_team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("to_team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reason", _enum("assignment_reason_enum"), nullable=False),
        sa.Column("assigned_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("from_user_open_cases", sa.Integer(), nullable=True),
        sa.Column("to_user_open_cases", sa.Integer(), nullable=True),
        sa.Column("from_team_open_cases", sa.Integer(), nullable=True),
        sa.Column("to_team_open_cases", sa.Integer(), nullable=True),
    )

    op.create_table(
        "rule_assignments",
        *_timestamps(),
        sa.Column("grafana_rule_uid", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("grafana_rule_name", sa.String(500), nullable=False),
        sa.Column("grafana_folder_uid", sa.String(255), nullable=True),
        sa.Column("grafana_folder_name", sa.String(500), nullable=True),
        sa.Column("datasource_uid", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("severity", _enum("case_severity_enum"), nullable=True),
        sa.Column("category", _enum("case_category_enum"), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auto_assign_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("assignment_strategy", _enum("assignment_strategy_enum"), nullable=False),
        sa.Column("rotation_cursor", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    )

    for table, column, target in (
        ("rule_assignment_users", "user_id", "users.id"),
        ("rule_assignment_teams", "team_id", "teams.id"),
    ):
        op.create_table(
            table,
            *_timestamps(),
            sa.Column(
                "rule_assignment_id", sa.Integer(),
                sa.ForeignKey("rule_assignments.id", ondelete="CASCADE"), nullable=False, index=True,
            ),
            sa.Column(column, sa.Integer(), sa.ForeignKey(target, ondelete="CASCADE"), nullable=False, index=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.UniqueConstraint("rule_assignment_id", column, name=f"uq_{table[:-1]}"),
        )

    op.create_table(
        "notifications",
        *_timestamps(),
        sa.Column("case_id", sa.Integer(), sa.ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("audience", _enum("notification_audience_enum"), nullable=False),
        sa.Column("recipient_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True),
        sa.Column("recipient_team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=True),
        sa.Column("event_type", _enum("notification_event_enum"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("status", _enum("notification_status_enum"), nullable=False, index=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Drop the AlertCase schema."""
    for table in (
        "notifications",
        "rule_assignment_teams",
        "rule_assignment_users",
        "rule_assignments",
        "assignment_history",
        "case_comments",
        "case_activities",
        "case_team_assignments",
        "case_user_assignments",
        "cases",
        "case_sequences",
        "teams",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
