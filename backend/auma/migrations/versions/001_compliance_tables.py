"""Add escalations, audit_logs, mlo_users and loans tables for the SAFE Act gate.

Revision ID: 001
"""

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ESCALATION_REASONS = (
    "RATE_INQUIRY",
    "ADVICE_REQUEST",
    "PRODUCT_COMPARISON",
    "PRICING_DISCUSSION",
    "AI_DETECTED",
    "MANUAL_ESCALATION",
)
AUDIT_ACTIONS = (
    "SAFE_ACT_ESCALATION",
    "MANUAL_ESCALATION",
    "MLO_NOTIFICATION_SENT",
    "AI_RESPONSE_VIOLATION",
    "ESCALATION_ACKNOWLEDGED",
    "ESCALATION_RESOLVED",
    "COMPLIANCE_DEGRADED",
)


def upgrade() -> None:
    op.create_table(
        "mlo_users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("nmls_number", sa.String(20), nullable=True),
        sa.Column("ghl_user_id", sa.String(64), nullable=True),
    )
    op.create_index("ix_mlo_users_location_id", "mlo_users", ["location_id"])

    op.create_table(
        "loans",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("loan_number", sa.String(40), nullable=True),
        sa.Column("borrower_name", sa.String(200), nullable=True),
        sa.Column("ghl_contact_id", sa.String(64), nullable=True),
        sa.Column("assigned_mlo_id", sa.String(64), sa.ForeignKey("mlo_users.id"), nullable=True),
    )
    op.create_index("ix_loans_location_id", "loans", ["location_id"])
    op.create_index("ix_loans_assigned_mlo_id", "loans", ["assigned_mlo_id"])

    op.create_table(
        "escalations",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("loan_id", sa.String(64), nullable=False),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("borrower_id", sa.String(64), nullable=True),
        sa.Column("reason", sa.Enum(*ESCALATION_REASONS, name="escalationreason"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "ACKNOWLEDGED", "RESOLVED", name="escalationstatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column(
            "source",
            sa.Enum("PORTAL", "CHAT", "EMAIL", "SMS", "SYSTEM", name="messagesource"),
            nullable=False,
            server_default="PORTAL",
        ),
        sa.Column("trigger_message", sa.Text(), nullable=False),
        sa.Column("matched_keywords", sa.JSON(), nullable=False),
        sa.Column("auto_response", sa.Text(), nullable=True),
        sa.Column("mlo_response", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_escalations_loan_id", "escalations", ["loan_id"])
    op.create_index("ix_escalations_location_id", "escalations", ["location_id"])
    op.create_index("ix_escalations_status", "escalations", ["status"])
    op.create_index("ix_escalations_created_at", "escalations", ["created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("loan_id", sa.String(64), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.Enum(*AUDIT_ACTIONS, name="auditactiontype"), nullable=False),
        sa.Column(
            "performed_by",
            sa.Enum(
                "AI_ASSISTANT", "HUMAN_PROCESSOR", "MLO", "AUTOMATED_SYSTEM", "BORROWER",
                name="performedby",
            ),
            nullable=False,
        ),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_loan_id", "audit_logs", ["loan_id"])
    op.create_index("ix_audit_logs_location_id", "audit_logs", ["location_id"])
    op.create_index("ix_audit_logs_action_type", "audit_logs", ["action_type"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("escalations")
    op.drop_table("loans")
    op.drop_table("mlo_users")
    for enum_name in (
        "performedby",
        "auditactiontype",
        "messagesource",
        "escalationstatus",
        "escalationreason",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
