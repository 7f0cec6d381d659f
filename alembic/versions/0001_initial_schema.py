"""Initial schema: reports, classifications, verifications, rewards and audit logs.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

CATEGORIES = (
    "SEXUAL_VIOLENCE",
    "DOMESTIC_VIOLENCE",
    "STREET_CRIMES",
    "MOB_VIOLENCE_LYNCHING",
    "ROAD_RAGE_INCIDENTS",
    "CYBERCRIMES",
    "DRUG",
    "OTHER",
    "UNKNOWN",
)
LEVELS = ("LOW", "MEDIUM", "HIGH", "CRITICAL")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    report_status_enum = sa.Enum("PENDING", "VERIFIED", "REJECTED", name="reportstatus")
    priority_enum = sa.Enum(*LEVELS, name="priority")
    severity_enum = sa.Enum(*LEVELS, name="severity")
    media_kind_enum = sa.Enum("PHOTO", "VIDEO", name="mediakind")
    category_enum = sa.Enum(*CATEGORIES, name="crimecategory")
    disposition_enum = sa.Enum("VERIFIED", "REJECTED", "PENDING", name="disposition")
    reward_status_enum = sa.Enum("PENDING", "SENT", "FAILED", name="rewardstatus")
    # The category type is created with the reports table; classifications only reference it.
    shared_category_enum = sa.Enum(*CATEGORIES, name="crimecategory").with_variant(
        postgresql.ENUM(*CATEGORIES, name="crimecategory", create_type=False), "postgresql"
    )

    op.create_table(
        "reports",
        *_timestamps(),
        sa.Column("submitter_id", sa.String(length=100), nullable=False),
        sa.Column("location", sa.String(length=500), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("media_refs", sa.JSON(), nullable=False),
        sa.Column("media_kind", media_kind_enum, nullable=False),
        sa.Column("category", category_enum, nullable=False),
        sa.Column("priority", priority_enum, nullable=False),
        sa.Column("status", report_status_enum, nullable=False),
        sa.Column("payout_address", sa.String(length=128), nullable=True),
        sa.Column("requires_human_review", sa.Boolean(), nullable=False),
        sa.Column("disposition", disposition_enum, nullable=True),
        sa.Column("analysis_step", sa.String(length=50), nullable=True),
        sa.Column("analysis_failed_steps", sa.JSON(), nullable=True),
        sa.Column("analyzed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_reports_submitter_id", "reports", ["submitter_id"])
    op.create_index("ix_reports_status", "reports", ["status"])
    op.create_index("ix_reports_category", "reports", ["category"])
    op.create_index("ix_reports_priority", "reports", ["priority"])
    op.create_index("ix_reports_created_at", "reports", ["created_at"])

    op.create_table(
        "classifications",
        *_timestamps(),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("confidence", sa.Integer(), nullable=False),
        sa.Column("category", shared_category_enum, nullable=False),
        sa.Column("severity", severity_enum, nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("risk_factors", sa.JSON(), nullable=False),
        sa.Column("recommendations", sa.JSON(), nullable=False),
        sa.Column("extracted_entities", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 100", name="ck_classification_confidence_range"
        ),
    )
    op.create_index("ix_classifications_report_id", "classifications", ["report_id"], unique=True)

    op.create_table(
        "verifications",
        *_timestamps(),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("verifier_id", sa.String(length=100), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("confidence", sa.Integer(), nullable=False),
        sa.Column("requires_follow_up", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_verifications_report_id", "verifications", ["report_id"], unique=True)
    op.create_index("ix_verifications_verifier_id", "verifications", ["verifier_id"])

    op.create_table(
        "rewards",
        *_timestamps(),
        sa.Column(
            "report_id",
            sa.Integer(),
            sa.ForeignKey("reports.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("recipient_address", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(18, 9), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("reference_id", sa.String(length=128), nullable=True),
        sa.Column("explorer_url", sa.String(length=512), nullable=True),
        sa.Column("status", reward_status_enum, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_reward_positive_amount"),
        sa.UniqueConstraint("reference_id", name="uq_rewards_reference_id"),
    )
    op.create_index("ix_rewards_report_id", "rewards", ["report_id"], unique=True)
    op.create_index("ix_rewards_status", "rewards", ["status"])

    op.create_table(
        "audit_logs",
        *_timestamps(),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_rewards_status", table_name="rewards")
    op.drop_index("ix_rewards_report_id", table_name="rewards")
    op.drop_table("rewards")

    op.drop_index("ix_verifications_verifier_id", table_name="verifications")
    op.drop_index("ix_verifications_report_id", table_name="verifications")
    op.drop_table("verifications")

    op.drop_index("ix_classifications_report_id", table_name="classifications")
    op.drop_table("classifications")

    for name in (
        "ix_reports_created_at",
        "ix_reports_priority",
        "ix_reports_category",
        "ix_reports_status",
        "ix_reports_submitter_id",
    ):
        op.drop_index(name, table_name="reports")
    op.drop_table("reports")

    bind = op.get_bind()
    for enum_name in (
        "rewardstatus",
        "disposition",
        "crimecategory",
        "mediakind",
        "severity",
        "priority",
        "reportstatus",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
