"""Initial schema: baseline, state registry, import batches, match ledger.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "nces_districts",
        sa.Column("nces_id", sa.String(20), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("state", sa.String(2), nullable=False),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("county", sa.String(255), nullable=True),
        sa.Column("enrollment", sa.Integer(), nullable=True),
        sa.Column("lea_type", sa.String(255), nullable=True),
        sa.Column("website_domain", sa.String(500), nullable=True),
        sa.Column("superintendent_name", sa.String(255), nullable=True),
        sa.Column("superintendent_email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )
    op.create_index("ix_nces_districts_state", "nces_districts", ["state"])

    op.create_table(
        "import_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source_type", sa.String(50), nullable=False),
        sa.Column("source_name", sa.String(100), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("source_file", sa.String(255), nullable=True),
        sa.Column("record_count", sa.Integer(), nullable=True),
        sa.Column("success_count", sa.Integer(), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=True),
        sa.Column("error_log", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column(
            "imported_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("imported_by", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('loaded', 'matched', 'activated', 'reverted', 'failed')",
            name="valid_batch_status",
        ),
    )

    op.create_table(
        "state_registry_districts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "import_batch_id", sa.String(36), sa.ForeignKey("import_batches.id"), nullable=False
        ),
        sa.Column("state", sa.String(2), nullable=False),
        sa.Column("state_district_id", sa.String(50), nullable=True),
        sa.Column("nces_id", sa.String(20), nullable=True),
        sa.Column("district_name", sa.String(500), nullable=False),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("county", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("enrollment", sa.Integer(), nullable=True),
        sa.Column("administrator_first_name", sa.String(255), nullable=True),
        sa.Column("administrator_last_name", sa.String(255), nullable=True),
        sa.Column("administrator_email", sa.String(255), nullable=True),
        sa.Column("website_url", sa.Text(), nullable=True),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_state_registry_districts_import_batch_id",
        "state_registry_districts",
        ["import_batch_id"],
    )
    op.create_index("ix_state_registry_districts_state", "state_registry_districts", ["state"])

    op.create_table(
        "match_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "source_id", sa.String(36), sa.ForeignKey("state_registry_districts.id"), nullable=False
        ),
        sa.Column(
            "baseline_id", sa.String(20), sa.ForeignKey("nces_districts.nces_id"), nullable=True
        ),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("import_batches.id"), nullable=False),
        sa.Column("method", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("confidence", sa.Numeric(5, 4), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_by", sa.String(100), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(100), nullable=True),
        sa.Column("flag_for_review", sa.Boolean(), nullable=False),
        sa.Column("review_reason", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column(
            "superseded_by_id", sa.Integer(), sa.ForeignKey("match_records.id"), nullable=True
        ),
        sa.CheckConstraint(
            "status IN ('accepted', 'flagged', 'rejected')", name="valid_match_status"
        ),
        sa.CheckConstraint(
            "method IN ('exact_id', 'exact_name', 'normalized_name', 'fuzzy', 'manual', 'none')",
            name="valid_match_method",
        ),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="confidence_range"),
    )
    op.create_index("ix_match_records_source_id", "match_records", ["source_id"])
    op.create_index("ix_match_records_baseline_id", "match_records", ["baseline_id"])
    op.create_index("ix_match_records_batch_id", "match_records", ["batch_id"])
    op.create_index(
        "ix_match_records_review", "match_records", ["active", "verified", "confidence"]
    )
    # At most one active decision per source record
    op.create_index(
        "uq_match_records_active_source",
        "match_records",
        ["source_id"],
        unique=True,
        sqlite_where=sa.text("active = 1"),
        postgresql_where=sa.text("active = true"),
    )

    op.create_table(
        "quality_flags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "source_id", sa.String(36), sa.ForeignKey("state_registry_districts.id"), nullable=True
        ),
        sa.Column(
            "match_record_id", sa.Integer(), sa.ForeignKey("match_records.id"), nullable=True
        ),
        sa.Column("batch_id", sa.String(36), nullable=True),
        sa.Column("flag_type", sa.String(50), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("resolved", sa.Boolean(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(100), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')", name="valid_severity"
        ),
    )
    op.create_index("ix_quality_flags_source_id", "quality_flags", ["source_id"])
    op.create_index("ix_quality_flags_flag_type", "quality_flags", ["flag_type"])
    op.create_index("ix_quality_flags_resolved", "quality_flags", ["resolved"])

    op.create_table(
        "policy_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("version", sa.Integer(), nullable=False, unique=True),
        sa.Column("policy_json", sa.JSON(), server_default="{}", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("created_by", sa.String(100), server_default="system", nullable=False),
    )


def downgrade() -> None:
    op.drop_table("policy_settings")
    op.drop_index("ix_quality_flags_resolved", table_name="quality_flags")
    op.drop_index("ix_quality_flags_flag_type", table_name="quality_flags")
    op.drop_index("ix_quality_flags_source_id", table_name="quality_flags")
    op.drop_table("quality_flags")
    op.drop_index("uq_match_records_active_source", table_name="match_records")
    op.drop_index("ix_match_records_review", table_name="match_records")
    op.drop_index("ix_match_records_batch_id", table_name="match_records")
    op.drop_index("ix_match_records_baseline_id", table_name="match_records")
    op.drop_index("ix_match_records_source_id", table_name="match_records")
    op.drop_table("match_records")
    op.drop_index("ix_state_registry_districts_state", table_name="state_registry_districts")
    op.drop_index(
        "ix_state_registry_districts_import_batch_id", table_name="state_registry_districts"
    )
    op.drop_table("state_registry_districts")
    op.drop_table("import_batches")
    op.drop_index("ix_nces_districts_state", table_name="nces_districts")
    op.drop_table("nces_districts")
