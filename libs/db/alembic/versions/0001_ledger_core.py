# ruff: noqa: I001
"""Ledger core tables: sources, units, categories, transactions, rules, import log.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


_MATCH_TYPES = "match_type in ('contains','starts_with','exact','regex')"


def upgrade() -> None:
    op.create_table(
        "ledger_sources",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        _created_at(),
    )
    op.create_table(
        "ledger_units",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        _created_at(),
    )
    op.create_table(
        "ledger_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column(
            "parent_id", sa.Integer(), sa.ForeignKey("ledger_categories.id"), nullable=True
        ),
        _created_at(),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "source_id", sa.Integer(), sa.ForeignKey("ledger_sources.id"), nullable=False
        ),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("ledger_units.id"), nullable=True),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("source_category", sa.Text(), nullable=True),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("ledger_categories.id"), nullable=True
        ),
        sa.Column("ignore", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.Text(), nullable=True),
        sa.Column("source_data", sa.JSON(), nullable=True),
        sa.Column("hash", sa.String(length=16), nullable=False, unique=True),
        _created_at(),
    )
    op.create_index("ix_ledger_tx_source_date", "ledger_transactions", ["source_id", "date"])

    op.create_table(
        "ledger_unit_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("rule_type", sa.String(), nullable=False),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("ledger_units.id"), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint("rule_type in ('description','source')", name="ck_unit_rule_type"),
        sa.CheckConstraint(_MATCH_TYPES, name="ck_unit_rule_match_type"),
        sa.CheckConstraint("priority >= 0", name="ck_unit_rule_priority"),
    )
    op.create_table(
        "ledger_category_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("rule_type", sa.String(), nullable=False),
        sa.Column("pattern", sa.Text(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("ledger_categories.id"),
            nullable=False,
        ),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.CheckConstraint(
            "rule_type in ('description','source_category')", name="ck_category_rule_type"
        ),
        sa.CheckConstraint(_MATCH_TYPES, name="ck_category_rule_match_type"),
        sa.CheckConstraint("priority >= 0", name="ck_category_rule_priority"),
    )

    op.create_table(
        "ledger_import_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "source_id", sa.Integer(), sa.ForeignKey("ledger_sources.id"), nullable=False
        ),
        sa.Column("file_name", sa.Text(), nullable=True),
        sa.Column("row_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("imported_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status in ('success','partial','failed')", name="ck_import_log_status"
        ),
    )


def downgrade() -> None:
    op.drop_table("ledger_import_log")
    op.drop_table("ledger_category_rules")
    op.drop_table("ledger_unit_rules")
    op.drop_index("ix_ledger_tx_source_date", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_table("ledger_categories")
    op.drop_table("ledger_units")
    op.drop_table("ledger_sources")
