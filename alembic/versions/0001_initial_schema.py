"""initial schema: draws, prizes, participations, results, audit events

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "draws",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_numbers", sa.Integer(), nullable=False),
        sa.Column("price_per_ticket", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("draw_date", sa.Date(), nullable=True),
        sa.Column("min_per_purchase", sa.Integer(), nullable=True),
        sa.Column("max_per_purchase", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("accepted_payment_methods", sa.JSON(), nullable=True),
        sa.Column("claims_revision", sa.Integer(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('scheduled','active','pending_draw','completed','cancelled')",
            name=op.f("ck_draws_status_enum"),
        ),
        sa.CheckConstraint(
            "currency IN ('USD','Bs')", name=op.f("ck_draws_currency_enum")
        ),
        sa.CheckConstraint(
            "total_numbers >= 10", name=op.f("ck_draws_total_numbers_min")
        ),
        sa.CheckConstraint(
            "min_per_purchase IS NULL OR max_per_purchase IS NULL "
            "OR min_per_purchase <= max_per_purchase",
            name=op.f("ck_draws_purchase_limits_order"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draws")),
    )
    op.create_index(op.f("ix_draws_creator_id"), "draws", ["creator_id"])

    op.create_table(
        "draw_prizes",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID, nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("lottery_name", sa.String(length=100), nullable=True),
        sa.Column("draw_time", sa.String(length=20), nullable=True),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_draw_prizes_draw_id_draws"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_prizes")),
        sa.UniqueConstraint("draw_id", "position", name="uq_draw_prizes_slot"),
    )
    op.create_index(op.f("ix_draw_prizes_draw_id"), "draw_prizes", ["draw_id"])

    op.create_table(
        "participations",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID, nullable=False),
        sa.Column("draw_name", sa.String(length=255), nullable=False),
        sa.Column("purchaser_id", sa.String(length=64), nullable=False),
        sa.Column("numbers", sa.JSON(), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False),
        sa.Column("participant_name", sa.String(length=100), nullable=True),
        sa.Column("participant_last_name", sa.String(length=100), nullable=True),
        sa.Column("participant_id_card", sa.String(length=50), nullable=True),
        sa.Column("participant_phone", sa.String(length=25), nullable=True),
        sa.Column("payment_notes", sa.Text(), nullable=True),
        sa.Column("verification_confirmed", sa.Boolean(), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "payment_status IN ('pending','confirmed','rejected')",
            name=op.f("ck_participations_payment_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_participations_draw_id_draws"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_participations")),
    )
    op.create_index(op.f("ix_participations_draw_id"), "participations", ["draw_id"])
    op.create_index(
        op.f("ix_participations_purchaser_id"), "participations", ["purchaser_id"]
    )
    op.create_index(
        op.f("ix_participations_payment_status"), "participations", ["payment_status"]
    )

    op.create_table(
        "draw_results",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("draw_id", ID, nullable=False),
        sa.Column("draw_name", sa.String(length=255), nullable=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("draw_date", sa.Date(), nullable=True),
        sa.Column("prizes", sa.JSON(), nullable=False),
        sa.Column("winning_numbers", sa.JSON(), nullable=False),
        sa.Column("winner_names", sa.JSON(), nullable=False),
        sa.Column("winner_phones", sa.JSON(), nullable=False),
        sa.Column("winner_participation_ids", sa.JSON(), nullable=False),
        sa.Column("resolved_by", sa.String(length=64), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["draw_id"],
            ["draws.id"],
            name=op.f("fk_draw_results_draw_id_draws"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_results")),
        sa.UniqueConstraint("draw_id", name="uq_draw_results_draw_id"),
    )
    op.create_index(op.f("ix_draw_results_creator_id"), "draw_results", ["creator_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("action_type", sa.String(length=40), nullable=False),
        sa.Column("target_ref", sa.String(length=255), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "action_type IN ('PAYMENT_CONFIRMED','PAYMENT_REJECTED',"
            "'PARTICIPATION_DELETED','RAFFLE_CREATED','RAFFLE_EDITED',"
            "'RAFFLE_STATUS_CHANGED','RAFFLE_DELETED','WINNER_REGISTERED')",
            name=op.f("ck_audit_events_action_type_enum"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_events")),
    )
    op.create_index(op.f("ix_audit_events_actor_id"), "audit_events", ["actor_id"])
    op.create_index(
        op.f("ix_audit_events_occurred_at"), "audit_events", ["occurred_at"]
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_audit_events_occurred_at"), table_name="audit_events")
    op.drop_index(op.f("ix_audit_events_actor_id"), table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index(op.f("ix_draw_results_creator_id"), table_name="draw_results")
    op.drop_table("draw_results")
    op.drop_index(op.f("ix_participations_payment_status"), table_name="participations")
    op.drop_index(op.f("ix_participations_purchaser_id"), table_name="participations")
    op.drop_index(op.f("ix_participations_draw_id"), table_name="participations")
    op.drop_table("participations")
    op.drop_index(op.f("ix_draw_prizes_draw_id"), table_name="draw_prizes")
    op.drop_table("draw_prizes")
    op.drop_index(op.f("ix_draws_creator_id"), table_name="draws")
    op.drop_table("draws")
