"""telephony routing configuration schema

Revision ID: 0001_telephony_routing
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_telephony_routing"
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
_LOCALITY_XOR = "(country IS NULL) <> (region IS NULL)"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "credential_lists",
        sa.Column("sid", sa.String(), primary_key=True),
        sa.Column("friendly_name", sa.String(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "credentials",
        sa.Column("sid", sa.String(), primary_key=True),
        sa.Column(
            "credential_list_sid",
            sa.String(),
            sa.ForeignKey("credential_lists.sid", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("rotation_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_rotated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_credentials_credential_list_sid", "credentials", ["credential_list_sid"])
    op.create_index("ix_credentials_list_status", "credentials", ["credential_list_sid", "status"])

    # Append-only lifecycle log; rows are never updated.
    op.create_table(
        "credential_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("credential_sid", sa.String(), sa.ForeignKey("credentials.sid"), nullable=False),
        sa.Column("event", sa.String(), nullable=False),
        sa.Column("from_state", sa.String(), nullable=True),
        sa.Column("to_state", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_credential_events_credential_sid", "credential_events", ["credential_sid"])

    op.create_table(
        "trunks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("numbers", _JSON, nullable=False),
        sa.Column("auth_username", sa.String(), nullable=True),
        sa.Column("allowed_numbers", _JSON, nullable=True),
        sa.Column("allowed_addresses", _JSON, nullable=True),
        sa.Column("krisp_enabled", sa.Boolean(), nullable=True),
        sa.Column("termination_sip_domain", sa.String(), nullable=True),
        sa.Column(
            "credential_list_sid",
            sa.String(),
            sa.ForeignKey("credential_lists.sid", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("metadata", _JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_trunks_external_id", "trunks", ["external_id"])
    op.create_index("ix_trunks_type_direction", "trunks", ["type", "direction"])

    op.create_table(
        "dispatch_rules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("rule_id", sa.String(), nullable=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("trunk_ids", _JSON, nullable=False),
        sa.Column("room_prefix", sa.String(), nullable=True),
        sa.Column("room_name", sa.String(), nullable=True),
        sa.Column("pin", sa.String(), nullable=True),
        sa.Column("randomize", sa.Boolean(), nullable=True),
        sa.Column("agent_name", sa.String(), nullable=True),
        sa.Column("auto_dispatch", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hide_phone_number", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attributes", _JSON, nullable=True),
        sa.Column("metadata", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=True),
        *_timestamps(),
    )

    # RESTRICT on trunk references backs the delete guard at the database level.
    op.create_table(
        "routing_profiles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("region", sa.String(), nullable=True),
        sa.Column("outbound_provider", sa.String(), nullable=False),
        sa.Column(
            "outbound_trunk_id",
            sa.String(),
            sa.ForeignKey("trunks.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("outbound_provider_config", _JSON, nullable=True),
        sa.Column("inbound_provider", sa.String(), nullable=True),
        sa.Column(
            "inbound_trunk_id",
            sa.String(),
            sa.ForeignKey("trunks.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("inbound_provider_config", _JSON, nullable=True),
        sa.Column("dispatch_provider", sa.String(), nullable=True),
        sa.Column(
            "dispatch_rule_id",
            sa.String(),
            sa.ForeignKey("dispatch_rules.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("dispatch_metadata", _JSON, nullable=True),
        sa.Column("compliance_requirements", _JSON, nullable=True),
        sa.Column("recording_policy", _JSON, nullable=True),
        *_timestamps(),
        sa.CheckConstraint(_LOCALITY_XOR, name="ck_routing_profiles_locality"),
    )
    op.create_index("ix_routing_profiles_country", "routing_profiles", ["country"])
    op.create_index("ix_routing_profiles_outbound_trunk_id", "routing_profiles", ["outbound_trunk_id"])
    op.create_index("ix_routing_profiles_inbound_trunk_id", "routing_profiles", ["inbound_trunk_id"])
    op.create_index("ix_routing_profiles_dispatch_rule_id", "routing_profiles", ["dispatch_rule_id"])

    op.create_table(
        "plans",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("billing_product_id", sa.String(), nullable=True),
        sa.Column("monthly_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("per_number_monthly_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_phone_numbers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_ai_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_pstn_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_realtime_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("included_transcription_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("allowed_countries", _JSON, nullable=False),
        sa.Column(
            "default_routing_profile_template_id",
            sa.String(),
            sa.ForeignKey("routing_profiles.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("default_recording_policy", _JSON, nullable=True),
        sa.Column("compliance_features", _JSON, nullable=True),
        sa.Column("metadata", _JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_plans_code", "plans", ["code"], unique=True)

    op.create_table(
        "plan_routing_profiles",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "plan_code",
            sa.String(),
            sa.ForeignKey("plans.code", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "routing_profile_id",
            sa.String(),
            sa.ForeignKey("routing_profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("region", sa.String(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(_LOCALITY_XOR, name="ck_plan_routing_profiles_locality"),
        sa.UniqueConstraint("plan_code", "country", name="uq_plan_routing_profiles_country"),
        sa.UniqueConstraint("plan_code", "region", name="uq_plan_routing_profiles_region"),
    )
    op.create_index("ix_plan_routing_profiles_plan_code", "plan_routing_profiles", ["plan_code"])
    op.create_index(
        "ix_plan_routing_profiles_routing_profile_id", "plan_routing_profiles", ["routing_profile_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_plan_routing_profiles_routing_profile_id", table_name="plan_routing_profiles")
    op.drop_index("ix_plan_routing_profiles_plan_code", table_name="plan_routing_profiles")
    op.drop_table("plan_routing_profiles")

    op.drop_index("ix_plans_code", table_name="plans")
    op.drop_table("plans")

    op.drop_index("ix_routing_profiles_dispatch_rule_id", table_name="routing_profiles")
    op.drop_index("ix_routing_profiles_inbound_trunk_id", table_name="routing_profiles")
    op.drop_index("ix_routing_profiles_outbound_trunk_id", table_name="routing_profiles")
    op.drop_index("ix_routing_profiles_country", table_name="routing_profiles")
    op.drop_table("routing_profiles")

    op.drop_table("dispatch_rules")

    op.drop_index("ix_trunks_type_direction", table_name="trunks")
    op.drop_index("ix_trunks_external_id", table_name="trunks")
    op.drop_table("trunks")

    op.drop_index("ix_credential_events_credential_sid", table_name="credential_events")
    op.drop_table("credential_events")

    op.drop_index("ix_credentials_list_status", table_name="credentials")
    op.drop_index("ix_credentials_credential_list_sid", table_name="credentials")
    op.drop_table("credentials")

    op.drop_table("credential_lists")
