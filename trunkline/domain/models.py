from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere (SQLite for local runs and tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Exactly one of country/region is set; enforced again in the validation engine.
LOCALITY_XOR_SQL = "(country IS NULL) <> (region IS NULL)"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Uppercase billing tier code; immutable after creation.
    code: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    billing_product_id: Mapped[str | None] = mapped_column(String, nullable=True)
    monthly_price_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    per_number_monthly_price_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    included_phone_numbers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    included_ai_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    included_pstn_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    included_realtime_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    included_transcription_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Empty list means the plan may route to any country.
    allowed_countries: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    default_routing_profile_template_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("routing_profiles.id", ondelete="RESTRICT"), nullable=True
    )
    default_recording_policy: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    compliance_features: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class CredentialList(Base):
    __tablename__ = "credential_lists"

    # Provider-style opaque SID; rows are soft-deleted so SIDs are never reused.
    sid: Mapped[str] = mapped_column(String, primary_key=True)
    friendly_name: Mapped[str] = mapped_column(String)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class Credential(Base):
    __tablename__ = "credentials"
    __table_args__ = (
        Index("ix_credentials_list_status", "credential_list_sid", "status"),
    )

    sid: Mapped[str] = mapped_column(String, primary_key=True)
    credential_list_sid: Mapped[str] = mapped_column(
        String, ForeignKey("credential_lists.sid", ondelete="RESTRICT"), index=True
    )
    # Immutable after creation; only the provider-held password rotates.
    username: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="active", nullable=False)
    rotation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_rotated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class CredentialEvent(Base):
    __tablename__ = "credential_events"

    # Append-only lifecycle log (created/rotated/revoked).
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    credential_sid: Mapped[str] = mapped_column(String, ForeignKey("credentials.sid"), index=True)
    event: Mapped[str] = mapped_column(String)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )


class Trunk(Base):
    __tablename__ = "trunks"
    __table_args__ = (
        Index("ix_trunks_type_direction", "type", "direction"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    type: Mapped[str] = mapped_column(String)
    direction: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="active", nullable=False)
    provider: Mapped[str] = mapped_column(String)
    # Identifier of the underlying LiveKit/Twilio trunk.
    external_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    numbers: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    auth_username: Mapped[str | None] = mapped_column(String, nullable=True)
    allowed_numbers: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    allowed_addresses: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    krisp_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    termination_sip_domain: Mapped[str | None] = mapped_column(String, nullable=True)
    credential_list_sid: Mapped[str | None] = mapped_column(
        String, ForeignKey("credential_lists.sid", ondelete="RESTRICT"), nullable=True
    )
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class DispatchRule(Base):
    __tablename__ = "dispatch_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    # LiveKit dispatch rule id once provisioned.
    rule_id: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[str] = mapped_column(String)
    # Kept as an id list; dangling ids are tolerated and caught at resolution time.
    trunk_ids: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    room_prefix: Mapped[str | None] = mapped_column(String, nullable=True)
    room_name: Mapped[str | None] = mapped_column(String, nullable=True)
    pin: Mapped[str | None] = mapped_column(String, nullable=True)
    randomize: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    agent_name: Mapped[str | None] = mapped_column(String, nullable=True)
    auto_dispatch: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hide_phone_number: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attributes: Mapped[dict[str, str] | None] = mapped_column(JSONType, nullable=True)
    metadata_text: Mapped[str | None] = mapped_column("metadata", String, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class RoutingProfile(Base):
    __tablename__ = "routing_profiles"
    __table_args__ = (
        CheckConstraint(LOCALITY_XOR_SQL, name="ck_routing_profiles_locality"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    country: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    region: Mapped[str | None] = mapped_column(String, nullable=True)
    outbound_provider: Mapped[str] = mapped_column(String)
    # RESTRICT keeps trunk deletes safe even when a profile lands between check and delete.
    outbound_trunk_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("trunks.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    outbound_provider_config: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    inbound_provider: Mapped[str | None] = mapped_column(String, nullable=True)
    inbound_trunk_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("trunks.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    inbound_provider_config: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    dispatch_provider: Mapped[str | None] = mapped_column(String, nullable=True)
    dispatch_rule_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("dispatch_rules.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    dispatch_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    compliance_requirements: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    recording_policy: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )


class PlanRoutingProfile(Base):
    __tablename__ = "plan_routing_profiles"
    __table_args__ = (
        CheckConstraint(LOCALITY_XOR_SQL, name="ck_plan_routing_profiles_locality"),
        # One mapping per (plan, locality) tier keeps resolution unambiguous.
        UniqueConstraint("plan_code", "country", name="uq_plan_routing_profiles_country"),
        UniqueConstraint("plan_code", "region", name="uq_plan_routing_profiles_region"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    plan_code: Mapped[str] = mapped_column(
        String, ForeignKey("plans.code", ondelete="RESTRICT"), index=True
    )
    routing_profile_id: Mapped[str] = mapped_column(
        String, ForeignKey("routing_profiles.id", ondelete="RESTRICT"), index=True
    )
    country: Mapped[str | None] = mapped_column(String, nullable=True)
    region: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, server_default=func.now()
    )
