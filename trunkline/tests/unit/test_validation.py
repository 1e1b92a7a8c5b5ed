from __future__ import annotations

import pytest

from trunkline.core.errors import ValidationFailed
from trunkline.services.validation import (
    DISPATCH_TRUNK_INVALID,
    IMMUTABLE_FIELD,
    INCOHERENT_DISPATCH_PAYLOAD,
    INCOHERENT_TRUNK_PAYLOAD,
    INVALID_CHOICE,
    INVALID_LOCALITY,
    INVALID_PLAN_CODE,
    NEGATIVE_VALUE,
    NO_TRUNKS_SELECTED,
    REQUIRED_FIELD,
    TRUNK_DIRECTION_MISMATCH,
    UNKNOWN_COUNTRY_CODE,
    UNKNOWN_REFERENCE,
    WEAK_CREDENTIAL_SECRET,
    DISPATCH_RULE_TRUNK_MISMATCH,
    ValidationContext,
    validate,
)


def _profile(**overrides):
    payload = {"name": "RP", "outbound_provider": "livekit", "country": "US"}
    payload.update(overrides)
    return payload


def test_locality_rejects_both_country_and_region() -> None:
    result = validate("routing_profile", _profile(region="eu-west"))
    assert result.codes == [INVALID_LOCALITY]
    assert result.violations[0].details == {"reason": "both_set"}


def test_locality_rejects_neither_country_nor_region() -> None:
    result = validate("routing_profile", _profile(country=None))
    assert result.codes == [INVALID_LOCALITY]
    assert result.violations[0].details == {"reason": "neither_set"}


def test_blank_strings_count_as_unset_locality() -> None:
    result = validate("plan_routing_profile", {"plan_code": "PRO", "routing_profile_id": "rp", "country": " ", "region": ""})
    assert result.codes == [INVALID_LOCALITY]


def test_unknown_country_code_is_reported() -> None:
    result = validate("routing_profile", _profile(country="ZZ"))
    assert result.codes == [UNKNOWN_COUNTRY_CODE]
    assert result.violations[0].field == "country"


def test_lowercase_country_is_accepted() -> None:
    assert validate("routing_profile", _profile(country="us")).ok


@pytest.mark.parametrize("code", ["", "A", "pro plan", "-X"])
def test_plan_code_shape(code: str) -> None:
    result = validate("plan", {"code": code})
    assert INVALID_PLAN_CODE in result.codes


def test_plan_amounts_must_be_non_negative_and_countries_known() -> None:
    result = validate(
        "plan",
        {"code": "PRO", "monthly_price_cents": -1, "allowed_countries": ["US", "XX"]},
    )
    assert result.codes == [NEGATIVE_VALUE, UNKNOWN_COUNTRY_CODE]
    assert result.violations[1].field == "allowed_countries[1]"


def test_plan_code_is_immutable_on_update() -> None:
    context = ValidationContext(existing={"code": "PRO"})
    assert validate("plan", {"code": "pro"}, context).ok
    assert validate("plan", {"code": "ENT"}, context).codes == [IMMUTABLE_FIELD]


def test_plan_template_reference_must_exist() -> None:
    context = ValidationContext(routing_profile_ids=frozenset({"rp-1"}))
    payload = {"code": "PRO", "default_routing_profile_template_id": "rp-2"}
    assert validate("plan", payload, context).codes == [UNKNOWN_REFERENCE]


def test_weak_secret_reports_every_unmet_rule_at_once() -> None:
    result = validate("credential", {"username": "agent", "password": "short"})
    assert result.codes == [WEAK_CREDENTIAL_SECRET]
    assert result.violations[0].details["unmet"] == [
        "at least 12 characters",
        "at least 1 digit",
        "both uppercase and lowercase letters",
    ]


def test_secret_min_length_comes_from_context() -> None:
    context = ValidationContext(credential_min_length=20)
    result = validate("credential", {"username": "agent", "password": "Abcdefgh1234"}, context)
    assert result.violations[0].details["unmet"] == ["at least 20 characters"]


def test_secret_min_length_cannot_drop_below_floor() -> None:
    context = ValidationContext(credential_min_length=4)
    result = validate("credential", {"username": "agent", "password": "Abc12345"}, context)
    assert result.violations[0].details["unmet"] == ["at least 12 characters"]


def test_credential_username_is_immutable() -> None:
    context = ValidationContext(existing={"username": "agent"})
    result = validate("credential", {"username": "other"}, context)
    assert result.codes == [IMMUTABLE_FIELD]


def test_credential_update_without_password_skips_secret_rules() -> None:
    context = ValidationContext(existing={"username": "agent"})
    assert validate("credential", {"username": "agent"}, context).ok


def test_dispatch_rule_rejects_foreign_variant_fields() -> None:
    result = validate(
        "dispatch_rule",
        {"name": "R", "type": "callee", "room_name": "lobby", "trunk_ids": ["t-1"]},
    )
    assert result.codes == [INCOHERENT_DISPATCH_PAYLOAD]
    assert result.violations[0].field == "room_name"


def test_dispatch_rule_false_flags_are_not_foreign_fields() -> None:
    result = validate(
        "dispatch_rule",
        {"name": "R", "type": "direct", "room_name": "lobby", "randomize": False, "trunk_ids": ["t-1"]},
    )
    assert result.ok


def test_dispatch_rule_requires_trunks() -> None:
    result = validate("dispatch_rule", {"name": "R", "type": "individual", "trunk_ids": []})
    assert result.codes == [NO_TRUNKS_SELECTED]


def test_dispatch_rule_trunks_must_be_known_and_inbound_capable() -> None:
    context = ValidationContext(trunks={"t-out": "outbound", "t-in": "inbound"})
    result = validate(
        "dispatch_rule",
        {"name": "R", "type": "individual", "trunk_ids": ["t-in", "t-out", "t-missing"]},
        context,
    )
    assert result.codes == [DISPATCH_TRUNK_INVALID, DISPATCH_TRUNK_INVALID]
    assert result.violations[0].details == {"unknown": ["t-missing"]}
    assert result.violations[1].details == {"outbound_only": ["t-out"]}


def test_trunk_type_and_direction_choices() -> None:
    result = validate("trunk", {"name": "T", "type": "sip", "direction": "sideways"})
    assert result.codes == [INVALID_CHOICE, INVALID_CHOICE]


def test_trunk_fixed_direction_and_variant_fields() -> None:
    result = validate(
        "trunk",
        {
            "name": "T",
            "type": "livekit_outbound",
            "direction": "inbound",
            "termination_sip_domain": "x.pstn.twilio.com",
        },
    )
    assert result.codes == [INCOHERENT_TRUNK_PAYLOAD, INCOHERENT_TRUNK_PAYLOAD]
    assert [violation.field for violation in result.violations] == ["direction", "termination_sip_domain"]


def test_twilio_credential_mode_create_requires_fields() -> None:
    result = validate(
        "trunk",
        {"name": "T", "type": "twilio", "direction": "outbound", "credential_mode": "create"},
    )
    assert result.codes == [REQUIRED_FIELD, REQUIRED_FIELD, REQUIRED_FIELD]


def test_twilio_credential_mode_existing_checks_reference() -> None:
    context = ValidationContext(credential_list_sids=frozenset())
    result = validate(
        "trunk",
        {
            "name": "T",
            "type": "twilio",
            "direction": "outbound",
            "credential_mode": "existing",
            "credential_list_sid": "CL404",
        },
        context,
    )
    assert result.codes == [UNKNOWN_REFERENCE]


def test_profile_trunk_direction_and_rule_coverage() -> None:
    context = ValidationContext(
        trunks={"t-out": "outbound", "t-in": "inbound"},
        dispatch_rules={"dr-1": ("t-other",)},
    )
    result = validate(
        "routing_profile",
        _profile(outbound_trunk_id="t-in", inbound_trunk_id="t-in", dispatch_rule_id="dr-1"),
        context,
    )
    assert result.codes == [TRUNK_DIRECTION_MISMATCH, DISPATCH_RULE_TRUNK_MISMATCH]


def test_reference_checks_are_skipped_without_lookup_tables() -> None:
    assert validate("routing_profile", _profile(outbound_trunk_id="anything")).ok


def test_validation_is_deterministic() -> None:
    payload = _profile(country="ZZ", region="eu-west", name="")
    first = validate("routing_profile", payload)
    second = validate("routing_profile", payload)
    assert first == second


def test_raise_for_violations_carries_every_violation() -> None:
    result = validate("routing_profile", _profile(name="", country="ZZ"))
    with pytest.raises(ValidationFailed) as exc_info:
        result.raise_for_violations()
    assert exc_info.value.codes == [REQUIRED_FIELD, UNKNOWN_COUNTRY_CODE]
    assert len(exc_info.value.details["violations"]) == 2


def test_unknown_kind_is_a_programming_error() -> None:
    with pytest.raises(ValueError):
        validate("widget", {})


def test_direct_rule_with_randomize_is_incoherent() -> None:
    result = validate(
        "dispatch_rule",
        {"name": "R", "type": "direct", "room_name": "lobby", "randomize": True, "trunk_ids": ["t-1"]},
    )
    assert result.codes == [INCOHERENT_DISPATCH_PAYLOAD]
    assert result.violations[0].field == "randomize"
