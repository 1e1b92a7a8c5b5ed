from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Callable, Mapping

from trunkline.core.errors import ValidationFailed
from trunkline.domain.countries import is_iso_country
from trunkline.domain.telephony import (
    DISPATCH_RULE_TYPES,
    DISPATCH_VARIANT_FIELDS,
    FIXED_TRUNK_DIRECTIONS,
    INBOUND_CAPABLE,
    OUTBOUND_CAPABLE,
    PROVIDER_FOR_TRUNK_TYPE,
    TRUNK_DIRECTIONS,
    TRUNK_STATUSES,
    TRUNK_TYPES,
    TRUNK_VARIANT_FIELDS,
)


INVALID_LOCALITY = "INVALID_LOCALITY"
UNKNOWN_COUNTRY_CODE = "UNKNOWN_COUNTRY_CODE"
INCOHERENT_DISPATCH_PAYLOAD = "INCOHERENT_DISPATCH_PAYLOAD"
NO_TRUNKS_SELECTED = "NO_TRUNKS_SELECTED"
WEAK_CREDENTIAL_SECRET = "WEAK_CREDENTIAL_SECRET"
INVALID_PLAN_CODE = "INVALID_PLAN_CODE"
IMMUTABLE_FIELD = "IMMUTABLE_FIELD"
DISPATCH_TRUNK_INVALID = "DISPATCH_TRUNK_INVALID"
INCOHERENT_TRUNK_PAYLOAD = "INCOHERENT_TRUNK_PAYLOAD"
TRUNK_DIRECTION_MISMATCH = "TRUNK_DIRECTION_MISMATCH"
DISPATCH_RULE_TRUNK_MISMATCH = "DISPATCH_RULE_TRUNK_MISMATCH"
UNKNOWN_REFERENCE = "UNKNOWN_REFERENCE"
REQUIRED_FIELD = "REQUIRED_FIELD"
INVALID_CHOICE = "INVALID_CHOICE"
NEGATIVE_VALUE = "NEGATIVE_VALUE"

MIN_CREDENTIAL_SECRET_LENGTH = 12
MIN_PLAN_CODE_LENGTH = 2

_PLAN_CODE_RE = re.compile(r"^[A-Z0-9][A-Z0-9_-]*$")

PLAN_AMOUNT_FIELDS = (
    "monthly_price_cents",
    "per_number_monthly_price_cents",
    "included_phone_numbers",
    "included_ai_minutes",
    "included_pstn_minutes",
    "included_realtime_minutes",
    "included_transcription_minutes",
)


@dataclass(frozen=True)
class Violation:
    # A single field-scoped rule failure; field is None for entity-level problems.
    code: str
    field: str | None
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "field": self.field, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True)
class ValidationResult:
    violations: tuple[Violation, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def codes(self) -> list[str]:
        return [violation.code for violation in self.violations]

    def raise_for_violations(self) -> None:
        if self.violations:
            raise ValidationFailed(list(self.violations))


@dataclass(frozen=True)
class ValidationContext:
    """Reference data a rule may consult.

    A ``None`` lookup table means the caller did not load it and the
    corresponding reference checks are skipped; shape rules always run.
    """

    existing: Mapping[str, Any] | None = None
    # trunk id -> direction
    trunks: Mapping[str, str] | None = None
    # dispatch rule id -> covered trunk ids
    dispatch_rules: Mapping[str, tuple[str, ...]] | None = None
    routing_profile_ids: frozenset[str] | None = None
    credential_list_sids: frozenset[str] | None = None
    credential_min_length: int = MIN_CREDENTIAL_SECRET_LENGTH


def is_set(value: Any) -> bool:
    # Blank strings count as unset; operators clear fields by submitting "".
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _carries(value: Any) -> bool:
    # A variant field is "carried" when it holds a meaningful value; False flags are absent.
    if value is False:
        return False
    return is_set(value)


def check_required(payload: Mapping[str, Any], fields: tuple[str, ...]) -> list[Violation]:
    return [
        Violation(REQUIRED_FIELD, name, f"{name} is required")
        for name in fields
        if not is_set(payload.get(name))
    ]


def check_choice(payload: Mapping[str, Any], name: str, choices: frozenset[str]) -> list[Violation]:
    value = payload.get(name)
    if not is_set(value) or value in choices:
        return []
    return [
        Violation(
            INVALID_CHOICE,
            name,
            f"{name} must be one of {', '.join(sorted(choices))}",
            {"value": value},
        )
    ]


def check_locality(payload: Mapping[str, Any]) -> list[Violation]:
    has_country = is_set(payload.get("country"))
    has_region = is_set(payload.get("region"))
    if has_country and has_region:
        return [
            Violation(
                INVALID_LOCALITY,
                "region",
                "Cannot specify both country and region - choose one",
                {"reason": "both_set"},
            )
        ]
    if not has_country and not has_region:
        return [
            Violation(
                INVALID_LOCALITY,
                "country",
                "Either country or region must be provided",
                {"reason": "neither_set"},
            )
        ]
    return []


def check_country_code(value: Any, field_name: str = "country") -> list[Violation]:
    if not is_set(value):
        return []
    code = str(value).strip().upper()
    if is_iso_country(code):
        return []
    return [
        Violation(
            UNKNOWN_COUNTRY_CODE,
            field_name,
            "Country must be a valid ISO-2 code",
            {"value": value},
        )
    ]


def check_plan_code(code: Any) -> list[Violation]:
    text = str(code or "").strip().upper()
    if len(text) < MIN_PLAN_CODE_LENGTH or not _PLAN_CODE_RE.match(text):
        return [
            Violation(
                INVALID_PLAN_CODE,
                "code",
                f"Plan code must be at least {MIN_PLAN_CODE_LENGTH} characters of A-Z, 0-9, '_' or '-'",
                {"value": code},
            )
        ]
    return []


def check_non_negative(payload: Mapping[str, Any], fields: tuple[str, ...]) -> list[Violation]:
    violations: list[Violation] = []
    for name in fields:
        value = payload.get(name)
        if value is not None and value < 0:
            violations.append(Violation(NEGATIVE_VALUE, name, f"{name} must not be negative"))
    return violations


def check_immutable(
    payload: Mapping[str, Any],
    existing: Mapping[str, Any] | None,
    field_name: str,
    normalize: Callable[[Any], Any] = lambda value: value,
) -> list[Violation]:
    if existing is None or field_name not in payload:
        return []
    if normalize(payload[field_name]) == normalize(existing.get(field_name)):
        return []
    return [
        Violation(
            IMMUTABLE_FIELD,
            field_name,
            f"{field_name} cannot be changed after creation",
        )
    ]


def check_credential_secret(password: Any, min_length: int = MIN_CREDENTIAL_SECRET_LENGTH) -> list[Violation]:
    # Configuration may raise the floor, never lower it.
    min_length = max(min_length, MIN_CREDENTIAL_SECRET_LENGTH)
    text = password if isinstance(password, str) else ""
    unmet: list[str] = []
    if len(text) < min_length:
        unmet.append(f"at least {min_length} characters")
    if not any(ch.isdigit() for ch in text):
        unmet.append("at least 1 digit")
    if not (any(ch.isupper() for ch in text) and any(ch.islower() for ch in text)):
        unmet.append("both uppercase and lowercase letters")
    if not unmet:
        return []
    return [
        Violation(
            WEAK_CREDENTIAL_SECRET,
            "password",
            "Password must contain " + ", ".join(unmet),
            {"unmet": unmet},
        )
    ]


def check_dispatch_payload(payload: Mapping[str, Any]) -> list[Violation]:
    rule_type = payload.get("type")
    if rule_type not in DISPATCH_RULE_TYPES:
        return []
    violations: list[Violation] = []
    for name, allowed in DISPATCH_VARIANT_FIELDS.items():
        if rule_type in allowed or not _carries(payload.get(name)):
            continue
        violations.append(
            Violation(
                INCOHERENT_DISPATCH_PAYLOAD,
                name,
                f"{name} is not valid for {rule_type} dispatch rules",
                {"type": rule_type},
            )
        )
    return violations


def check_dispatch_trunks(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    trunk_ids = list(payload.get("trunk_ids") or [])
    if not trunk_ids:
        return [Violation(NO_TRUNKS_SELECTED, "trunk_ids", "At least one trunk must be selected")]
    if context.trunks is None:
        return []
    unknown = [trunk_id for trunk_id in trunk_ids if trunk_id not in context.trunks]
    wrong_direction = [
        trunk_id
        for trunk_id in trunk_ids
        if trunk_id in context.trunks and context.trunks[trunk_id] not in INBOUND_CAPABLE
    ]
    violations: list[Violation] = []
    if unknown:
        violations.append(
            Violation(
                DISPATCH_TRUNK_INVALID,
                "trunk_ids",
                "Dispatch rule references unknown trunks",
                {"unknown": unknown},
            )
        )
    if wrong_direction:
        violations.append(
            Violation(
                DISPATCH_TRUNK_INVALID,
                "trunk_ids",
                "Dispatch rules may only use inbound or bidirectional trunks",
                {"outbound_only": wrong_direction},
            )
        )
    return violations


def check_trunk_payload(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    trunk_type = payload.get("type")
    if trunk_type not in TRUNK_TYPES:
        return []
    violations: list[Violation] = []
    fixed_direction = FIXED_TRUNK_DIRECTIONS.get(trunk_type)
    direction = payload.get("direction")
    if fixed_direction and direction in TRUNK_DIRECTIONS and direction != fixed_direction:
        violations.append(
            Violation(
                INCOHERENT_TRUNK_PAYLOAD,
                "direction",
                f"{trunk_type} trunks must be {fixed_direction}",
                {"type": trunk_type},
            )
        )
    provider = payload.get("provider")
    if is_set(provider) and provider != PROVIDER_FOR_TRUNK_TYPE[trunk_type]:
        violations.append(
            Violation(
                INCOHERENT_TRUNK_PAYLOAD,
                "provider",
                f"{trunk_type} trunks are provisioned by {PROVIDER_FOR_TRUNK_TYPE[trunk_type]}",
                {"type": trunk_type},
            )
        )
    for name, allowed in TRUNK_VARIANT_FIELDS.items():
        if trunk_type in allowed or not _carries(payload.get(name)):
            continue
        violations.append(
            Violation(
                INCOHERENT_TRUNK_PAYLOAD,
                name,
                f"{name} is not valid for {trunk_type} trunks",
                {"type": trunk_type},
            )
        )
    violations.extend(_check_credential_mode(payload, trunk_type, context))
    return violations


def _check_credential_mode(
    payload: Mapping[str, Any], trunk_type: str, context: ValidationContext
) -> list[Violation]:
    mode = payload.get("credential_mode")
    if not is_set(mode):
        return []
    if trunk_type != "twilio":
        return [
            Violation(
                INCOHERENT_TRUNK_PAYLOAD,
                "credential_mode",
                f"credential_mode is not valid for {trunk_type} trunks",
                {"type": trunk_type},
            )
        ]
    if mode == "existing":
        sid = payload.get("credential_list_sid")
        if not is_set(sid):
            return [Violation(REQUIRED_FIELD, "credential_list_sid", "credential_list_sid is required")]
        if context.credential_list_sids is not None and sid not in context.credential_list_sids:
            return [
                Violation(
                    UNKNOWN_REFERENCE,
                    "credential_list_sid",
                    "Credential list not found",
                    {"value": sid},
                )
            ]
        return []
    if mode == "create":
        violations = check_required(payload, ("credential_list_name", "username", "password"))
        if is_set(payload.get("password")):
            violations.extend(check_credential_secret(payload.get("password"), context.credential_min_length))
        return violations
    return [
        Violation(
            INVALID_CHOICE,
            "credential_mode",
            "credential_mode must be one of create, existing",
            {"value": mode},
        )
    ]


def check_profile_references(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    violations: list[Violation] = []
    legs = (
        ("outbound_trunk_id", OUTBOUND_CAPABLE, "outbound"),
        ("inbound_trunk_id", INBOUND_CAPABLE, "inbound"),
    )
    if context.trunks is not None:
        for name, capable, leg in legs:
            trunk_id = payload.get(name)
            if not is_set(trunk_id):
                continue
            direction = context.trunks.get(trunk_id)
            if direction is None:
                violations.append(
                    Violation(UNKNOWN_REFERENCE, name, "Trunk not found", {"value": trunk_id})
                )
            elif direction not in capable:
                violations.append(
                    Violation(
                        TRUNK_DIRECTION_MISMATCH,
                        name,
                        f"Trunk {trunk_id} cannot carry {leg} calls",
                        {"direction": direction},
                    )
                )
    rule_id = payload.get("dispatch_rule_id")
    if context.dispatch_rules is not None and is_set(rule_id):
        covered = context.dispatch_rules.get(rule_id)
        if covered is None:
            violations.append(
                Violation(UNKNOWN_REFERENCE, "dispatch_rule_id", "Dispatch rule not found", {"value": rule_id})
            )
        else:
            inbound_trunk_id = payload.get("inbound_trunk_id")
            if is_set(inbound_trunk_id) and inbound_trunk_id not in covered:
                violations.append(
                    Violation(
                        DISPATCH_RULE_TRUNK_MISMATCH,
                        "dispatch_rule_id",
                        "Dispatch rule does not cover the inbound trunk",
                        {"inbound_trunk_id": inbound_trunk_id},
                    )
                )
    return violations


def _validate_plan(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    violations: list[Violation] = []
    violations.extend(
        check_immutable(payload, context.existing, "code", lambda v: str(v or "").strip().upper())
    )
    violations.extend(check_plan_code(payload.get("code")))
    violations.extend(check_non_negative(payload, PLAN_AMOUNT_FIELDS))
    for index, code in enumerate(payload.get("allowed_countries") or []):
        violations.extend(check_country_code(code, f"allowed_countries[{index}]"))
    template_id = payload.get("default_routing_profile_template_id")
    if (
        context.routing_profile_ids is not None
        and is_set(template_id)
        and template_id not in context.routing_profile_ids
    ):
        violations.append(
            Violation(
                UNKNOWN_REFERENCE,
                "default_routing_profile_template_id",
                "Routing profile not found",
                {"value": template_id},
            )
        )
    return violations


def _validate_trunk(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    violations = check_required(payload, ("name", "type", "direction"))
    violations.extend(check_choice(payload, "type", TRUNK_TYPES))
    violations.extend(check_choice(payload, "direction", TRUNK_DIRECTIONS))
    violations.extend(check_choice(payload, "status", TRUNK_STATUSES))
    violations.extend(check_trunk_payload(payload, context))
    return violations


def _validate_dispatch_rule(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    violations = check_required(payload, ("name", "type"))
    violations.extend(check_choice(payload, "type", DISPATCH_RULE_TYPES))
    violations.extend(check_dispatch_payload(payload))
    violations.extend(check_dispatch_trunks(payload, context))
    return violations


def _validate_routing_profile(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    violations = check_required(payload, ("name", "outbound_provider"))
    violations.extend(check_locality(payload))
    violations.extend(check_country_code(payload.get("country")))
    violations.extend(check_profile_references(payload, context))
    return violations


def _validate_plan_routing_profile(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    violations = check_required(payload, ("plan_code", "routing_profile_id"))
    violations.extend(check_locality(payload))
    violations.extend(check_country_code(payload.get("country")))
    profile_id = payload.get("routing_profile_id")
    if (
        context.routing_profile_ids is not None
        and is_set(profile_id)
        and profile_id not in context.routing_profile_ids
    ):
        violations.append(
            Violation(UNKNOWN_REFERENCE, "routing_profile_id", "Routing profile not found", {"value": profile_id})
        )
    return violations


def _validate_credential(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    violations = check_immutable(payload, context.existing, "username")
    if context.existing is None:
        violations.extend(check_required(payload, ("username",)))
        violations.extend(check_credential_secret(payload.get("password"), context.credential_min_length))
    elif "password" in payload:
        violations.extend(check_credential_secret(payload.get("password"), context.credential_min_length))
    return violations


def _validate_credential_list(payload: Mapping[str, Any], context: ValidationContext) -> list[Violation]:
    return check_required(payload, ("friendly_name",))


_VALIDATORS: dict[str, Callable[[Mapping[str, Any], ValidationContext], list[Violation]]] = {
    "plan": _validate_plan,
    "trunk": _validate_trunk,
    "dispatch_rule": _validate_dispatch_rule,
    "routing_profile": _validate_routing_profile,
    "plan_routing_profile": _validate_plan_routing_profile,
    "credential": _validate_credential,
    "credential_list": _validate_credential_list,
}


def validate(
    kind: str,
    payload: Mapping[str, Any],
    context: ValidationContext | None = None,
) -> ValidationResult:
    """Run every rule for ``kind`` and collect violations in rule order.

    For updates, pass the merged record (existing values overlaid with the
    patch) as ``payload`` and the stored row as ``context.existing`` so
    immutability checks can compare against it.
    """
    validator = _VALIDATORS.get(kind)
    if validator is None:
        raise ValueError(f"Unknown entity kind: {kind}")
    violations = validator(payload, context or ValidationContext())
    return ValidationResult(violations=tuple(violations))
