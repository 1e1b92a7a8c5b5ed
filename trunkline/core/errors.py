from __future__ import annotations

from typing import Any


class TrunklineError(Exception):
    """Base error for Trunkline."""

    code = "TRUNKLINE_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(TrunklineError):
    """One or more field-scoped validation violations blocked a write."""

    code = "VALIDATION_FAILED"

    def __init__(self, violations: list[Any]) -> None:
        # Keep every violation so the console can attach all of them to their fields at once.
        self.violations = list(violations)
        summary = "; ".join(v.message for v in self.violations) or "Validation failed"
        super().__init__(summary, details={"violations": [v.to_dict() for v in self.violations]})

    @property
    def codes(self) -> list[str]:
        return [v.code for v in self.violations]


class EntityNotFound(TrunklineError):
    """Requested entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateEntity(TrunklineError):
    """Unique key already taken."""

    code = "DUPLICATE_ENTITY"

    def __init__(self, entity: str, field: str, value: str) -> None:
        super().__init__(
            f"{entity} with {field}={value} already exists",
            details={"entity": entity, "field": field, "value": value},
        )


class EntityInUse(TrunklineError):
    """Entity is still referenced and cannot be deleted."""

    code = "ENTITY_IN_USE"

    def __init__(self, entity: str, entity_id: str, usage: dict[str, int]) -> None:
        super().__init__(
            f"{entity} {entity_id} is still referenced",
            details={"entity": entity, "id": entity_id, **usage},
        )
        self.entity = entity
        self.entity_id = entity_id
        self.usage = dict(usage)


class UnknownPlan(TrunklineError):
    """Plan code does not reference an existing plan."""

    code = "UNKNOWN_PLAN"

    def __init__(self, plan_code: str) -> None:
        super().__init__(f"Unknown plan: {plan_code}", details={"plan_code": plan_code})
        self.plan_code = plan_code


class ResolutionError(TrunklineError):
    """Routing resolution found no usable route."""

    code = "RESOLUTION_ERROR"


class CountryNotAllowedForPlan(ResolutionError):
    """Locality country is outside the plan's allowed countries."""

    code = "COUNTRY_NOT_ALLOWED_FOR_PLAN"


class NoRoutingProfileForLocality(ResolutionError):
    """No mapping or plan template matched the locality."""

    code = "NO_ROUTING_PROFILE_FOR_LOCALITY"


class RoutingProfileMissingTrunkForDirection(ResolutionError):
    """Matched routing profile has no trunk for the requested direction."""

    code = "ROUTING_PROFILE_MISSING_TRUNK_FOR_DIRECTION"


class DispatchRuleTrunkMismatch(ResolutionError):
    """Profile's dispatch rule does not cover the profile's inbound trunk."""

    code = "DISPATCH_RULE_TRUNK_MISMATCH"


class InvalidCredentialTransition(TrunklineError):
    """Credential lifecycle transition not allowed from the current state."""

    code = "INVALID_CREDENTIAL_TRANSITION"


class ProviderProvisioningFailed(TrunklineError):
    """External SIP provider rejected or failed a provisioning call."""

    code = "PROVIDER_PROVISIONING_FAILED"

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(
            f"Provisioning failed during {operation}: {message}",
            details={"operation": operation},
        )
        self.operation = operation


class ProviderConfigError(TrunklineError):
    """Missing or invalid provisioning provider configuration."""

    code = "PROVIDER_CONFIG_ERROR"
