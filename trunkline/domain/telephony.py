from __future__ import annotations

from typing import Literal


TrunkType = Literal["twilio", "livekit_outbound", "livekit_inbound", "custom"]
TrunkDirection = Literal["outbound", "inbound", "bidirectional"]
TrunkStatus = Literal["active", "inactive", "pending"]
TrunkProvider = Literal["twilio", "livekit", "custom"]
CredentialMode = Literal["existing", "create"]
DispatchRuleType = Literal["individual", "direct", "callee"]
CallDirection = Literal["inbound", "outbound"]
CredentialState = Literal["draft", "active", "revoked"]
MatchTier = Literal["country", "region", "plan_default"]

TRUNK_TYPES = frozenset({"twilio", "livekit_outbound", "livekit_inbound", "custom"})
TRUNK_DIRECTIONS = frozenset({"outbound", "inbound", "bidirectional"})
TRUNK_STATUSES = frozenset({"active", "inactive", "pending"})
TRUNK_PROVIDERS = frozenset({"twilio", "livekit", "custom"})
DISPATCH_RULE_TYPES = frozenset({"individual", "direct", "callee"})
CALL_DIRECTIONS = frozenset({"inbound", "outbound"})

# Trunk directions able to carry each call direction.
INBOUND_CAPABLE = frozenset({"inbound", "bidirectional"})
OUTBOUND_CAPABLE = frozenset({"outbound", "bidirectional"})

# LiveKit trunks are one-way by construction; twilio and custom may be either.
FIXED_TRUNK_DIRECTIONS: dict[str, str] = {
    "livekit_outbound": "outbound",
    "livekit_inbound": "inbound",
}

# Provider-specific trunk fields, scoped to the trunk types allowed to carry them.
TRUNK_VARIANT_FIELDS: dict[str, frozenset[str]] = {
    "address": frozenset({"livekit_outbound", "custom"}),
    "termination_sip_domain": frozenset({"twilio"}),
    "credential_list_sid": frozenset({"twilio"}),
    "allowed_numbers": frozenset({"livekit_inbound"}),
    "allowed_addresses": frozenset({"livekit_inbound"}),
    "krisp_enabled": frozenset({"livekit_inbound"}),
}

# Dispatch payload fields, scoped to the rule types allowed to carry them.
DISPATCH_VARIANT_FIELDS: dict[str, frozenset[str]] = {
    "room_prefix": frozenset({"individual", "callee"}),
    "room_name": frozenset({"direct"}),
    "pin": frozenset({"direct"}),
    "randomize": frozenset({"callee"}),
}

PROVIDER_FOR_TRUNK_TYPE: dict[str, str] = {
    "twilio": "twilio",
    "livekit_outbound": "livekit",
    "livekit_inbound": "livekit",
    "custom": "custom",
}
