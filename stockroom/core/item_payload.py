"""Item Payload Rules - per-variant validation and masking for the payload tagged union.

Invariants:
    - A payload is a JSON object whose "type" field names its DeliveryType
    - validate_payload() is PURE: returns an error message or None, never raises
    - mask_preview() never exposes more than a fixed prefix/suffix of a secret
    - Every DeliveryType has exactly one validator and one masker

Design Decisions:
    - Lookup tables keyed by DeliveryType instead of isinstance/if-chains:
      adding a variant is one entry in each table
    - Payloads stay plain dicts: they are encrypted as JSON and never mapped
      onto ORM columns
"""

from collections.abc import Callable

from stockroom.core.domain_types import DeliveryType

BUNDLE_ENTRY_TYPES = frozenset({
    DeliveryType.KEY.value, DeliveryType.ACCOUNT.value,
    DeliveryType.CODE.value, DeliveryType.LICENSE.value,
})

MASK = "****"


# ─── Field helpers ───────────────────────────────────────────────

def _non_empty_str(payload: dict, key: str) -> bool:
    value = payload.get(key)
    return isinstance(value, str) and len(value) > 0


def _optional_email(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or "@" not in value.strip("@"):
        return f"Account item field '{key}' must be an email address"
    return None


# ─── Validators ──────────────────────────────────────────────────

def _validate_key(payload: dict) -> str | None:
    if not _non_empty_str(payload, "key"):
        return "Key item requires a non-empty key field"
    return None


def _validate_account(payload: dict) -> str | None:
    if not (_non_empty_str(payload, "username") and _non_empty_str(payload, "password")):
        return "Account item requires username and password"
    return _optional_email(payload, "email") or _optional_email(payload, "recovery_email")


def _validate_code(payload: dict) -> str | None:
    if not _non_empty_str(payload, "code"):
        return "Code item requires a non-empty code field"
    value = payload.get("value")
    if value is not None and (
        isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0
    ):
        return "Code item value must be a non-negative number"
    return None


def _validate_license(payload: dict) -> str | None:
    if not _non_empty_str(payload, "license_key"):
        return "License item requires a non-empty license_key field"
    seats = payload.get("seats")
    if seats is not None and (
        isinstance(seats, bool) or not isinstance(seats, int) or seats < 1
    ):
        return "License item seats must be an integer >= 1"
    return None


def _validate_bundle(payload: dict) -> str | None:
    entries = payload.get("items")
    if not isinstance(entries, list) or not entries:
        return "Bundle item requires at least one item in the items array"
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            return f"Bundle entry {i} must be an object"
        if entry.get("type") not in BUNDLE_ENTRY_TYPES:
            return f"Bundle entry {i} has unsupported type '{entry.get('type')}'"
        if not _non_empty_str(entry, "value"):
            return f"Bundle entry {i} requires a non-empty value"
    return None


def _validate_custom(payload: dict) -> str | None:
    fields = payload.get("fields")
    if not isinstance(fields, list) or not fields:
        return "Custom item requires at least one field in the fields array"
    for i, entry in enumerate(fields):
        if not (
            isinstance(entry, dict)
            and _non_empty_str(entry, "label")
            and isinstance(entry.get("value"), str)
        ):
            return f"Custom field {i} requires a label and a string value"
    return None


_VALIDATORS: dict[DeliveryType, Callable[[dict], str | None]] = {
    DeliveryType.KEY: _validate_key,
    DeliveryType.ACCOUNT: _validate_account,
    DeliveryType.CODE: _validate_code,
    DeliveryType.LICENSE: _validate_license,
    DeliveryType.BUNDLE: _validate_bundle,
    DeliveryType.CUSTOM: _validate_custom,
}


# ─── Maskers ─────────────────────────────────────────────────────

def _mask_edges(secret: str, min_len: int, head: int, tail: int, fill: str) -> str:
    if len(secret) <= min_len:
        return MASK
    return f"{secret[:head]}{fill}{secret[-tail:]}"


def _mask_key(payload: dict) -> str:
    return _mask_edges(payload["key"], 8, 4, 4, MASK)


def _mask_account(payload: dict) -> str:
    username = payload["username"]
    if len(username) <= 4:
        return MASK
    return f"{username[:2]}***@***"


def _mask_code(payload: dict) -> str:
    return _mask_edges(payload["code"], 6, 3, 3, "***")


def _mask_license(payload: dict) -> str:
    return _mask_edges(payload["license_key"], 8, 4, 4, MASK)


def _mask_bundle(payload: dict) -> str:
    return f"Bundle ({len(payload['items'])} items)"


def _mask_custom(payload: dict) -> str:
    return f"Custom ({len(payload['fields'])} fields)"


_MASKERS: dict[DeliveryType, Callable[[dict], str]] = {
    DeliveryType.KEY: _mask_key,
    DeliveryType.ACCOUNT: _mask_account,
    DeliveryType.CODE: _mask_code,
    DeliveryType.LICENSE: _mask_license,
    DeliveryType.BUNDLE: _mask_bundle,
    DeliveryType.CUSTOM: _mask_custom,
}


# ─── Public API ──────────────────────────────────────────────────

def payload_type(payload: object) -> DeliveryType | None:
    """Resolve the payload's declared variant, or None if absent/unknown."""
    if not isinstance(payload, dict):
        return None
    try:
        return DeliveryType(payload.get("type"))
    except ValueError:
        return None


def check_type_matches(payload: object, expected: DeliveryType) -> str | None:
    """Error message when the payload's declared type differs from the product's."""
    declared = payload.get("type") if isinstance(payload, dict) else None
    if declared != expected.value:
        return f"Type mismatch ({declared} vs {expected.value})"
    return None


def validate_payload(expected: DeliveryType, payload: object) -> str | None:
    """Full intake check: declared type, then the variant's own rules. Pure."""
    mismatch = check_type_matches(payload, expected)
    if mismatch:
        return mismatch
    return _VALIDATORS[expected](payload)


def mask_preview(payload: dict) -> str:
    """Display-safe representation of a validated payload."""
    variant = payload_type(payload)
    if variant is None:
        return MASK
    return _MASKERS[variant](payload)
