from __future__ import annotations

from dataclasses import dataclass
from typing import Any


# Upper bound for any single line quantity; keeps payload typos (extra zeros)
# from being accepted as real stock movements.
MAX_LINE_QUANTITY = 1_000_000

# Maximum unit cost: $9,999,999.99 (999,999,999 cents)
MAX_UNIT_COST_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level missing record."""


class ConflictError(ValueError):
    """409-level state machine violation (e.g., deleting a shipped transfer)."""


class ConcurrencyError(RuntimeError):
    """409-level optimistic lock / unique constraint loss. Safe to retry."""

    retryable = True


@dataclass(frozen=True)
class TransferItemInput:
    product_id: int
    quantity: int
    unit_cost_cents: int = 0


@dataclass(frozen=True)
class AdjustmentItemInput:
    product_id: int
    quantity: int
    unit_cost_cents: int = 0
    reason: str | None = None


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion for JSON and CLI input.

    Rejects bools, floats, decimal strings and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def optional_int(field: str, value: Any) -> int | None:
    if value is None:
        return None
    return coerce_int(field, value)


def require_fields(payload: Any, *fields: str) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in fields if payload.get(f) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def _unit_cost(raw: dict) -> int:
    cost = coerce_int("unit_cost_cents", raw.get("unit_cost_cents", 0))
    if cost < 0:
        raise ValidationError("unit_cost_cents must be >= 0")
    if cost > MAX_UNIT_COST_CENTS:
        raise ValidationError(f"unit_cost_cents cannot exceed {MAX_UNIT_COST_CENTS}")
    return cost


def parse_transfer_items(items: Any) -> list[TransferItemInput]:
    """Normalize transfer lines; every quantity must be positive."""
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("A transfer needs at least one item")

    parsed: list[TransferItemInput] = []
    for index, raw in enumerate(items):
        if isinstance(raw, TransferItemInput):
            raw = {
                "product_id": raw.product_id,
                "quantity": raw.quantity,
                "unit_cost_cents": raw.unit_cost_cents,
            }
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        require_fields(raw, "product_id", "quantity")
        quantity = coerce_int(f"items[{index}].quantity", raw["quantity"])
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be > 0")
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"items[{index}].quantity cannot exceed {MAX_LINE_QUANTITY}")
        parsed.append(
            TransferItemInput(
                product_id=coerce_int(f"items[{index}].product_id", raw["product_id"]),
                quantity=quantity,
                unit_cost_cents=_unit_cost(raw),
            )
        )
    return parsed


def parse_adjustment_items(items: Any) -> list[AdjustmentItemInput]:
    """Normalize adjustment lines; quantity is a signed, non-zero delta."""
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("An adjustment needs at least one item")

    parsed: list[AdjustmentItemInput] = []
    for index, raw in enumerate(items):
        if isinstance(raw, AdjustmentItemInput):
            raw = {
                "product_id": raw.product_id,
                "quantity": raw.quantity,
                "unit_cost_cents": raw.unit_cost_cents,
                "reason": raw.reason,
            }
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        require_fields(raw, "product_id", "quantity")
        quantity = coerce_int(f"items[{index}].quantity", raw["quantity"])
        if quantity == 0:
            raise ValidationError(f"items[{index}].quantity must be non-zero")
        if abs(quantity) > MAX_LINE_QUANTITY:
            raise ValidationError(f"items[{index}].quantity cannot exceed {MAX_LINE_QUANTITY}")
        reason = raw.get("reason")
        parsed.append(
            AdjustmentItemInput(
                product_id=coerce_int(f"items[{index}].product_id", raw["product_id"]),
                quantity=quantity,
                unit_cost_cents=_unit_cost(raw),
                reason=str(reason).strip() if reason is not None else None,
            )
        )
    return parsed
