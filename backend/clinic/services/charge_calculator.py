# Overview: Pure charge arithmetic; no database work, no side effects.

"""
Charge Calculator

All amounts are integer minor units (paise/cents). Rounding a fractional
amount to whole minor units with ROUND_HALF_UP is the same rule as rounding
the major-unit amount to 2 decimals half away from zero.

GUARANTEES:
- Deterministic and idempotent: same inputs, same outputs, no hidden state.
- Never raises for in-range inputs: out-of-range values are clamped.
- Exactly one of pending / refund_due is positive, or both are zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum


class DiscountMode(str, Enum):
    PERCENT = "PERCENT"
    AMOUNT = "AMOUNT"
    WAIVE = "WAIVE"


# Billing status of a single charge (derived, never stored)
BILLING_UNPAID = "UNPAID"
BILLING_PARTIAL = "PARTIAL"
BILLING_PAID = "PAID"
BILLING_WAIVED = "WAIVED"
BILLING_REFUND_DUE = "REFUND_DUE"

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class DiscountRule:
    """A discount expressed as a mode; resolved against the gross at apply time."""
    mode: DiscountMode
    value: Decimal | int = 0


@dataclass(frozen=True)
class ChargeBreakdown:
    gross_cents: int
    discount_cents: int
    net_cents: int
    paid_cents: int
    pending_cents: int
    refund_due_cents: int
    status: str

    def to_dict(self) -> dict:
        return {
            "gross_cents": self.gross_cents,
            "discount_cents": self.discount_cents,
            "net_cents": self.net_cents,
            "paid_cents": self.paid_cents,
            "pending_cents": self.pending_cents,
            "refund_due_cents": self.refund_due_cents,
            "status": self.status,
        }


def clamp(n, lo, hi):
    return min(max(n, lo), hi)


def round_half_up(amount: Decimal) -> int:
    """Round a fractional minor-unit amount to a whole one, halves away from zero."""
    return int(amount.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_cents(amount) -> int:
    """Major units (e.g. Decimal("499.995")) -> minor units, round half up."""
    return round_half_up(Decimal(str(amount)) * _HUNDRED)


def compute_net(gross: int, discount: int) -> int:
    """net = clamp(gross - discount, 0, gross). A discount above gross gives 0."""
    gross = max(gross, 0)
    return clamp(gross - discount, 0, gross)


def compute_waived_net(gross: int) -> int:
    return 0


def compute_pending(net: int, paid: int) -> int:
    return max(net - paid, 0)


def compute_refund_due(net: int, paid: int) -> int:
    """
    Overpaid portion relative to the current net.

    Lowering net below what was already collected always yields a positive
    refund due, which has to be resolved by an explicit refund.
    """
    return max(paid - net, 0)


def apply_discount_mode(gross: int, mode: DiscountMode, value: Decimal | int = 0) -> int:
    """
    Resolve a discount mode into a discount amount.

    PERCENT: value clamped to [0, 100], discount = gross * value / 100
    AMOUNT:  value (minor units) clamped to [0, gross]
    WAIVE:   discount = gross, so net = 0
    """
    gross = max(gross, 0)
    mode = DiscountMode(mode)

    if mode is DiscountMode.WAIVE:
        return gross

    if mode is DiscountMode.PERCENT:
        pct = clamp(Decimal(str(value)), Decimal(0), _HUNDRED)
        return clamp(round_half_up(Decimal(gross) * pct / _HUNDRED), 0, gross)

    return clamp(round_half_up(Decimal(str(value))), 0, gross)


def resolve_discount(gross: int, discount: DiscountRule | int) -> int:
    """Discount amount for either a plain amount or a DiscountRule."""
    if isinstance(discount, DiscountRule):
        return apply_discount_mode(gross, discount.mode, discount.value)
    return apply_discount_mode(gross, DiscountMode.AMOUNT, discount)


def billing_status(net: int, paid: int, discount: int = 0) -> str:
    """
    WAIVED only when a discount brought the net to zero; a zero-rate charge
    with nothing paid is simply PAID.
    """
    if paid > net:
        return BILLING_REFUND_DUE
    if net == 0 and discount > 0:
        return BILLING_WAIVED
    if paid == net:
        return BILLING_PAID
    if paid > 0:
        return BILLING_PARTIAL
    return BILLING_UNPAID


def charge_breakdown(gross: int, discount: int, paid: int) -> ChargeBreakdown:
    discount = clamp(discount, 0, max(gross, 0))
    net = compute_net(gross, discount)
    return ChargeBreakdown(
        gross_cents=gross,
        discount_cents=discount,
        net_cents=net,
        paid_cents=paid,
        pending_cents=compute_pending(net, paid),
        refund_due_cents=compute_refund_due(net, paid),
        status=billing_status(net, paid, discount),
    )
