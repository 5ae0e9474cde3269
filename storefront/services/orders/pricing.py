"""Order pricing: subtotal, tax and flat-rate shipping with a free threshold."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from storefront.core.config import Settings
from storefront.services.orders.models import CartItem

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    """Tax rate and shipping rule applied to every order."""

    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("100")
    flat_shipping_fee: Decimal = Decimal("10")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(
            tax_rate=settings.tax_rate,
            free_shipping_threshold=settings.free_shipping_threshold,
            flat_shipping_fee=settings.flat_shipping_fee,
        )


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total_amount: Decimal


def calculate_order_totals(items: Iterable[CartItem], policy: PricingPolicy) -> OrderTotals:
    """
    Price a cart.

    Shipping is free only when the subtotal is strictly above the threshold.
    The total is the sum of the rounded parts, so it always equals
    subtotal + tax + shipping exactly.

    Example:
        Two items at 50 plus one at 30 with an 8% rate give subtotal 130.00,
        tax 10.40, shipping 0.00 and total 140.40.
    """
    subtotal = to_money(sum((item.line_total for item in items), Decimal("0")))
    tax = to_money(subtotal * policy.tax_rate)
    shipping = (
        Decimal("0.00")
        if subtotal > policy.free_shipping_threshold
        else to_money(policy.flat_shipping_fee)
    )
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total_amount=subtotal + tax + shipping,
    )
