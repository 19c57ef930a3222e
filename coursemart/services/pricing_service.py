"""
Checkout pricing engine.
Pure computation of per-course and aggregate price breakdowns; no I/O.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from coursemart.exceptions import InvalidCheckoutTotalError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

DEFAULT_VAT_RATE = Decimal('0.075')

# Share of the discounted price kept by the platform
DEFAULT_COMMISSION_RATES = {
    'normal': Decimal('0.75'),
    'platform_promo': Decimal('0.80'),
    'instructor_promo': Decimal('0.30'),
}


@dataclass(frozen=True)
class PromoDetails:
    """Validated promo code, as handed to the pricing engine."""
    id: int
    code: str
    promo_type: str  # PLATFORM | INSTRUCTOR
    discount_type: str  # PERCENT | FIXED
    discount_value: Decimal
    is_global: bool = False
    course_id: Optional[int] = None
    category: Optional[str] = None
    creator_id: Optional[int] = None


@dataclass
class LineTotals:
    course_id: int
    tutor_id: int
    list_price: Decimal
    effective_price: Decimal
    discount_amount: Decimal
    discounted_price: Decimal
    vat_amount: Decimal
    total_amount: Decimal
    tutor_share_amount: Decimal
    platform_share_amount: Decimal
    promo_applied: bool = False
    promo_code_id: Optional[int] = None
    promo_type: Optional[str] = None
    promo_discount_type: Optional[str] = None
    promo_discount_value: Optional[Decimal] = None


@dataclass
class CheckoutTotals:
    line_items: List[LineTotals] = field(default_factory=list)
    subtotal_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    vat_amount: Decimal = ZERO
    tutor_share_amount: Decimal = ZERO
    platform_share_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    promo: Optional[PromoDetails] = None

    @property
    def promo_applied(self) -> bool:
        return any(line.promo_applied for line in self.line_items)


def round_currency(value) -> Decimal:
    """Round a major-unit amount half-up to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Convert a major-unit amount (naira) to gateway minor units (kobo)."""
    return int((Decimal(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def resolve_effective_price(course) -> Decimal:
    """
    Resolve the price actually charged for a course.

    current_price if positive, else base_price if positive, else price.
    """
    for candidate in (course.current_price, course.base_price):
        if candidate is not None and Decimal(candidate) > 0:
            return round_currency(candidate)
    return round_currency(course.price or 0)


def _list_price(course, effective_price: Decimal) -> Decimal:
    """Undiscounted catalog price, used to report markdowns separately."""
    if course.base_price is not None and Decimal(course.base_price) > 0:
        return max(round_currency(course.base_price), effective_price)
    return effective_price


def promo_applies_to_course(promo: Optional[PromoDetails], course) -> bool:
    """Check whether a validated promo covers a given course."""
    if not promo:
        return False
    if promo.course_id:
        return promo.course_id == course.id
    if promo.promo_type == 'INSTRUCTOR' and promo.creator_id:
        if promo.creator_id != course.tutor_id:
            return False
    if promo.is_global:
        return True
    if promo.category:
        return promo.category == getattr(course, 'category', None)
    # Unscoped beyond the tutor check above
    return True


def compute_promo_discount(promo: PromoDetails, effective_price: Decimal) -> Decimal:
    """Discount for one course, always within [0, effective_price]."""
    value = Decimal(promo.discount_value)
    if promo.discount_type == 'PERCENT':
        discount = round_currency(effective_price * value / Decimal('100'))
    else:
        discount = round_currency(min(value, effective_price))
    return min(max(discount, ZERO), effective_price)


def _commission_rate(promo: Optional[PromoDetails], applies: bool, rates: dict) -> Decimal:
    if not promo or not applies:
        return Decimal(rates['normal'])
    if promo.promo_type == 'PLATFORM':
        return Decimal(rates['platform_promo'])
    return Decimal(rates['instructor_promo'])


def split_revenue(discounted_price: Decimal, commission_rate: Decimal):
    """
    Split a discounted price into (tutor_share, platform_share).

    The platform share absorbs the rounding remainder so both always sum
    to the discounted price exactly. VAT is never part of the split.
    """
    tutor_share = round_currency(discounted_price * (Decimal('1') - commission_rate))
    tutor_share = min(max(tutor_share, ZERO), discounted_price)
    platform_share = discounted_price - tutor_share
    return tutor_share, platform_share


def compute_checkout_totals(
    courses: Sequence,
    promo: Optional[PromoDetails] = None,
    vat_rate=DEFAULT_VAT_RATE,
    commission_rates: Optional[dict] = None
) -> CheckoutTotals:
    """
    Compute the price breakdown of a checkout.

    Args:
        courses: Objects exposing id, tutor_id, base_price, current_price,
            price and (optionally) category
        promo: Promo already validated server-side, or None
        vat_rate: VAT fraction (0.075 == 7.5%)
        commission_rates: Overrides for DEFAULT_COMMISSION_RATES

    Returns:
        CheckoutTotals with one LineTotals per course

    Raises:
        InvalidCheckoutTotalError: If the total is zero or negative
    """
    rates = dict(DEFAULT_COMMISSION_RATES)
    if commission_rates:
        rates.update(commission_rates)
    vat_rate = Decimal(str(vat_rate))

    totals = CheckoutTotals(promo=promo)

    for course in courses:
        effective_price = resolve_effective_price(course)
        applies = promo_applies_to_course(promo, course)

        discount_amount = compute_promo_discount(promo, effective_price) if applies else ZERO
        discounted_price = effective_price - discount_amount
        vat_amount = round_currency(discounted_price * vat_rate)
        tutor_share, platform_share = split_revenue(
            discounted_price, _commission_rate(promo, applies, rates)
        )

        totals.line_items.append(LineTotals(
            course_id=course.id,
            tutor_id=course.tutor_id,
            list_price=_list_price(course, effective_price),
            effective_price=effective_price,
            discount_amount=discount_amount,
            discounted_price=discounted_price,
            vat_amount=vat_amount,
            total_amount=discounted_price + vat_amount,
            tutor_share_amount=tutor_share,
            platform_share_amount=platform_share,
            promo_applied=applies,
            promo_code_id=promo.id if applies else None,
            promo_type=promo.promo_type if applies else None,
            promo_discount_type=promo.discount_type if applies else None,
            promo_discount_value=Decimal(promo.discount_value) if applies else None,
        ))

    for line in totals.line_items:
        totals.subtotal_amount += line.effective_price
        totals.discount_amount += line.discount_amount
        totals.vat_amount += line.vat_amount
        totals.tutor_share_amount += line.tutor_share_amount
        totals.platform_share_amount += line.platform_share_amount
        totals.total_amount += line.total_amount

    if totals.total_amount <= 0:
        raise InvalidCheckoutTotalError(totals.total_amount)

    return totals
