"""
Unit tests for the checkout pricing engine (no database).
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace

from coursemart.exceptions import InvalidCheckoutTotalError
from coursemart.services.pricing_service import (
    PromoDetails, compute_checkout_totals, compute_promo_discount, promo_applies_to_course,
    resolve_effective_price, round_currency, split_revenue, to_minor_units
)


def make_course(id=1, tutor_id=10, base_price=None, current_price=None, price=None, category='design'):
    return SimpleNamespace(
        id=id, tutor_id=tutor_id, category=category,
        base_price=Decimal(base_price) if base_price is not None else None,
        current_price=Decimal(current_price) if current_price is not None else None,
        price=Decimal(price) if price is not None else None,
    )


def make_promo(**fields):
    fields.setdefault('id', 7)
    fields.setdefault('code', 'SAVE10')
    fields.setdefault('promo_type', 'PLATFORM')
    fields.setdefault('discount_type', 'PERCENT')
    fields.setdefault('discount_value', Decimal('10'))
    fields.setdefault('is_global', True)
    return PromoDetails(**fields)


class TestEffectivePrice:
    """Price fallback chain."""

    def test_current_price_wins(self):
        assert resolve_effective_price(make_course(base_price='50000', current_price='35000')) == Decimal('35000.00')

    def test_falls_back_to_base_price(self):
        assert resolve_effective_price(make_course(base_price='50000', current_price='0')) == Decimal('50000.00')

    def test_falls_back_to_legacy_price(self):
        assert resolve_effective_price(make_course(price='1200')) == Decimal('1200.00')

    def test_no_price_is_zero(self):
        assert resolve_effective_price(make_course()) == Decimal('0.00')


class TestCheckoutTotals:
    """Aggregate breakdowns."""

    def test_markdown_without_promo(self):
        """base 50000, current 35000, VAT 7.5% -> total 37625."""
        totals = compute_checkout_totals(
            [make_course(base_price='50000', current_price='35000')], None, vat_rate=Decimal('0.075')
        )
        line = totals.line_items[0]

        assert line.effective_price == Decimal('35000.00')
        assert line.list_price == Decimal('50000.00')
        assert line.discount_amount == Decimal('0.00')
        assert line.vat_amount == Decimal('2625.00')
        assert line.total_amount == Decimal('37625.00')
        assert totals.subtotal_amount == Decimal('35000.00')
        assert totals.total_amount == Decimal('37625.00')
        assert totals.promo_applied is False

    def test_line_totals_sum_to_checkout_total(self):
        courses = [
            make_course(id=1, current_price='999.99'),
            make_course(id=2, current_price='12345.67'),
            make_course(id=3, base_price='333.33'),
        ]
        totals = compute_checkout_totals(courses, make_promo(discount_value=Decimal('15')), vat_rate='0.075')

        assert sum(line.total_amount for line in totals.line_items) == totals.total_amount
        assert totals.total_amount == totals.subtotal_amount - totals.discount_amount + totals.vat_amount

    def test_percent_promo(self):
        totals = compute_checkout_totals([make_course(current_price='20000')], make_promo(), vat_rate='0')
        line = totals.line_items[0]

        assert line.discount_amount == Decimal('2000.00')
        assert line.discounted_price == Decimal('18000.00')
        assert line.promo_code_id == 7
        assert totals.promo_applied is True

    def test_fixed_promo_capped_at_price(self):
        promo = make_promo(discount_type='FIXED', discount_value=Decimal('5000'))
        courses = [make_course(id=1, current_price='3000'), make_course(id=2, current_price='8000')]
        totals = compute_checkout_totals(courses, promo, vat_rate='0')

        assert totals.line_items[0].discount_amount == Decimal('3000.00')
        assert totals.line_items[1].discount_amount == Decimal('5000.00')
        assert totals.total_amount == Decimal('3000.00')

    def test_discount_never_exceeds_effective_price(self):
        promo = make_promo(discount_value=Decimal('150'), is_global=False, category='design')
        totals = compute_checkout_totals(
            [make_course(id=1, current_price='100'), make_course(id=2, current_price='50', category='other')],
            promo, vat_rate='0'
        )
        for line in totals.line_items:
            assert Decimal('0') <= line.discount_amount <= line.effective_price

    def test_zero_total_raises(self):
        with pytest.raises(InvalidCheckoutTotalError):
            compute_checkout_totals([make_course()], None)

    def test_full_discount_raises(self):
        promo = make_promo(discount_value=Decimal('100'))
        with pytest.raises(InvalidCheckoutTotalError):
            compute_checkout_totals([make_course(current_price='5000')], promo)

    def test_promo_only_discounts_matching_course(self):
        promo = make_promo(is_global=False, course_id=2)
        totals = compute_checkout_totals(
            [make_course(id=1, current_price='1000'), make_course(id=2, current_price='1000')],
            promo, vat_rate='0'
        )

        assert totals.line_items[0].promo_applied is False
        assert totals.line_items[1].discount_amount == Decimal('100.00')
        assert totals.discount_amount == Decimal('100.00')


class TestRevenueSplit:
    """Tutor and platform shares."""

    def test_normal_sale_commission(self):
        totals = compute_checkout_totals([make_course(current_price='10000')], None, vat_rate='0.075')
        line = totals.line_items[0]

        assert line.tutor_share_amount == Decimal('2500.00')
        assert line.platform_share_amount == Decimal('7500.00')

    def test_platform_promo_commission(self):
        totals = compute_checkout_totals([make_course(current_price='10000')], make_promo(), vat_rate='0')
        line = totals.line_items[0]

        assert line.tutor_share_amount == Decimal('1800.00')
        assert line.platform_share_amount == Decimal('7200.00')

    def test_instructor_promo_commission(self):
        promo = make_promo(promo_type='INSTRUCTOR', creator_id=10, is_global=False)
        totals = compute_checkout_totals([make_course(current_price='10000', tutor_id=10)], promo, vat_rate='0')
        line = totals.line_items[0]

        assert line.tutor_share_amount == Decimal('6300.00')
        assert line.platform_share_amount == Decimal('2700.00')

    def test_shares_sum_to_discounted_price(self):
        for price in ('0.01', '0.03', '333.33', '1000.01', '98765.43'):
            tutor_share, platform_share = split_revenue(Decimal(price), Decimal('0.75'))
            assert tutor_share + platform_share == Decimal(price)

    def test_custom_commission_rates(self):
        totals = compute_checkout_totals(
            [make_course(current_price='1000')], None, vat_rate='0',
            commission_rates={'normal': Decimal('0.5')}
        )
        assert totals.tutor_share_amount == Decimal('500.00')


class TestPromoApplicability:

    def test_course_scoped(self):
        promo = make_promo(is_global=False, course_id=3)
        assert promo_applies_to_course(promo, make_course(id=3)) is True
        assert promo_applies_to_course(promo, make_course(id=4)) is False

    def test_instructor_promo_limited_to_own_courses(self):
        promo = make_promo(promo_type='INSTRUCTOR', creator_id=10, is_global=False)
        assert promo_applies_to_course(promo, make_course(tutor_id=10)) is True
        assert promo_applies_to_course(promo, make_course(tutor_id=11)) is False

    def test_category_scoped(self):
        promo = make_promo(is_global=False, category='design')
        assert promo_applies_to_course(promo, make_course(category='design')) is True
        assert promo_applies_to_course(promo, make_course(category='code')) is False

    def test_global_flag_overrides_category(self):
        promo = make_promo(is_global=True, category='design')
        assert promo_applies_to_course(promo, make_course(category='code')) is True

    def test_no_promo(self):
        assert promo_applies_to_course(None, make_course()) is False


class TestRounding:

    def test_round_half_up(self):
        assert round_currency(Decimal('2.675')) == Decimal('2.68')
        assert round_currency(Decimal('2.665')) == Decimal('2.67')

    def test_percent_discount_rounds_to_cents(self):
        assert compute_promo_discount(make_promo(discount_value=Decimal('33')), Decimal('10.05')) == Decimal('3.32')

    def test_minor_units(self):
        assert to_minor_units(Decimal('37625.00')) == 3762500
        assert to_minor_units(Decimal('0.015')) == 2
