"""
Integration tests for course checkout: pricing, promo re-validation, ledger and gateway hand-off.
"""

import pytest
from decimal import Decimal

from coursemart.exceptions import (
    AlreadyEnrolledError, BusinessLogicError, GatewayError, NotFoundError, PromoRejectedError
)
from coursemart.models import (
    Enrollment, PromoRedemption, Transaction, TransactionLineItem, TransactionStatus
)
from coursemart.services.checkout_service import begin_checkout
from coursemart.services.ledger_service import get_transaction_by_reference


class TestBeginCheckout:
    """Tests for single and multi-course checkout."""

    def test_single_course_checkout(self, session, buyer, course, gateway, identity_for):
        result = begin_checkout(session, identity_for(buyer), [course.id], gateway=gateway)

        assert result.amount == Decimal('37625.00')
        assert result.authorization_url.endswith(result.reference)
        assert result.reference.startswith('ps_')

        transaction = get_transaction_by_reference(session, result.reference)
        assert transaction.status == TransactionStatus.PENDING
        assert transaction.amount == Decimal('37625.00')
        assert transaction.subtotal_amount == Decimal('35000.00')
        assert transaction.vat_amount == Decimal('2625.00')
        assert transaction.course_id == course.id

        call = gateway.initialized[0]
        assert call['amount_minor'] == 3762500
        assert call['email'] == buyer.email
        assert call['reference'] == result.reference
        assert call['callback_url'].endswith('/courses/verify-course-payment')

    def test_cart_checkout_records_one_line_per_course(self, session, buyer, make_course, gateway, identity_for):
        first = make_course(base_price='10000', current_price=None)
        second = make_course(base_price=None, current_price='2000')

        result = begin_checkout(session, identity_for(buyer), [first.id, second.id, first.id], gateway=gateway)

        lines = session.query(TransactionLineItem).filter_by(transaction_id=result.transaction_id).all()
        assert len(lines) == 2
        assert sum(line.total_amount for line in lines) == result.amount
        assert result.amount == Decimal('12900.00')

        transaction = session.get(Transaction, result.transaction_id)
        assert transaction.course_id is None
        for line in lines:
            assert line.tutor_share_amount + line.platform_share_amount == line.discounted_price

    def test_promo_is_revalidated_and_redeemed(self, session, buyer, course, make_promo, gateway, identity_for):
        promo = make_promo(code='SAVE10')

        result = begin_checkout(session, identity_for(buyer), [course.id], promo_code='save10', gateway=gateway)

        transaction = session.get(Transaction, result.transaction_id)
        assert transaction.discount_amount == Decimal('3500.00')
        assert transaction.promo_code_id == promo.id
        assert transaction.amount == Decimal('33862.50')

        redemption = session.query(PromoRedemption).filter_by(transaction_id=transaction.id).one()
        assert redemption.user_id == buyer.id
        assert redemption.discount_amount == Decimal('3500.00')

    def test_rejected_promo_persists_nothing(self, session, buyer, course, make_promo, gateway, identity_for):
        make_promo(code='ONCE', per_user_limit=1)
        begin_checkout(session, identity_for(buyer), [course.id], promo_code='ONCE', gateway=gateway)

        with pytest.raises(PromoRejectedError) as exc:
            begin_checkout(session, identity_for(buyer), [course.id], promo_code='ONCE', gateway=gateway)

        assert exc.value.reason == 'user_limit'
        assert exc.value.to_dict()['reason'] == 'user_limit'
        assert session.query(Transaction).count() == 1
        assert len(gateway.initialized) == 1

    def test_already_enrolled(self, session, buyer, course, gateway, identity_for):
        session.add(Enrollment(user_id=buyer.id, course_id=course.id))
        session.commit()

        with pytest.raises(AlreadyEnrolledError):
            begin_checkout(session, identity_for(buyer), [course.id], gateway=gateway)
        assert session.query(Transaction).count() == 0

    def test_unknown_course(self, session, buyer, course, gateway, identity_for):
        with pytest.raises(NotFoundError):
            begin_checkout(session, identity_for(buyer), [course.id, 9999], gateway=gateway)

    def test_empty_cart(self, session, buyer, gateway, identity_for):
        with pytest.raises(BusinessLogicError):
            begin_checkout(session, identity_for(buyer), [], gateway=gateway)

    def test_free_course_cannot_be_checked_out(self, session, buyer, make_course, gateway, identity_for):
        free = make_course(base_price=None, current_price=None, price=None)

        with pytest.raises(BusinessLogicError):
            begin_checkout(session, identity_for(buyer), [free.id], gateway=gateway)
        assert gateway.initialized == []

    def test_gateway_failure_leaves_pending_transaction(self, session, buyer, course, failing_gateway, identity_for):
        failing = failing_gateway

        with pytest.raises(GatewayError):
            begin_checkout(session, identity_for(buyer), [course.id], gateway=failing)

        transaction = session.query(Transaction).one()
        assert transaction.status == TransactionStatus.PENDING
        assert transaction.transaction_id == failing.initialized[0]['reference']

    def test_gateway_failure_releases_promo_slot(self, session, buyer, course, make_promo, gateway,
                                                 failing_gateway, identity_for):
        make_promo(code='ONCE', per_user_limit=1, max_redemptions=1)

        with pytest.raises(GatewayError):
            begin_checkout(session, identity_for(buyer), [course.id], promo_code='ONCE', gateway=failing_gateway)

        released = session.query(PromoRedemption).one()
        assert released.released_at is not None

        result = begin_checkout(session, identity_for(buyer), [course.id], promo_code='ONCE', gateway=gateway)

        transaction = session.get(Transaction, result.transaction_id)
        assert transaction.discount_amount == Decimal('3500.00')
        assert session.query(PromoRedemption).filter(PromoRedemption.released_at.is_(None)).count() == 1

    def test_each_attempt_gets_a_fresh_reference(self, session, buyer, course, gateway, identity_for):
        first = begin_checkout(session, identity_for(buyer), [course.id], gateway=gateway)
        second = begin_checkout(session, identity_for(buyer), [course.id], gateway=gateway)

        assert first.reference != second.reference
