"""
Checkout service - single and multi-course purchases.
Prices server-side, persists a PENDING transaction, then opens a gateway session.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from coursemart.exceptions import (
    CommerceError, BusinessLogicError, NotFoundError, AlreadyEnrolledError, GatewayError,
    PromoRejectedError
)
from coursemart.identity import Identity
from coursemart.models import Course, Enrollment, EnrollmentStatus
from coursemart.services.ledger_service import record_checkout
from coursemart.services.paystack_client import PaystackClient, get_gateway, new_reference
from coursemart.services.pricing_service import (
    DEFAULT_VAT_RATE, DEFAULT_COMMISSION_RATES, compute_checkout_totals, to_minor_units
)
from coursemart.services.promo_service import release_redemption, validate_promo_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    authorization_url: str
    reference: str
    transaction_id: int
    amount: Decimal
    access_code: Optional[str] = None
    group_purchase_id: Optional[int] = None
    invite_code: Optional[str] = None

    def to_dict(self):
        rv = {
            'authorization_url': self.authorization_url,
            'reference': self.reference,
            'transaction_id': self.transaction_id,
            'amount': str(self.amount),
        }
        if self.group_purchase_id:
            rv['group_purchase_id'] = self.group_purchase_id
            rv['invite_code'] = self.invite_code
        return rv


def get_pricing_settings() -> dict:
    """VAT, commission and currency settings from app config, with built-in defaults."""
    settings = {
        'vat_rate': DEFAULT_VAT_RATE,
        'commission_rates': dict(DEFAULT_COMMISSION_RATES),
        'currency': 'NGN',
    }
    if has_app_context():
        cfg = current_app.config
        settings['vat_rate'] = Decimal(str(cfg.get('DEFAULT_VAT_RATE', DEFAULT_VAT_RATE)))
        settings['commission_rates'] = {
            'normal': Decimal(str(cfg.get('PLATFORM_COMMISSION_RATE', DEFAULT_COMMISSION_RATES['normal']))),
            'platform_promo': Decimal(str(cfg.get('PLATFORM_PROMO_COMMISSION_RATE', DEFAULT_COMMISSION_RATES['platform_promo']))),
            'instructor_promo': Decimal(str(cfg.get('INSTRUCTOR_PROMO_COMMISSION_RATE', DEFAULT_COMMISSION_RATES['instructor_promo']))),
        }
        settings['currency'] = cfg.get('DEFAULT_CURRENCY', 'NGN')
    return settings


def default_callback_url() -> Optional[str]:
    if has_app_context():
        base_url = current_app.config.get('APP_BASE_URL', '').rstrip('/')
        return f"{base_url}/courses/verify-course-payment"
    return None


def find_enrolled_course_ids(session: Session, user_id: int, course_ids: List[int]) -> List[int]:
    rows = session.query(Enrollment.course_id).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id.in_(course_ids),
        Enrollment.status.in_([EnrollmentStatus.ACTIVE.value, EnrollmentStatus.COMPLETED.value])
    ).all()
    return [row[0] for row in rows]


def open_gateway_session(gateway: Optional[PaystackClient], identity: Identity, transaction,
                         callback_url: Optional[str], metadata: dict) -> dict:
    """
    Open the remote payment session for a committed PENDING transaction.

    A failure here leaves the transaction PENDING; reconciliation belongs to
    payment verification.
    """
    gateway = gateway or get_gateway()
    return gateway.initialize_transaction(
        email=identity.email,
        amount_minor=to_minor_units(transaction.amount),
        reference=transaction.transaction_id,
        callback_url=callback_url or default_callback_url(),
        metadata=metadata
    )


def begin_checkout(
    session: Session,
    identity: Identity,
    course_ids: List[int],
    promo_code: Optional[str] = None,
    gateway: Optional[PaystackClient] = None,
    callback_url: Optional[str] = None
) -> CheckoutResult:
    """
    Start a checkout for one or more courses.

    Args:
        session: SQLAlchemy session
        identity: Buyer
        course_ids: Courses to buy
        promo_code: Code typed by the buyer; re-validated here, never trusted
        gateway: Payment gateway client (built from config when None)
        callback_url: Gateway redirect target after payment

    Returns:
        CheckoutResult with the gateway authorization URL

    Raises:
        BusinessLogicError, NotFoundError, AlreadyEnrolledError,
        PromoRejectedError, InvalidCheckoutTotalError: before any persistence
        GatewayError: after the PENDING transaction was committed; any promo
            slot it took is released
    """
    course_ids = list(dict.fromkeys(int(cid) for cid in (course_ids or [])))
    if not course_ids:
        raise BusinessLogicError('No courses selected for checkout')

    settings = get_pricing_settings()

    try:
        courses = session.query(Course).filter(
            Course.id.in_(course_ids),
            Course.active == True  # noqa: E712
        ).order_by(Course.id).all()

        if len(courses) != len(course_ids):
            raise NotFoundError('One or more courses were not found')

        if find_enrolled_course_ids(session, identity.user_id, course_ids):
            raise AlreadyEnrolledError()

        promo = None
        if promo_code:
            result = validate_promo_code(session, promo_code, identity.user_id, course_ids)
            if not result.ok:
                raise PromoRejectedError(promo_code, result.reason)
            promo = result.promo

        totals = compute_checkout_totals(
            courses, promo,
            vat_rate=settings['vat_rate'],
            commission_rates=settings['commission_rates']
        )

        reference = new_reference()
        single_course_id = courses[0].id if len(courses) == 1 else None
        titles = ', '.join(course.title for course in courses)
        transaction = record_checkout(
            session,
            user_id=identity.user_id,
            totals=totals,
            reference=reference,
            currency=courses[0].currency or settings['currency'],
            course_id=single_course_id,
            description=f'Course purchase: {titles}',
            metadata={'course_ids': course_ids, 'type': 'course_purchase'}
        )
        session.commit()

    except CommerceError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[CHECKOUT] Unexpected error for user {identity.user_id}")
        raise

    logger.info(
        f"[CHECKOUT] Transaction {reference} pending: {totals.total_amount} for courses {course_ids}"
    )

    try:
        init = open_gateway_session(
            gateway, identity, transaction, callback_url,
            metadata={'course_ids': course_ids, 'user_id': identity.user_id, 'type': 'course_purchase'}
        )
    except GatewayError:
        # The buyer never reached a payment page, so the promo slot goes back
        if transaction.promo_code_id:
            release_redemption(session, transaction.id)
            session.commit()
        raise

    return CheckoutResult(
        authorization_url=init['authorization_url'],
        access_code=init.get('access_code'),
        reference=reference,
        transaction_id=transaction.id,
        amount=totals.total_amount
    )
