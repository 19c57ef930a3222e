"""Promo code validation - always evaluated server-side at checkout time."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from coursemart.models import (
    Course, PromoCode, PromoRedemption, Transaction, TransactionStatus
)
from coursemart.services.pricing_service import (
    PromoDetails, promo_applies_to_course, resolve_effective_price
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromoValidationResult:
    ok: bool
    promo: Optional[PromoDetails] = None
    reason: Optional[str] = None

    def to_dict(self):
        if self.ok:
            return {
                'ok': True,
                'code': self.promo.code,
                'discount_type': self.promo.discount_type,
                'discount_value': str(self.promo.discount_value),
            }
        return {'ok': False, 'reason': self.reason}


def normalize_promo_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


DEFAULT_HOLD_MINUTES = 30


def get_hold_minutes() -> int:
    if has_app_context():
        return int(current_app.config.get('PROMO_HOLD_MINUTES', DEFAULT_HOLD_MINUTES))
    return DEFAULT_HOLD_MINUTES


def _count_redemptions(session: Session, promo_id: int, hold_cutoff: datetime,
                       user_id: Optional[int] = None) -> int:
    """
    Count redemptions that still hold a slot.

    Paid checkouts always count. A PENDING checkout counts until hold_cutoff
    passes it, unless its slot was released. FAILED checkouts never count.
    """
    query = (
        session.query(func.count(PromoRedemption.id))
        .join(Transaction, Transaction.id == PromoRedemption.transaction_id)
        .filter(
            PromoRedemption.promo_code_id == promo_id,
            PromoRedemption.released_at.is_(None),
            or_(
                Transaction.status == TransactionStatus.SUCCESS,
                and_(
                    Transaction.status == TransactionStatus.PENDING,
                    PromoRedemption.created_at >= hold_cutoff
                )
            )
        )
    )
    if user_id is not None:
        query = query.filter(PromoRedemption.user_id == user_id)
    return query.scalar() or 0


def release_redemption(session: Session, transaction_id: int) -> bool:
    """Free the promo slot held by a checkout. The caller commits."""
    redemption = session.query(PromoRedemption).filter(
        PromoRedemption.transaction_id == transaction_id,
        PromoRedemption.released_at.is_(None)
    ).first()
    if not redemption:
        return False
    redemption.released_at = datetime.now(timezone.utc)
    session.flush()
    logger.info(f"[PROMO] Released redemption for transaction {transaction_id}")
    return True


def to_promo_details(promo: PromoCode) -> PromoDetails:
    return PromoDetails(
        id=promo.id,
        code=promo.code,
        promo_type=promo.promo_type,
        discount_type=promo.discount_type,
        discount_value=Decimal(promo.discount_value),
        is_global=bool(promo.is_global),
        course_id=promo.course_id,
        category=promo.category,
        creator_id=promo.creator_id,
    )


def validate_promo_code(
    session: Session,
    code: str,
    user_id: int,
    course_ids: List[int],
    order_amount: Optional[Decimal] = None,
    now: Optional[datetime] = None,
    hold_minutes: Optional[int] = None
) -> PromoValidationResult:
    """
    Look up and validate a promo code for a user and a set of courses.

    Checks, in order: exists and active (start/end window), global usage cap,
    per-user usage cap, applicability to at least one course (and the
    allow-list), minimum order value.

    Args:
        session: SQLAlchemy session
        code: Code as typed by the user
        user_id: Buyer
        course_ids: Courses in the checkout
        order_amount: Pre-discount order value; computed from the courses when None
        now: Reference time (defaults to current UTC time)
        hold_minutes: How long a PENDING checkout keeps its slot (config when None)

    Returns:
        PromoValidationResult
    """
    normalized = normalize_promo_code(code)
    if not normalized:
        return PromoValidationResult(ok=False, reason='invalid_code')

    promo = session.query(PromoCode).filter(PromoCode.code == normalized).first()
    if not promo or not promo.is_active:
        return PromoValidationResult(ok=False, reason='inactive')

    now = now or datetime.now(timezone.utc)
    starts_at = _as_aware(promo.starts_at)
    ends_at = _as_aware(promo.ends_at)
    if starts_at and starts_at > now:
        return PromoValidationResult(ok=False, reason='not_started')
    if ends_at and ends_at < now:
        return PromoValidationResult(ok=False, reason='expired')

    if hold_minutes is None:
        hold_minutes = get_hold_minutes()
    hold_cutoff = now - timedelta(minutes=hold_minutes)

    if promo.max_redemptions:
        if _count_redemptions(session, promo.id, hold_cutoff) >= promo.max_redemptions:
            return PromoValidationResult(ok=False, reason='maxed_out')

    if promo.per_user_limit:
        if _count_redemptions(session, promo.id, hold_cutoff, user_id=user_id) >= promo.per_user_limit:
            return PromoValidationResult(ok=False, reason='user_limit')

    details = to_promo_details(promo)
    courses = session.query(Course).filter(Course.id.in_(course_ids)).all() if course_ids else []
    if not any(promo_applies_to_course(details, course) for course in courses):
        return PromoValidationResult(ok=False, reason='not_applicable')

    if promo.allowed_users:
        if not any(allowed.user_id == user_id for allowed in promo.allowed_users):
            return PromoValidationResult(ok=False, reason='not_allowed')

    if promo.min_order_amount:
        if order_amount is None:
            order_amount = sum((resolve_effective_price(c) for c in courses), Decimal('0'))
        if Decimal(order_amount) < Decimal(promo.min_order_amount):
            return PromoValidationResult(ok=False, reason='below_minimum')

    logger.info(f"[PROMO] Code {normalized} accepted for user {user_id}")
    return PromoValidationResult(ok=True, promo=details)
