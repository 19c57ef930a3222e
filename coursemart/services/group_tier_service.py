"""Group tier management for tutors."""
import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from coursemart.exceptions import CommerceError, NotFoundError, UnauthorizedError, InvalidTierError
from coursemart.models import Course, GroupTier, GroupPurchase
from coursemart.services.pricing_service import round_currency

logger = logging.getLogger(__name__)


def _owned_course(session: Session, tutor_id: int, course_id: int) -> Course:
    course = session.get(Course, course_id)
    if not course:
        raise NotFoundError('Course not found')
    if course.tutor_id != tutor_id:
        raise UnauthorizedError('You can only manage tiers of your own courses')
    return course


def create_group_tier(session: Session, tutor_id: int, course_id: int, size: int,
                      group_price, cashback_percent=0) -> GroupTier:
    """
    Create a group tier for one of the tutor's courses.

    Args:
        size: Total members including the creator (>= 2)
        group_price: Price paid by the creator (> 0)
        cashback_percent: Fraction of the group price returned to the creator, in [0, 1)

    Raises:
        InvalidTierError: For out-of-range values
        NotFoundError, UnauthorizedError: Unknown course or not the tutor's
    """
    try:
        size = int(size)
        group_price = Decimal(str(group_price))
        cashback_percent = Decimal(str(cashback_percent or 0))
    except (TypeError, ValueError, InvalidOperation):
        raise InvalidTierError('Invalid group tier values')

    if size < 2:
        raise InvalidTierError('A group needs at least 2 members')
    if group_price <= 0:
        raise InvalidTierError('Group price must be greater than zero')
    if not (Decimal('0') <= cashback_percent < Decimal('1')):
        raise InvalidTierError('Cashback must be between 0 and 1')

    try:
        course = _owned_course(session, tutor_id, course_id)
        tier = GroupTier(
            course_id=course.id,
            size=size,
            group_price=round_currency(group_price),
            cashback_percent=cashback_percent,
            is_active=True
        )
        session.add(tier)
        session.commit()
    except CommerceError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[GROUP] Error creating tier for course {course_id}")
        raise

    logger.info(f"[GROUP] Tier {tier.id} created for course {course_id} (size {size}, price {tier.group_price})")
    return tier


def retire_group_tier(session: Session, tutor_id: int, tier_id: int) -> bool:
    """
    Remove a tier from sale.

    A tier no group references is deleted; a referenced one is only
    deactivated so existing groups keep their terms.

    Returns:
        True if the tier was deleted, False if it was deactivated
    """
    try:
        tier = session.get(GroupTier, tier_id)
        if not tier:
            raise NotFoundError('Group tier not found')
        _owned_course(session, tutor_id, tier.course_id)

        referenced = session.query(GroupPurchase.id).filter(
            GroupPurchase.tier_id == tier.id
        ).first() is not None

        if referenced:
            tier.is_active = False
        else:
            session.delete(tier)
        session.commit()
    except CommerceError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[GROUP] Error retiring tier {tier_id}")
        raise

    logger.info(f"[GROUP] Tier {tier_id} {'deactivated' if referenced else 'deleted'}")
    return not referenced


def list_active_tiers(session: Session, course_id: int):
    return session.query(GroupTier).filter(
        GroupTier.course_id == course_id,
        GroupTier.is_active == True  # noqa: E712
    ).order_by(GroupTier.size).all()
