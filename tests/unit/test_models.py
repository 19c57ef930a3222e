"""
Unit tests for SQLAlchemy models and their database constraints.
"""

import pytest
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from coursemart.models import (
    AppUser, Enrollment, GroupMember, GroupPurchase, GroupPurchaseStatus, GroupTier, UserRole
)


def make_group(session, course, tier, creator, **fields):
    fields.setdefault('invite_code', 'GRP-ABCD1234')
    fields.setdefault('member_limit', tier.size)
    group = GroupPurchase(
        course_id=course.id,
        tier_id=tier.id,
        creator_id=creator.id,
        group_price=tier.group_price,
        cashback_total=Decimal('1000.00'),
        cashback_per_member=Decimal('250.00'),
        **fields
    )
    session.add(group)
    session.commit()
    return group


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_defaults(self, session):
        user = AppUser(email='new@test.com')
        session.add(user)
        session.commit()

        assert user.role == UserRole.USER.value
        assert user.wallet_balance == Decimal('0')
        assert user.is_tutor() is False

    def test_email_unique(self, session, buyer):
        session.add(AppUser(email=buyer.email))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_tutor_roles(self, tutor, make_user):
        assert tutor.is_tutor() is True
        assert make_user(role=UserRole.MENTOR.value).is_tutor() is True
        assert make_user(role=UserRole.STUDENT.value).is_tutor() is False


class TestGroupTierModel:

    def test_size_must_be_at_least_two(self, session, course):
        session.add(GroupTier(course_id=course.id, size=1, group_price=Decimal('100')))
        with pytest.raises(IntegrityError):
            session.commit()


class TestGroupPurchaseModel:
    """Tests for GroupPurchase model."""

    def test_new_group_defaults(self, session, course, tier, buyer):
        group = make_group(session, course, tier, buyer)

        assert group.status == GroupPurchaseStatus.PENDING_PAYMENT
        assert group.member_count == 1
        assert group.version == 1
        assert group.open_slots == 4
        assert group.is_full is False

    def test_version_increments_on_update(self, session, course, tier, buyer):
        group = make_group(session, course, tier, buyer)
        group.status = GroupPurchaseStatus.ACTIVE
        session.commit()

        assert group.version == 2

    def test_invite_code_unique(self, session, course, tier, buyer, make_user):
        make_group(session, course, tier, buyer)
        with pytest.raises(IntegrityError):
            make_group(session, course, tier, make_user())

    def test_member_count_cannot_exceed_limit(self, session, course, tier, buyer):
        with pytest.raises(IntegrityError):
            make_group(session, course, tier, buyer, member_count=6)

    def test_cashback_earned_cannot_exceed_total(self, session, course, tier, buyer):
        with pytest.raises(IntegrityError):
            make_group(session, course, tier, buyer, cashback_earned=Decimal('1000.01'))

    def test_member_unique_per_group(self, session, course, tier, buyer):
        group = make_group(session, course, tier, buyer)
        session.add(GroupMember(group_purchase_id=group.id, user_id=buyer.id, role='CREATOR'))
        session.commit()

        session.add(GroupMember(group_purchase_id=group.id, user_id=buyer.id, role='MEMBER'))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_to_dict(self, session, course, tier, buyer):
        group = make_group(session, course, tier, buyer)
        data = group.to_dict()

        assert data['invite_code'] == 'GRP-ABCD1234'
        assert data['status'] == 'PENDING_PAYMENT'
        assert data['cashback_per_member'] == '250.00'
        assert data['open_slots'] == 4


class TestEnrollmentModel:

    def test_one_enrollment_per_user_and_course(self, session, buyer, course):
        session.add(Enrollment(user_id=buyer.id, course_id=course.id))
        session.commit()

        session.add(Enrollment(user_id=buyer.id, course_id=course.id))
        with pytest.raises(IntegrityError):
            session.commit()
