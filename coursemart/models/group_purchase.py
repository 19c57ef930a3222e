"""Group purchase and membership models."""
import enum
from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime, Enum, ForeignKey,
    CheckConstraint, Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class GroupPurchaseStatus(enum.Enum):
    """Linear lifecycle: PENDING_PAYMENT -> ACTIVE -> COMPLETED."""
    PENDING_PAYMENT = "PENDING_PAYMENT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class GroupMemberRole(enum.Enum):
    """Role of a member inside a group."""
    CREATOR = "CREATOR"
    MEMBER = "MEMBER"


class GroupPurchase(Base):
    """Shared-cost enrollment started by a creator and filled by invitees."""

    __tablename__ = 'group_purchase'
    __table_args__ = (
        CheckConstraint('member_count <= member_limit', name='ck_group_purchase_member_limit'),
        CheckConstraint('cashback_earned <= cashback_total', name='ck_group_purchase_cashback'),
        # One open group per creator and course
        Index(
            'uq_group_purchase_open_creator', 'course_id', 'creator_id',
            unique=True,
            postgresql_where=text("status IN ('PENDING_PAYMENT', 'ACTIVE')"),
            sqlite_where=text("status IN ('PENDING_PAYMENT', 'ACTIVE')")
        ),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    invite_code = Column(String(12), nullable=False, unique=True, index=True)
    course_id = Column(BigId, ForeignKey('course.id'), nullable=False, index=True)
    tier_id = Column(BigId, ForeignKey('group_tier.id', ondelete='RESTRICT'), nullable=False)
    creator_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)

    status = Column(
        Enum(GroupPurchaseStatus, name='group_purchase_status'),
        nullable=False,
        default=GroupPurchaseStatus.PENDING_PAYMENT
    )
    member_count = Column(Integer, nullable=False, default=1)
    member_limit = Column(Integer, nullable=False)

    group_price = Column(Numeric(12, 2), nullable=False)
    cashback_total = Column(Numeric(12, 2), nullable=False, default=0)
    cashback_per_member = Column(Numeric(12, 2), nullable=False, default=0)
    cashback_earned = Column(Numeric(12, 2), nullable=False, default=0)
    cashback_released = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency: every UPDATE is guarded by the version it read
    version = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    # Relationships
    course = relationship('Course')
    tier = relationship('GroupTier')
    creator = relationship('AppUser')
    members = relationship(
        'GroupMember',
        back_populates='group_purchase',
        order_by='GroupMember.joined_at',
        cascade='all, delete-orphan'
    )
    transactions = relationship('Transaction', back_populates='group_purchase')

    @property
    def is_full(self):
        return self.member_count >= self.member_limit

    @property
    def open_slots(self):
        return max(0, self.member_limit - self.member_count)

    def to_dict(self):
        return {
            'id': self.id,
            'invite_code': self.invite_code,
            'course_id': self.course_id,
            'tier_id': self.tier_id,
            'creator_id': self.creator_id,
            'status': self.status.value,
            'member_count': self.member_count,
            'member_limit': self.member_limit,
            'open_slots': self.open_slots,
            'group_price': str(self.group_price),
            'cashback_total': str(self.cashback_total),
            'cashback_per_member': str(self.cashback_per_member),
            'cashback_earned': str(self.cashback_earned),
            'cashback_released': self.cashback_released,
            'paid_at': self.paid_at.isoformat() if self.paid_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<GroupPurchase(id={self.id}, code='{self.invite_code}', {self.member_count}/{self.member_limit}, status={self.status.value})>"


class GroupMember(Base):
    """Membership of a user in a group purchase."""

    __tablename__ = 'group_member'
    __table_args__ = (
        UniqueConstraint('group_purchase_id', 'user_id', name='uq_group_member_user'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    group_purchase_id = Column(BigId, ForeignKey('group_purchase.id'), nullable=False, index=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)
    role = Column(String(10), nullable=False, default=GroupMemberRole.MEMBER.value)
    joined_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    group_purchase = relationship('GroupPurchase', back_populates='members')
    user = relationship('AppUser')

    def __repr__(self):
        return f"<GroupMember(group_id={self.group_purchase_id}, user_id={self.user_id}, role='{self.role}')>"
