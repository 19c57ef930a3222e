"""Promo code models."""
import enum
from sqlalchemy import (
    Column, String, Numeric, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class PromoType(enum.Enum):
    """Who funds the promo."""
    PLATFORM = 'PLATFORM'
    INSTRUCTOR = 'INSTRUCTOR'


class DiscountType(enum.Enum):
    """How the discount value is interpreted."""
    PERCENT = 'PERCENT'
    FIXED = 'FIXED'


class PromoCode(Base):
    """Promo code. Looked up during checkout, never mutated by it."""

    __tablename__ = 'promo_code'

    id = Column(BigId, primary_key=True, autoincrement=True)
    code = Column(String(40), nullable=False, unique=True)
    promo_type = Column(String(20), nullable=False, default=PromoType.PLATFORM.value)
    discount_type = Column(String(10), nullable=False, default=DiscountType.PERCENT.value)
    discount_value = Column(Numeric(12, 2), nullable=False)

    # Scope: a course, a category, a tutor's catalog, or everything
    is_global = Column(Boolean, nullable=False, default=False)
    course_id = Column(BigId, ForeignKey('course.id'), nullable=True)
    category = Column(String(100), nullable=True)
    creator_id = Column(BigId, ForeignKey('app_user.id'), nullable=True)

    # Usage limits
    max_redemptions = Column(Integer, nullable=True)
    per_user_limit = Column(Integer, nullable=True)
    min_order_amount = Column(Numeric(12, 2), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    allowed_users = relationship('PromoAllowedUser', back_populates='promo_code', cascade='all, delete-orphan')
    redemptions = relationship('PromoRedemption', back_populates='promo_code')

    def __repr__(self):
        return f"<PromoCode(code='{self.code}', {self.discount_type} {self.discount_value})>"


class PromoAllowedUser(Base):
    """Restricts a promo code to an explicit list of users."""

    __tablename__ = 'promo_allowed_user'
    __table_args__ = (UniqueConstraint('promo_code_id', 'user_id', name='uq_promo_allowed_user'),)

    id = Column(BigId, primary_key=True, autoincrement=True)
    promo_code_id = Column(BigId, ForeignKey('promo_code.id'), nullable=False)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False)

    promo_code = relationship('PromoCode', back_populates='allowed_users')


class PromoRedemption(Base):
    """One use of a promo code, tied to the checkout that used it."""

    __tablename__ = 'promo_redemption'

    id = Column(BigId, primary_key=True, autoincrement=True)
    promo_code_id = Column(BigId, ForeignKey('promo_code.id'), nullable=False, index=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)
    transaction_id = Column(BigId, ForeignKey('payment_transaction.id'), nullable=False, unique=True)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    # Set when the checkout never reached the gateway; the slot is free again
    released_at = Column(DateTime(timezone=True), nullable=True)

    promo_code = relationship('PromoCode', back_populates='redemptions')
    transaction = relationship('Transaction')
