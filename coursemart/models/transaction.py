"""Payment transaction (checkout attempt) model."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime, Enum, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class TransactionStatus(enum.Enum):
    """Checkout attempt status. Terminal states are set by payment verification."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Transaction(Base):
    """One checkout attempt, correlated with the gateway by ``transaction_id``."""

    __tablename__ = 'payment_transaction'

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)
    course_id = Column(BigId, ForeignKey('course.id'), nullable=True)
    group_purchase_id = Column(BigId, ForeignKey('group_purchase.id'), nullable=True, index=True)
    promo_code_id = Column(BigId, ForeignKey('promo_code.id'), nullable=True)

    status = Column(Enum(TransactionStatus, name='transaction_status'), nullable=False, default=TransactionStatus.PENDING)

    # Major-unit amounts; conversion to minor units happens at the gateway boundary only
    amount = Column(Numeric(12, 2), nullable=False)
    subtotal_amount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tutor_share_amount = Column(Numeric(12, 2), nullable=False, default=0)
    platform_share_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='NGN')

    payment_method = Column(String(20), nullable=False, default='PAYSTACK')
    # Gateway reference, also the idempotency key
    transaction_id = Column(String(64), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship('AppUser')
    course = relationship('Course')
    promo_code = relationship('PromoCode')
    group_purchase = relationship('GroupPurchase', back_populates='transactions')
    line_items = relationship('TransactionLineItem', back_populates='transaction', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Transaction(id={self.id}, ref='{self.transaction_id}', amount={self.amount}, status={self.status.value})>"
