"""Transaction line item model."""
from sqlalchemy import Column, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from coursemart.database import Base, BigId


class TransactionLineItem(Base):
    """Per-course pricing breakdown within a transaction."""

    __tablename__ = 'transaction_line_item'

    id = Column(BigId, primary_key=True, autoincrement=True)
    transaction_id = Column(BigId, ForeignKey('payment_transaction.id'), nullable=False, index=True)
    course_id = Column(BigId, ForeignKey('course.id'), nullable=False)
    tutor_id = Column(BigId, ForeignKey('app_user.id'), nullable=False)

    list_price = Column(Numeric(12, 2), nullable=False)
    effective_price = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discounted_price = Column(Numeric(12, 2), nullable=False)
    vat_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    tutor_share_amount = Column(Numeric(12, 2), nullable=False)
    platform_share_amount = Column(Numeric(12, 2), nullable=False)

    # Snapshot of the promo applied to this line, if any
    promo_code_id = Column(BigId, ForeignKey('promo_code.id'), nullable=True)
    promo_type = Column(String(20), nullable=True)
    promo_discount_type = Column(String(10), nullable=True)
    promo_discount_value = Column(Numeric(12, 2), nullable=True)

    # Relationships
    transaction = relationship('Transaction', back_populates='line_items')
    course = relationship('Course')

    def __repr__(self):
        return f"<TransactionLineItem(id={self.id}, course_id={self.course_id}, total={self.total_amount})>"
