"""Group tier model."""
from sqlalchemy import Column, Integer, Numeric, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class GroupTier(Base):
    """Group size / price / cashback offer for one course.

    Tiers referenced by a group purchase are deactivated, never deleted.
    """

    __tablename__ = 'group_tier'
    __table_args__ = (
        CheckConstraint('size >= 2', name='ck_group_tier_size'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    course_id = Column(BigId, ForeignKey('course.id'), nullable=False, index=True)
    size = Column(Integer, nullable=False)
    group_price = Column(Numeric(12, 2), nullable=False)  # total paid by the creator
    cashback_percent = Column(Numeric(5, 4), nullable=False, default=0)  # fraction, 0.1 == 10%
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    course = relationship('Course', back_populates='group_tiers')

    def __repr__(self):
        return f"<GroupTier(id={self.id}, course_id={self.course_id}, size={self.size}, price={self.group_price})>"
