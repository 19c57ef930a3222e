"""Course model (pricing fields only; catalog CRUD lives elsewhere)."""
from sqlalchemy import Column, String, Numeric, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class Course(Base):
    """Course offered by a tutor."""

    __tablename__ = 'course'

    id = Column(BigId, primary_key=True, autoincrement=True)
    tutor_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    category = Column(String(100), nullable=True, index=True)
    currency = Column(String(3), nullable=False, default='NGN')

    # Price fallback chain: current_price > base_price > price
    base_price = Column(Numeric(12, 2), nullable=True)
    current_price = Column(Numeric(12, 2), nullable=True)
    price = Column(Numeric(12, 2), nullable=True)

    group_buying_enabled = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    tutor = relationship('AppUser')
    group_tiers = relationship('GroupTier', back_populates='course')

    def __repr__(self):
        return f"<Course(id={self.id}, title='{self.title}')>"
