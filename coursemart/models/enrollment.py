"""Enrollment model."""
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class EnrollmentStatus(enum.Enum):
    """Enrollment status."""
    ACTIVE = 'ACTIVE'
    COMPLETED = 'COMPLETED'
    REVOKED = 'REVOKED'


class Enrollment(Base):
    """Course access for a user. At most one row per (user, course)."""

    __tablename__ = 'enrollment'
    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='uq_enrollment_user_course'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, index=True)
    course_id = Column(BigId, ForeignKey('course.id'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=EnrollmentStatus.ACTIVE.value)
    group_purchase_id = Column(BigId, ForeignKey('group_purchase.id'), nullable=True)
    enrolled_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship('AppUser', back_populates='enrollments')
    course = relationship('Course')

    def __repr__(self):
        return f"<Enrollment(user_id={self.user_id}, course_id={self.course_id}, status='{self.status}')>"
