"""AppUser model - marketplace accounts with role and wallet balance."""
import enum
from sqlalchemy import Column, String, Numeric, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class UserRole(enum.Enum):
    """Platform roles."""
    USER = 'USER'
    STUDENT = 'STUDENT'
    TUTOR = 'TUTOR'
    MENTOR = 'MENTOR'
    ADMIN = 'ADMIN'


class AppUser(Base):
    """AppUser model - learners, tutors and admins."""

    __tablename__ = 'app_user'

    id = Column(BigId, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)  # USER, STUDENT, TUTOR, MENTOR, ADMIN
    active = Column(Boolean, nullable=False, default=True)

    # Wallet (mutated only by group cashback settlement)
    wallet_balance = Column(Numeric(12, 2), nullable=False, default=0, server_default='0')

    # Payout details
    bank_name = Column(String(120), nullable=True)
    account_number = Column(String(20), nullable=True)
    recipient_code = Column(String(64), nullable=True)
    subaccount_code = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    student_profile = relationship('Student', back_populates='user', uselist=False)
    enrollments = relationship('Enrollment', back_populates='user')

    def is_tutor(self):
        """Check if user sells courses."""
        return self.role in [UserRole.TUTOR.value, UserRole.MENTOR.value]

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
