"""Student profile model."""
from sqlalchemy import Column, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from coursemart.database import Base, BigId


class Student(Base):
    """Student profile, created the first time a user gains course access."""

    __tablename__ = 'student'

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False, unique=True)
    interests = Column(JSON, nullable=False, default=list)
    goals = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship('AppUser', back_populates='student_profile')

    def __repr__(self):
        return f"<Student(id={self.id}, user_id={self.user_id})>"
