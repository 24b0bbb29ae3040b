"""
skillpath/orm/user.py
Learner profile. Authentication lives outside this service; only the
fields the assessment and recommendation engines read are modelled.
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Boolean, Enum as SQLEnum

from skillpath.orm.base import BaseModel


class UserRole(str, Enum):
    student = "student"
    teacher = "teacher"
    admin = "admin"


class User(BaseModel):
    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(200), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.student)

    grade_level = Column(
        Integer,
        nullable=True,
        comment="School grade used to pick questions and resources"
    )

    is_active = Column(Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role.value if self.role else None,
            "grade_level": self.grade_level,
            "is_active": self.is_active,
        }
