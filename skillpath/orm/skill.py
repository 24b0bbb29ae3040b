"""
skillpath/orm/skill.py
Skills assessed by sessions and targeted by recommendations
"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Text, Index, Enum as SQLEnum

from skillpath.orm.base import BaseModel


class SkillStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class Skill(BaseModel):
    """
    A gradable skill, e.g. "Fractions" in Mathematics for grade 5.

    Identity is immutable; curators only toggle status.
    """
    __tablename__ = "skills"

    name = Column(String(200), nullable=False)
    subject = Column(String(100), nullable=False, index=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)

    grade_level = Column(Integer, nullable=False)

    status = Column(
        SQLEnum(SkillStatus),
        nullable=False,
        default=SkillStatus.active
    )

    __table_args__ = (
        Index("ix_skill_grade_status", "grade_level", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "subject": self.subject,
            "category": self.category,
            "description": self.description,
            "grade_level": self.grade_level,
            "status": self.status.value if self.status else None,
        }
