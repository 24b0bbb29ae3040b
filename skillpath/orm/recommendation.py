"""
skillpath/orm/recommendation.py
Learning resources and the recommendation log

Standard resources are curated. AI resources are created on demand and
pruned per skill once they exceed the retention cap.
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, Table, Index,
    Enum as SQLEnum
)
from sqlalchemy.orm import relationship

from skillpath.orm.base import Base, BaseModel, JSONType


class ResourceType(str, Enum):
    practice = "practice"
    video = "video"
    article = "article"
    interactive = "interactive"
    quiz = "quiz"
    worksheet = "worksheet"
    personalized = "personalized"


class RecommendationPriority(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


resource_skills = Table(
    "resource_skills",
    Base.metadata,
    Column("resource_id", Integer, ForeignKey("recommendation_resources.id", ondelete="CASCADE"), primary_key=True),
    Column("skill_id", Integer, ForeignKey("skills.id", ondelete="CASCADE"), primary_key=True),
)


class RecommendationResource(BaseModel):
    __tablename__ = "recommendation_resources"

    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=False, default="")
    url = Column(String(500), nullable=False, default="")

    resource_type = Column(
        SQLEnum(ResourceType),
        nullable=False,
        default=ResourceType.practice
    )

    estimated_time_minutes = Column(Integer, nullable=False, default=15)
    grade_level = Column(Integer, nullable=False)
    tags = Column(JSONType, nullable=True)

    is_ai_generated = Column(Boolean, nullable=False, default=False, index=True)

    related_skills = relationship("Skill", secondary=resource_skills, lazy="selectin")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "type": self.resource_type.value if self.resource_type else None,
            "estimated_time_minutes": self.estimated_time_minutes,
            "grade_level": self.grade_level,
            "tags": list(self.tags or []),
            "is_ai_generated": self.is_ai_generated,
        }


class RecommendationHistory(BaseModel):
    """
    Append-only log of recommendations.

    Feeds cooldown exclusion and retrospective resource effectiveness.
    Only the completion fields change after insert.
    """
    __tablename__ = "recommendation_history"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    skill_id = Column(Integer, ForeignKey("skills.id", ondelete="CASCADE"), nullable=False)

    resource_id = Column(
        Integer,
        ForeignKey("recommendation_resources.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    priority = Column(SQLEnum(RecommendationPriority), nullable=False)
    user_score = Column(Float, nullable=False)
    target_score = Column(Float, nullable=False)
    explanation = Column(Text, nullable=False, default="")

    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)
    was_helpful = Column(Boolean, nullable=True)

    is_ai_generated = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_history_user_skill_created", "user_id", "skill_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "skill_id": self.skill_id,
            "resource_id": self.resource_id,
            "priority": self.priority.value if self.priority else None,
            "user_score": self.user_score,
            "target_score": self.target_score,
            "explanation": self.explanation,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "was_helpful": self.was_helpful,
            "is_ai_generated": self.is_ai_generated,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
