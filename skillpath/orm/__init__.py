"""
skillpath/orm/__init__.py
Import every model so Base.metadata is complete
"""
from .base import Base, BaseModel
from .user import User, UserRole
from .skill import Skill, SkillStatus
from .question import Question, QuestionType, QuestionStatus
from .assessment_session import AssessmentSession, AssessmentResponse, SessionStatus
from .skill_score import AssessmentSkillScore, SkillScoreSnapshot
from .recommendation import (
    RecommendationResource,
    RecommendationHistory,
    ResourceType,
    RecommendationPriority,
    resource_skills,
)

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "UserRole",
    "Skill",
    "SkillStatus",
    "Question",
    "QuestionType",
    "QuestionStatus",
    "AssessmentSession",
    "AssessmentResponse",
    "SessionStatus",
    "AssessmentSkillScore",
    "SkillScoreSnapshot",
    "RecommendationResource",
    "RecommendationHistory",
    "ResourceType",
    "RecommendationPriority",
    "resource_skills",
]
