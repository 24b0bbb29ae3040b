"""
skillpath/orm/assessment_session.py
Assessment sessions and their recorded answers

STATE RULES:
- question_ids is fixed when the session is created
- status only moves in_progress -> completed (or -> cancelled), never back
- at most one response per (session, question)
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Index,
    Enum as SQLEnum
)

from skillpath.orm.base import BaseModel, JSONType


class SessionStatus(str, Enum):
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class AssessmentSession(BaseModel):
    __tablename__ = "assessment_sessions"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    skill_id = Column(
        Integer,
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(
        SQLEnum(SessionStatus),
        nullable=False,
        default=SessionStatus.in_progress
    )

    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    overall_score = Column(
        Integer,
        nullable=True,
        comment="Percentage of correct answers, set once at completion"
    )
    overall_level = Column(Integer, nullable=True)

    question_ids = Column(
        JSONType,
        nullable=False,
        comment="Ordered question ids selected at start"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "skill_id": self.skill_id,
            "status": self.status.value if self.status else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "overall_score": self.overall_score,
            "overall_level": self.overall_level,
            "question_ids": list(self.question_ids or []),
        }


class AssessmentResponse(BaseModel):
    __tablename__ = "assessment_responses"

    session_id = Column(
        Integer,
        ForeignKey("assessment_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    question_id = Column(
        Integer,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False
    )

    user_response = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    answered_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_response_session_question"),
        Index("ix_response_answered_at", "answered_at"),
    )
