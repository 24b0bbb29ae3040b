"""
skillpath/orm/skill_score.py
Per (user, skill) proficiency

AssessmentSkillScore is the single source of truth for current proficiency.
SkillScoreSnapshot keeps every value it has held so resource effectiveness
can compare scores before and after a recommendation.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, UniqueConstraint, Index

from skillpath.orm.base import BaseModel


class AssessmentSkillScore(BaseModel):
    __tablename__ = "assessment_skill_scores"

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

    score = Column(Float, nullable=False, default=500.0)
    level = Column(Integer, nullable=True)

    questions_attempted = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Accepted answers only, never decremented"
    )

    last_assessed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "skill_id", name="uq_skill_score_user_skill"),
    )

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "skill_id": self.skill_id,
            "score": self.score,
            "level": self.level,
            "questions_attempted": self.questions_attempted,
            "last_assessed_at": self.last_assessed_at.isoformat() if self.last_assessed_at else None,
        }


class SkillScoreSnapshot(BaseModel):
    __tablename__ = "skill_score_snapshots"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    skill_id = Column(Integer, ForeignKey("skills.id", ondelete="CASCADE"), nullable=False)
    score = Column(Float, nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_snapshot_user_skill_time", "user_id", "skill_id", "recorded_at"),
    )
