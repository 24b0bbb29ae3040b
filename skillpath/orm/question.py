"""
skillpath/orm/question.py
Assessment questions

Questions are curated content. Once a session has selected a question
its row is treated as immutable for the lifetime of that session.
"""
from enum import Enum
from sqlalchemy import Column, Integer, Text, ForeignKey, Index, Enum as SQLEnum

from skillpath.orm.base import BaseModel, JSONType


class QuestionType(str, Enum):
    mcq = "mcq"
    true_false = "true_false"
    short_answer = "short_answer"
    long_answer = "long_answer"
    match_the_following = "match_the_following"
    fill_in_the_blank = "fill_in_the_blank"
    multiple_select = "multiple_select"
    numerical = "numerical"
    graphical = "graphical"
    problem_solving = "problem_solving"
    essay = "essay"


class QuestionStatus(str, Enum):
    draft = "draft"
    active = "active"
    retired = "retired"


class Question(BaseModel):
    __tablename__ = "questions"

    text = Column(Text, nullable=False)

    question_type = Column(
        SQLEnum(QuestionType),
        nullable=False,
        default=QuestionType.mcq
    )

    options = Column(
        JSONType,
        nullable=True,
        comment="Type dependent: {'A': '...', 'B': '...'} for mcq, {'numericalOptions': {...}} for numerical"
    )

    correct_answer = Column(Text, nullable=False)

    difficulty_level = Column(Integer, nullable=False, default=1)
    grade_level = Column(Integer, nullable=False)

    primary_skill_id = Column(
        Integer,
        ForeignKey("skills.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(
        SQLEnum(QuestionStatus),
        nullable=False,
        default=QuestionStatus.draft
    )

    __table_args__ = (
        Index("ix_question_pool", "grade_level", "primary_skill_id", "status"),
    )

    def to_public_dict(self):
        """Projection served to learners. Never includes the correct answer."""
        return {
            "id": self.id,
            "text": self.text,
            "question_type": self.question_type.value if self.question_type else None,
            "options": self.options,
            "difficulty_level": self.difficulty_level,
            "grade_level": self.grade_level,
            "skill_id": self.primary_skill_id,
        }
