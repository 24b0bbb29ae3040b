"""
skillpath/schemas/assessment.py
Assessment session API schemas
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class StartSessionRequest(BaseModel):
    """Start a session. Both fields fall back to the learner profile / first active skill."""
    grade_level: Optional[int] = Field(None, ge=1, description="Grade level, defaults to the user's grade")
    skill_id: Optional[int] = Field(None, gt=0, description="Skill to assess")

    class Config:
        json_schema_extra = {
            "example": {
                "grade_level": 5,
                "skill_id": 12
            }
        }


class SubmitAnswerRequest(BaseModel):
    session_id: int = Field(..., gt=0)
    question_id: int = Field(..., gt=0)
    user_response: str = Field(..., max_length=5000)


class SessionOut(BaseModel):
    id: int
    user_id: int
    skill_id: int
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    overall_score: Optional[int] = None
    overall_level: Optional[int] = None
    question_ids: List[int]


class QuestionPublic(BaseModel):
    """Question as shown to the learner (no correct answer)"""
    id: int
    text: str
    question_type: str
    options: Optional[Dict[str, Any]] = None
    difficulty_level: int
    grade_level: int
    skill_id: int


class NextQuestionOut(BaseModel):
    session_id: int
    is_complete: bool
    next_question: Optional[QuestionPublic] = None
    answered_count: Optional[int] = None
    total_questions: Optional[int] = None


class AnswerResultOut(BaseModel):
    response_id: int
    session_id: int
    question_id: int
    user_response: str
    is_correct: bool
    answered_at: datetime
    skill_id: int
    skill_score: float
    questions_attempted: int
    session_complete: bool
    overall_score: Optional[int] = None
    overall_level: Optional[int] = None


class SessionResultOut(BaseModel):
    session_id: int
    skill_id: int
    skill_name: Optional[str] = None
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_questions: int
    correct_answers: int
    overall_score: int
    overall_level: int
    skill_score: Optional[float] = None
    skill_level: Optional[int] = None
    questions_attempted: Optional[int] = None
