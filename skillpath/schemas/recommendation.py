"""
skillpath/schemas/recommendation.py
Recommendation API schemas and the AI generation contract
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime

from skillpath.orm.recommendation import ResourceType, RecommendationPriority


class AiGeneratedRecommendation(BaseModel):
    """
    Structured output expected from the text-generation backend.

    The model answers in camelCase JSON; snake_case names are accepted too.
    """
    explanation: str = Field(..., min_length=1)
    resource_title: str = Field(..., min_length=1, alias="resourceTitle")
    resource_description: str = Field(..., min_length=1, alias="resourceDescription")
    resource_type: ResourceType = Field(..., alias="resourceType")
    resource_url: str = Field(..., alias="resourceUrl")
    priority: RecommendationPriority

    class Config:
        populate_by_name = True

    @field_validator("resource_url")
    @classmethod
    def url_must_be_http(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("resourceUrl must be an http(s) URL")
        return value


class ResourceOut(BaseModel):
    id: int
    title: str
    description: str
    url: str
    type: str
    estimated_time_minutes: int
    tags: List[str] = Field(default_factory=list)


class RecommendationOut(BaseModel):
    """
    One recommendation for one skill gap.

    Also the shape trusted from the AI recommendation cache: an entry that
    does not validate against this model is discarded.
    """
    id: str = Field(..., min_length=1)
    history_id: Optional[int] = None
    skill_id: int
    skill_name: str
    priority: str
    score: float
    target_score: float
    explanation: str
    ai_generated: bool
    resources: List[ResourceOut] = Field(..., min_length=1)


class RecommendationSetOut(BaseModel):
    user_id: int
    recommendations: List[RecommendationOut]
    overall_progress: int
    summary: str
    generated_at: datetime


class RecommendationHistoryOut(BaseModel):
    id: int
    user_id: int
    skill_id: int
    resource_id: Optional[int] = None
    priority: str
    user_score: float
    target_score: float
    explanation: str
    is_completed: bool
    completed_at: Optional[datetime] = None
    was_helpful: Optional[bool] = None
    is_ai_generated: bool
    created_at: datetime


class CompleteRecommendationRequest(BaseModel):
    was_helpful: Optional[bool] = Field(None, description="Learner feedback on the resource")


class AiErrorEntryOut(BaseModel):
    code: str
    message: str
    timestamp: datetime
    user_id: Optional[int] = None
    skill_id: Optional[int] = None
    attempt: int
    provider: str


class AiErrorMetricsOut(BaseModel):
    total_errors: int
    errors_by_type: Dict[str, int]
    recent_errors: List[AiErrorEntryOut]


class AiMetricsOut(BaseModel):
    total_requests: int
    successful_requests: int
    failed_requests: int
    success_rate: float
    cache_hits: int
    cache_misses: int
    cache_hit_rate: float
    average_response_time: float
    error_metrics: AiErrorMetricsOut
