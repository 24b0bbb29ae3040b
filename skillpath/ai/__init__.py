"""
skillpath/ai/__init__.py
AI-assisted learning recommendations
"""

from skillpath.ai.provider import TextGenerationProvider, GeminiProvider
from skillpath.ai.recommendation_client import AiRecommendationClient, parse_json_object

__all__ = [
    "TextGenerationProvider",
    "GeminiProvider",
    "AiRecommendationClient",
    "parse_json_object",
]
