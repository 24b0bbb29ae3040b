"""
skillpath/ai/prompts.py
Prompts for AI learning recommendations

The model must answer with a single JSON object matching
AiGeneratedRecommendation (camelCase keys).
"""

from typing import Any, Dict, List

from skillpath.orm.recommendation import ResourceType, RecommendationPriority
from skillpath.orm.skill import Skill


SYSTEM_PROMPT = (
    "You are an educational AI advisor that creates personalized learning "
    "recommendations for students based on their performance data."
)


def build_recommendation_prompt(
    user_id: int,
    skill: Skill,
    score: float,
    history: List[Dict[str, Any]]
) -> str:
    """Prompt asking for one resource that closes a skill gap."""
    if history:
        history_text = "\n".join(
            f"- Skill: {entry['skill_id']}, Correct: {entry['is_correct']}, Date: {entry['date']}"
            for entry in history
        )
    else:
        history_text = "- No answers recorded yet"

    resource_types = "|".join(t.value for t in ResourceType)
    priorities = "|".join(p.value for p in RecommendationPriority)

    return f"""{SYSTEM_PROMPT}

Generate a personalized learning recommendation for a student with the following:

- User ID: {user_id}
- Skill Name: {skill.name}
- Subject: {skill.subject}
- Skill Description: {skill.description or 'No description available'}
- Current Score: {score:.0f} (scores range from 400-800, where 650+ is proficient)
- Grade Level: {skill.grade_level}

Recent assessment history:
{history_text}

Respond ONLY with the JSON object, without any additional text or markdown formatting.
The JSON object must have the following fields:
{{
  "explanation": "Brief explanation of why this resource will help",
  "resourceTitle": "Title of the learning resource",
  "resourceDescription": "Description of the learning resource",
  "resourceType": "{resource_types}",
  "resourceUrl": "URL to a relevant teaching resource (can be a popular educational site)",
  "priority": "{priorities}"
}}"""

