"""
AI service fallback content for graceful degradation.

Fixed user-facing texts and default artifacts shown when the AI backend
is unavailable or returns nothing usable.
"""

import copy
from typing import Any, Dict, List, Optional

from config.app_config import AppConfig, get_config
from utils.logging_config import get_logger


DEFAULT_HOT_CATEGORIES: List[Dict[str, Any]] = [
    {"name": "Programming contests", "participation": 85, "growth": 15},
    {"name": "Entrepreneurship contests", "participation": 78, "growth": 22},
    {"name": "Design contests", "participation": 65, "growth": 8},
    {"name": "Mathematical modelling", "participation": 72, "growth": 12},
]

DEFAULT_TRENDS_SUMMARY = (
    "Competitions keep growing and participation is rising across categories. "
    "Here is a trend analysis based on your background and history."
)
TRENDS_UNAVAILABLE_SUMMARY = "Trend analysis is temporarily unavailable, showing default data."
SKILL_ANALYSIS_UNAVAILABLE = "Skill analysis service is temporarily unavailable"
NO_SKILL_ANALYSIS = "No analysis available yet"
RECOMMENDATIONS_UNAVAILABLE = "Recommendations are temporarily unavailable, please try again later."
NO_PREPARATION_ADVICE = "No specific advice yet"
PREPARATION_ADVICE_FAILED = "Failed to get advice, please try again later"
SIGN_IN_FOR_ADVICE = "Please sign in before requesting advice"
DEFAULT_PLAN_DURATION = "12 weeks"
DEFAULT_PLAN_DIFFICULTY = "Intermediate"
UNKNOWN_COMPETITION = "Unknown competition"


class FallbackService:
    """
    Service for providing fallback content when the AI service is unavailable.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()

    def apology_message(self) -> str:
        return self.config.ui.apology_message

    def welcome_message(self, username: Optional[str] = None) -> str:
        """Welcome text for the chat panel, personalised when a name is known"""
        if username:
            return self.config.ui.welcome_message.format(username=username)
        return self.config.ui.guest_welcome_message

    def default_trends(self, summary: Optional[str] = None) -> Dict[str, Any]:
        return {
            "hotCategories": copy.deepcopy(DEFAULT_HOT_CATEGORIES),
            "summary": summary or DEFAULT_TRENDS_SUMMARY,
        }

    def unavailable_trends(self) -> Dict[str, Any]:
        self.logger.info("Serving default trend analysis")
        return self.default_trends(TRENDS_UNAVAILABLE_SUMMARY)

    def unavailable_skill_analysis(self) -> Dict[str, Any]:
        self.logger.info("Serving empty skill analysis")
        return {"skills": {}, "advice": SKILL_ANALYSIS_UNAVAILABLE, "overallScore": 0}

    def unavailable_recommendations(self) -> Dict[str, Any]:
        self.logger.info("Serving empty recommendations")
        return {"recommendations": [], "summary": RECOMMENDATIONS_UNAVAILABLE, "total": 0}

    @staticmethod
    def default_learning_path(
        competition_name: str,
        category: Optional[str] = None,
        major: Optional[str] = None,
    ) -> List[Dict[str, str]]:
        """Three-stage plan used when the AI plan has too little structure"""
        return [
            {
                "title": f"{competition_name} - Foundation stage",
                "description": (
                    f"Study the theory behind {competition_name} and master its core concepts. "
                    f"Focus on the fundamentals of the {category or 'relevant'} field."
                ),
                "duration": "4 weeks",
            },
            {
                "title": f"{competition_name} - Skill-building stage",
                "description": (
                    f"Build the specialist skills {competition_name} needs through projects and case studies, "
                    f"drawing on your {major or 'study'} background."
                ),
                "duration": "6 weeks",
            },
            {
                "title": f"{competition_name} - Final sprint stage",
                "description": (
                    f"Rehearse under {competition_name} conditions, fill the gaps, "
                    "settle your strategy and polish your entry."
                ),
                "duration": "2 weeks",
            },
        ]

    @staticmethod
    def recommendation_summary(major: Optional[str], category: str = "", difficulty: str = "") -> str:
        summary = f"Based on your background ({major or 'unknown'}) and skill level"
        if category:
            summary += f", in the {category} category"
        if difficulty:
            summary += f", at {difficulty} difficulty"
        return summary + ", these competitions were picked for you."

    @staticmethod
    def no_match_summary(category: str = "", difficulty: str = "") -> str:
        summary = "Sorry, no recommended competitions match your filters."
        if category and difficulty:
            summary += f' The category "{category}" and difficulty "{difficulty}" may have no matches.'
        elif category:
            summary += f' The category "{category}" may have no matches.'
        elif difficulty:
            summary += f' The difficulty "{difficulty}" may have no matches.'
        return summary + " Please try different filters."

    @staticmethod
    def recommendation_reason(major: Optional[str], category: Optional[str]) -> str:
        category_text = f"{category} " if category else ""
        return (
            f"Based on your {major or 'study'} background and skills, "
            f"this {category_text}competition suits you."
        )
