"""
AI service - insight artifacts and fallback content for the assistant.
"""

from .fallback_service import FallbackService
from .insights_service import InsightsService, PreparationAdviceState, RecommendationFilter
from .learning_path import parse_learning_path

__all__ = [
    'FallbackService',
    'InsightsService',
    'PreparationAdviceState',
    'RecommendationFilter',
    'parse_learning_path'
]
