"""
External services - the competition backend client and its wire models.
"""

from .competition_api import CompetitionApiClient, CompetitionApiError

__all__ = [
    'CompetitionApiClient',
    'CompetitionApiError'
]
