"""
Insights service - AI recommendations, skill and trend analysis, search,
learning paths and preparation advice.

Recommendations, skill analysis and trends each go through the CacheLayer
under their own namespace and TTL, so repeated views within the TTL never
reach the backend and concurrent requests for the same key share one call.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from config.app_config import AppConfig, get_config
from infrastructure.storage import KeyValueStore
from services.ai_service.fallback_service import (
    DEFAULT_PLAN_DIFFICULTY,
    DEFAULT_PLAN_DURATION,
    NO_PREPARATION_ADVICE,
    NO_SKILL_ANALYSIS,
    PREPARATION_ADVICE_FAILED,
    SIGN_IN_FOR_ADVICE,
    UNKNOWN_COMPETITION,
    FallbackService,
)
from services.ai_service.learning_path import STAGE_COUNT, parse_learning_path
from services.chat_service.cache_layer import (
    COMPETITION_TRENDS,
    RECOMMENDATIONS,
    SKILL_ANALYSIS,
    CacheLayer,
)
from services.user_session import UserSession
from utils.logging_config import get_logger


RECOMMEND_FILTER_CATEGORY_KEY = "ai_recommend_filter_category"
RECOMMEND_FILTER_DIFFICULTY_KEY = "ai_recommend_filter_difficulty"


class InsightsClient(Protocol):
    async def get_recommendations(self, user_id: Any, category: str = "", difficulty: str = "") -> List[Any]:
        ...

    async def analyze_skills(self, user_id: Any) -> Any:
        ...

    async def get_competition_trends(self, payload: Dict[str, Any]) -> Any:
        ...

    async def intelligent_search(self, query: str, user_id: Optional[Any] = None) -> List[Any]:
        ...

    async def generate_learning_path(self, payload: Dict[str, Any]) -> Any:
        ...

    async def get_preparation_advice(self, competition_id: Any, user_id: Any) -> Any:
        ...


@dataclass
class RecommendationFilter:
    category: str = ""
    difficulty: str = ""


@dataclass
class PreparationAdviceState:
    """Advice panel for one competition; ``competition`` is None when closed"""
    competition: Optional[Dict[str, Any]] = None
    advice: Optional[str] = None
    error: str = ""
    loading: bool = False


class InsightsService:
    """
    Access to the AI insight endpoints.

    Service failures are logged and answered with fallback artifacts.
    Recommendations, skill analysis, trends and learning paths raise
    UserNotAuthenticatedError when nobody is signed in.
    """

    def __init__(
        self,
        client: InsightsClient,
        cache: CacheLayer,
        user_session: UserSession,
        store: KeyValueStore,
        config: Optional[AppConfig] = None,
        fallback: Optional[FallbackService] = None,
    ):
        self.logger = get_logger(__name__)
        self.client = client
        self.cache = cache
        self.user_session = user_session
        self.store = store
        self.config = config or get_config()
        self.fallback = fallback or FallbackService(self.config)
        self.preparation_advice = PreparationAdviceState()

    # Recommendation filters survive restarts in the durable store

    def get_filter(self) -> RecommendationFilter:
        return RecommendationFilter(
            category=self.store.get(RECOMMEND_FILTER_CATEGORY_KEY) or "",
            difficulty=self.store.get(RECOMMEND_FILTER_DIFFICULTY_KEY) or "",
        )

    def set_filter(self, category: str = "", difficulty: str = "") -> RecommendationFilter:
        self.store.set(RECOMMEND_FILTER_CATEGORY_KEY, category or "")
        self.store.set(RECOMMEND_FILTER_DIFFICULTY_KEY, difficulty or "")
        self.logger.debug(f"Recommendation filter set: category={category!r}, difficulty={difficulty!r}")
        return self.get_filter()

    async def get_recommendations(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Personalised competition recommendations for the current filter.

        Returns:
            ``{"recommendations": [...], "summary": str, "total": int}``
        """
        user = self._require_user()
        user_id = user["id"]
        selected = self.get_filter()
        key = RECOMMENDATIONS.key(user_id, selected.category, selected.difficulty)

        async def fetch() -> Dict[str, Any]:
            results = await self.client.get_recommendations(user_id, selected.category, selected.difficulty)
            recommendations = []
            for item in results:
                data = item.model_dump(by_alias=True) if hasattr(item, "model_dump") else dict(item)
                if not data.get("suggestions"):
                    data["suggestions"] = self.fallback.recommendation_reason(user.get("major"), data.get("category"))
                recommendations.append(data)

            if recommendations:
                summary = self.fallback.recommendation_summary(user.get("major"), selected.category, selected.difficulty)
            else:
                summary = self.fallback.no_match_summary(selected.category, selected.difficulty)
            return {"recommendations": recommendations, "summary": summary, "total": len(recommendations)}

        try:
            return await self.cache.get_or_fetch(key, self.config.cache.recommendations_ttl, fetch, force_refresh)
        except Exception as e:
            self.logger.error(f"Error fetching recommendations: {e}")
            return self.fallback.unavailable_recommendations()

    async def analyze_skills(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Returns:
            ``{"skills": {name: score}, "advice": str, "overallScore": number}``
        """
        user_id = self._require_user()["id"]
        key = SKILL_ANALYSIS.key(user_id)

        async def fetch() -> Dict[str, Any]:
            analysis = await self.client.analyze_skills(user_id)
            return {
                "skills": dict(analysis.skill_scores),
                "advice": analysis.ai_analysis or NO_SKILL_ANALYSIS,
                "overallScore": analysis.overall_score,
            }

        try:
            return await self.cache.get_or_fetch(key, self.config.cache.skill_analysis_ttl, fetch, force_refresh)
        except Exception as e:
            self.logger.error(f"Error analysing skills: {e}")
            return self.fallback.unavailable_skill_analysis()

    async def get_competition_trends(
        self,
        participated_competition_id: Optional[Any] = None,
        available_competition_id: Optional[Any] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """
        Returns:
            ``{"hotCategories": [...], "summary": str}``
        """
        user = self._require_user()
        user_id = user["id"]
        key = COMPETITION_TRENDS.key(user_id, participated_competition_id, available_competition_id)

        payload = {
            "userId": user_id,
            "participatedCompetitionId": participated_competition_id,
            "availableCompetitionId": available_competition_id,
            "userInfo": {
                "major": user.get("major"),
                "skills": user.get("skills") or [],
                "experience": user.get("experience") or "beginner",
            },
        }

        async def fetch() -> Dict[str, Any]:
            analysis = await self.client.get_competition_trends(payload)
            return self.fallback.default_trends(analysis.ai_analysis)

        try:
            return await self.cache.get_or_fetch(key, self.config.cache.trends_ttl, fetch, force_refresh)
        except Exception as e:
            self.logger.error(f"Error fetching competition trends: {e}")
            return self.fallback.unavailable_trends()

    async def search(self, query: str) -> List[Dict[str, Any]]:
        """
        Free-text competition search ranked by the AI.

        Not cached; works for guests too. A blank query or a failed call
        yields no results.
        """
        query = (query or "").strip()
        if not query:
            return []

        user_id = self.user_session.get_user_id()
        try:
            results = await self.client.intelligent_search(query, user_id)
        except Exception as e:
            self.logger.error(f"Intelligent search failed: {e}")
            return []

        self.logger.info(f"Search {query!r} returned {len(results)} competitions")
        return [item.model_dump(by_alias=True) if hasattr(item, "model_dump") else dict(item) for item in results]

    async def generate_learning_path(
        self,
        target_competition: Dict[str, Any],
        participated_competition: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Study plan towards ``target_competition``, always freshly generated.

        Returns:
            ``{"estimatedTime", "difficulty", "targetCompetition", "stages"}``
            or None when the AI service failed
        """
        user = self._require_user()
        target_name = target_competition.get("title") or target_competition.get("name") or UNKNOWN_COMPETITION

        payload = {
            "userId": user["id"],
            "targetCompetitionId": target_competition.get("id"),
            "participatedCompetitionId": participated_competition.get("id") if participated_competition else None,
            "userInfo": {
                "major": user.get("major"),
                "skills": user.get("skills") or [],
                "experience": user.get("experience") or "beginner",
                "interests": user.get("interests") or [],
            },
            "targetCompetitionInfo": {
                "title": target_competition.get("title"),
                "category": target_competition.get("category"),
                "difficulty": target_competition.get("difficulty"),
                "tags": target_competition.get("tags"),
                "requirements": target_competition.get("requirements") or "",
            },
            "participatedCompetitionInfo": {
                "title": participated_competition.get("title"),
                "category": participated_competition.get("category"),
                "result": participated_competition.get("result") or "participated",
            } if participated_competition else None,
        }

        try:
            plan = await self.client.generate_learning_path(payload)
        except Exception as e:
            self.logger.error(f"Error generating learning path: {e}")
            return None

        stages = parse_learning_path(plan.ai_plan)
        if len(stages) < STAGE_COUNT:
            self.logger.warning(f"Learning path had {len(stages)} stages, using the default plan")
            stages = self.fallback.default_learning_path(target_name, target_competition.get("category"), user.get("major"))

        return {
            "estimatedTime": plan.total_duration or DEFAULT_PLAN_DURATION,
            "difficulty": target_competition.get("difficulty") or DEFAULT_PLAN_DIFFICULTY,
            "targetCompetition": target_name,
            "stages": stages,
        }

    async def get_preparation_advice(self, competition: Dict[str, Any]) -> PreparationAdviceState:
        """Load advice for ``competition`` into the advice panel state"""
        state = self.preparation_advice
        user_id = self.user_session.get_user_id()
        if user_id is None:
            state.error = SIGN_IN_FOR_ADVICE
            return state

        state.competition = competition
        state.advice = None
        state.error = ""
        state.loading = True
        try:
            advice = await self.client.get_preparation_advice(competition.get("id"), user_id)
            state.advice = advice.ai_advice or NO_PREPARATION_ADVICE
        except Exception as e:
            self.logger.error(f"Error fetching preparation advice: {e}")
            state.error = PREPARATION_ADVICE_FAILED
        finally:
            state.loading = False
        return state

    def close_preparation_advice(self) -> None:
        self.preparation_advice = PreparationAdviceState()

    async def retry_preparation_advice(self) -> PreparationAdviceState:
        competition = self.preparation_advice.competition
        if competition is None:
            return self.preparation_advice
        return await self.get_preparation_advice(competition)

    def clear_cache(self) -> int:
        """Drop every cached insight, e.g. after the user profile changed"""
        removed = 0
        for namespace in (RECOMMENDATIONS, SKILL_ANALYSIS, COMPETITION_TRENDS):
            removed += self.cache.invalidate_namespace(namespace)
        return removed

    def _require_user(self) -> Dict[str, Any]:
        self.user_session.require_user_id()
        return self.user_session.get_user()
