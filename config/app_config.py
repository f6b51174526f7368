"""
Unified Configuration System for the Competition AI Assistant

This module provides a centralized configuration system that consolidates all application settings,
supports environment-based overrides, and provides type-safe configuration access.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
import streamlit as st
import os
from pathlib import Path


DEFAULT_API_BASE_URL = "http://localhost:8080/api"


def _env_float(name: str, fallback: float) -> float:
    try:
        return float(os.getenv(name, str(fallback)))
    except (TypeError, ValueError):
        return fallback


@dataclass
class APIConfig:
    """Competition backend settings"""
    base_url: str = DEFAULT_API_BASE_URL
    # None means no client-side timeout, matching the web client
    timeout_seconds: Optional[float] = None
    auth_token: str = ""

    @classmethod
    def from_secrets(cls) -> 'APIConfig':
        """Load API config from Streamlit secrets"""
        # In test environment, prefer environment variables
        if os.getenv("PYTEST_CURRENT_TEST") is not None:
            return cls._from_env()

        try:
            timeout = st.secrets.get("COMPETITION_API_TIMEOUT")
            return cls(
                base_url=st.secrets.get("COMPETITION_API_BASE_URL", DEFAULT_API_BASE_URL),
                timeout_seconds=float(timeout) if timeout else None,
                auth_token=st.secrets.get("COMPETITION_API_TOKEN", ""),
            )
        except Exception:
            # Fallback to environment variables if secrets not available
            return cls._from_env()

    @classmethod
    def _from_env(cls) -> 'APIConfig':
        timeout = _env_float("COMPETITION_API_TIMEOUT", 0.0)
        return cls(
            base_url=os.getenv("COMPETITION_API_BASE_URL", DEFAULT_API_BASE_URL),
            timeout_seconds=timeout or None,
            auth_token=os.getenv("COMPETITION_API_TOKEN", ""),
        )


@dataclass
class ChatConfig:
    """Chat session behaviour"""
    context_window: int = 6
    typewriter_interval_ms: int = 30
    snapshot_size: int = 50


@dataclass
class CacheConfig:
    """TTLs (seconds) for cached AI artifacts"""
    recommendations_ttl: float = 24 * 60 * 60
    skill_analysis_ttl: float = 7 * 24 * 60 * 60
    trends_ttl: float = 7 * 24 * 60 * 60
    chat_history_ttl: float = 7 * 24 * 60 * 60
    sweep_interval: float = 60.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "ai_recommendations": self.recommendations_ttl,
            "ai_skill_analysis": self.skill_analysis_ttl,
            "ai_competition_trends": self.trends_ttl,
            "ai_chat_history": self.chat_history_ttl,
        }


@dataclass
class StorageConfig:
    """Durable key-value store configuration"""
    db_path: str = "data/assistant_store.db"
    table_name: str = "kv_store"


@dataclass
class UIConfig:
    """User interface configuration"""
    app_title: str = "AI Competition Assistant"
    welcome_message: str = """Hello {username}! I am your AI competition assistant.

I can help you:
• recommend competitions that suit you
• analyse your skill level
• plan your preparation
• answer competition questions

What can I do for you?"""

    guest_welcome_message: str = """Hello! I am the AI competition assistant.

I can help you:
• recommend competitions
• analyse skill levels
• plan your preparation
• answer competition questions

What can I do for you?"""

    apology_message: str = """Sorry, the AI service is temporarily unavailable. This may be because:

• the server is under maintenance
• the network connection failed
• the API configuration needs updating

Please try again later or contact an administrator."""

    quick_prompts: Dict[str, str] = field(default_factory=lambda: {
        "recommend": "Please recommend some competitions that suit me",
        "skills": "Please analyse my skill level",
        "trends": "Which competition categories are popular right now?",
        "help": "I am new here, how should I start taking part in competitions?",
    })


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = False
    log_file: str = "logs/app.log"


@dataclass
class AppConfig:
    """Main application configuration"""
    api: APIConfig = field(default_factory=APIConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Load configuration with environment overrides"""
        config = cls()

        # Load API configuration from secrets/environment
        config.api = APIConfig.from_secrets()

        # Apply environment-specific overrides
        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.api.base_url.startswith(("http://", "https://")):
            errors.append(f"API base URL must be http(s): {self.api.base_url}")

        if self.chat.typewriter_interval_ms < 0:
            errors.append("Typewriter interval must be >= 0")

        if self.chat.context_window < 1:
            errors.append("Context window must hold at least one message")

        for namespace, ttl in self.cache.to_dict().items():
            if ttl <= 0:
                errors.append(f"TTL for '{namespace}' must be positive")

        # Make sure directories exist
        db_dir = Path(self.storage.db_path).parent
        if not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Flat view used in debug output"""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_base_url": self.api.base_url,
            "context_window": self.chat.context_window,
            "typewriter_interval_ms": self.chat.typewriter_interval_ms,
            "cache_ttls": self.cache.to_dict(),
            "db_path": self.storage.db_path,
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        from config.environments import get_environment_config
        _config = get_environment_config()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Reload configuration (useful for testing)"""
    global _config
    _config = None
    return get_config()
