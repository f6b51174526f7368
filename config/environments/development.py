"""
Development environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig


@dataclass
class DevelopmentConfig(AppConfig):
    """Development environment configuration"""
    
    def __post_init__(self):
        
        # Development-specific overrides
        self.environment = "development"
        self.debug = True
        
        # More verbose logging in development
        self.logging.level = "DEBUG"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/dev-app.log"
        
        # Development UI changes
        self.ui.app_title = "AI Competition Assistant (DEV)"
        
        # Separate store so dev runs never touch real cached artifacts
        self.storage.db_path = "data/dev_assistant_store.db"


def get_development_config() -> DevelopmentConfig:
    """Get development-specific configuration"""
    return DevelopmentConfig()
