"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "cowork_services_dev"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # Workflow rules
    auto_approve_max_amount: float = 50.0  # Requests strictly below this amount qualify
    auto_assign_categories: str = "PRINTING"
    auto_assign_role: str = "SERVICE_PROVIDER"
    urgent_escalation_hours: float = 1.0
    escalation_role: str = "MANAGER"

    # Rule sweep scheduler
    rule_sweep_interval_seconds: int = 60
    rule_sweep_cooldown_minutes: int = 240  # Minimum gap between repeat firings per request/rule
    rule_sweep_batch_size: int = 200

    # Environment
    environment: str = "development"

    @property
    def auto_assign_categories_list(self) -> List[str]:
        """Parse auto-assign categories string to list"""
        return [
            category.strip().upper()
            for category in self.auto_assign_categories.split(",")
            if category.strip()
        ]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
