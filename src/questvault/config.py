"""Configuration settings for questvault."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///questvault.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class ReviewSettings:
    """Spaced repetition settings for missed items."""
    base_interval_minutes: float = float(os.getenv("REVIEW_BASE_INTERVAL_MINUTES", "1"))
    growth_factor: float = float(os.getenv("REVIEW_GROWTH_FACTOR", "2.0"))
    mastery_threshold: int = int(os.getenv("REVIEW_MASTERY_THRESHOLD", "4"))


@dataclass
class PlanSettings:
    """Defaults for distributing a content pool into batches."""
    units_per_batch: int = int(os.getenv("UNITS_PER_BATCH", "20"))
    duration_periods: int = int(os.getenv("DURATION_PERIODS", "4"))
    period_length_days: int = int(os.getenv("PERIOD_LENGTH_DAYS", "7"))


@dataclass
class StudySettings:
    """Scoring and reward settings for batch attempts."""
    pass_score: float = float(os.getenv("PASS_SCORE", "80"))
    max_mistakes: int = int(os.getenv("MAX_MISTAKES", "3"))
    points_per_batch: int = int(os.getenv("POINTS_PER_BATCH", "10"))
    completion_xp: int = int(os.getenv("COMPLETION_XP", "300"))
    completion_points: int = int(os.getenv("COMPLETION_POINTS", "100"))


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("METRICS_PORT", "9090"))


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_review_settings() -> ReviewSettings:
    """Get review settings."""
    return ReviewSettings()


def get_plan_settings() -> PlanSettings:
    """Get plan settings."""
    return PlanSettings()


def get_study_settings() -> StudySettings:
    """Get study settings."""
    return StudySettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    review: ReviewSettings = field(default_factory=get_review_settings)
    plan: PlanSettings = field(default_factory=get_plan_settings)
    study: StudySettings = field(default_factory=get_study_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.review.base_interval_minutes <= 0:
            raise ValueError("REVIEW_BASE_INTERVAL_MINUTES must be positive")

        if self.review.growth_factor <= 1:
            raise ValueError("REVIEW_GROWTH_FACTOR must be greater than 1")

        if self.review.mastery_threshold < 1:
            raise ValueError("REVIEW_MASTERY_THRESHOLD must be at least 1")

        if self.plan.units_per_batch < 1:
            raise ValueError("UNITS_PER_BATCH must be positive")

        if self.plan.duration_periods < 1:
            raise ValueError("DURATION_PERIODS must be positive")

        if self.plan.period_length_days < 1:
            raise ValueError("PERIOD_LENGTH_DAYS must be positive")

        if self.study.pass_score < 0 or self.study.pass_score > 100:
            raise ValueError("PASS_SCORE must be between 0 and 100")

        if self.study.max_mistakes < 1:
            raise ValueError("MAX_MISTAKES must be positive")


# Create global settings instance
settings = Settings()
settings.validate()
