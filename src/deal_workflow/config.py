"""
Configuration management for the Deal Workflow Engine.

Loads DEAL_WORKFLOW_* settings from environment variables with sensible
defaults. A .env file at the project root is picked up when present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Configuration settings loaded from environment."""

    # Logging
    LOG_LEVEL: str = os.getenv('DEAL_WORKFLOW_LOG_LEVEL', 'INFO')
    LOG_JSON: bool = _env_bool('DEAL_WORKFLOW_LOG_JSON')

    # Timeline projection
    STALE_DEAL_DAYS: int = int(os.getenv('DEAL_WORKFLOW_STALE_DAYS', '30'))

    # Status transitions
    MIN_HOLD_HOURS: float = float(os.getenv('DEAL_WORKFLOW_MIN_HOLD_HOURS', '24'))

    # Notification delivery
    NOTIFY_MAX_ATTEMPTS: int = int(os.getenv('DEAL_WORKFLOW_NOTIFY_MAX_ATTEMPTS', '3'))

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that configuration values are usable.

        Returns:
            List of configuration keys holding invalid values
        """
        invalid = []
        if cls.LOG_LEVEL.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            invalid.append('DEAL_WORKFLOW_LOG_LEVEL')
        if cls.STALE_DEAL_DAYS <= 0:
            invalid.append('DEAL_WORKFLOW_STALE_DAYS')
        if cls.MIN_HOLD_HOURS < 0:
            invalid.append('DEAL_WORKFLOW_MIN_HOLD_HOURS')
        if cls.NOTIFY_MAX_ATTEMPTS < 1:
            invalid.append('DEAL_WORKFLOW_NOTIFY_MAX_ATTEMPTS')
        return invalid


# Singleton config instance
config = Config()
