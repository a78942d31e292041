"""Configuration management for xunused.

Loads environment variables and provides centralized config access.
"""
import os
from pathlib import Path
from typing import List
from dotenv import load_dotenv

__version__ = "1.0.0"

TRUTHY = {"1", "true", "yes", "on"}


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, env_path: Path = None):
        """Initialize config by loading a .env file.

        Args:
            env_path: .env file to load (defaults to ./.env). Variables already
                set in the environment win.
        """
        load_dotenv(env_path or Path.cwd() / ".env")

    @property
    def jobs(self) -> int:
        """Number of translation units analyzed in parallel.

        Returns:
            XUNUSED_JOBS, or the CPU count when unset or invalid
        """
        value = os.getenv("XUNUSED_JOBS")
        try:
            jobs = int(value) if value else 0
        except ValueError:
            jobs = 0
        return jobs if jobs > 0 else (os.cpu_count() or 1)

    @property
    def system_dirs(self) -> List[str]:
        """Extra directories whose headers count as system headers.

        Returns:
            XUNUSED_SYSTEM_DIRS split on os.pathsep
        """
        value = os.getenv("XUNUSED_SYSTEM_DIRS", "")
        return [d for d in value.split(os.pathsep) if d]

    @property
    def debug(self) -> bool:
        return os.getenv("XUNUSED_DEBUG", "").strip().lower() in TRUTHY

    @property
    def excluded_dirs(self) -> List[str]:
        """Extra directory names skipped when scanning for sources.

        Returns:
            XUNUSED_EXCLUDED_DIRS split on commas
        """
        value = os.getenv("XUNUSED_EXCLUDED_DIRS", "")
        return [d.strip() for d in value.split(",") if d.strip()]


# Singleton instance
_config = None


def get_config() -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config
