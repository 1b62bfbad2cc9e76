"""Configuration loading for governor-backup."""

from governor_backup.config.loader import load_db_config
from governor_backup.config.models import DatabaseConfig, DatabaseProfile

__all__ = ["load_db_config", "DatabaseProfile", "DatabaseConfig"]
