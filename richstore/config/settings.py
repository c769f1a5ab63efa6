"""
Configuration settings for the RichStore index layer.

This module provides the configuration management for the rich store. It
defines settings for the index backend selection, the relational and document
backends, the bulk-load batching thresholds, the block digest cache and
logging.

The configuration supports multiple environments (development, production,
testing) and provides validation to catch unusable combinations early.
"""

import os
from typing import Dict, Any, List


class Settings:
    """Rich store configuration settings"""

    # Index backend: "sql" (bulk-loaded relational) or "mongodb" (document)
    INDEX_BACKEND = os.getenv("RICHSTORE_INDEX_BACKEND", "sql")

    # Relational backend
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///richstore.db")

    # Document backend
    MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017/")
    MONGODB_DATABASE = os.getenv("MONGODB_DATABASE", "richstore")

    # Bulk loading
    STAGING_DIR = os.getenv("RICHSTORE_STAGING_DIR", os.path.join("data", "staging"))
    FLUSH_BLOCK_COUNT = int(os.getenv("RICHSTORE_FLUSH_BLOCK_COUNT", "50"))
    FLUSH_INTERVAL_SECONDS = float(os.getenv("RICHSTORE_FLUSH_INTERVAL", "10.0"))

    # Block digest cache
    BLOCK_CACHE_SIZE = int(os.getenv("RICHSTORE_BLOCK_CACHE_SIZE", "512"))

    # Logging settings
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def get_index_config(cls) -> Dict[str, Any]:
        """Get index backend configuration"""
        return {
            "backend": cls.INDEX_BACKEND,
            "database_url": cls.DATABASE_URL,
            "mongodb": {
                "uri": cls.MONGODB_URI,
                "database": cls.MONGODB_DATABASE,
            },
            "staging_dir": cls.STAGING_DIR,
            "flush_block_count": cls.FLUSH_BLOCK_COUNT,
            "flush_interval": cls.FLUSH_INTERVAL_SECONDS,
            "cache_size": cls.BLOCK_CACHE_SIZE,
        }

    @classmethod
    def get_logging_config(cls) -> Dict[str, Any]:
        """Get logging configuration"""
        return {
            "level": cls.LOG_LEVEL,
            "format": cls.LOG_FORMAT,
        }

    @classmethod
    def validate_config(cls) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if cls.INDEX_BACKEND not in ["sql", "mongodb"]:
            errors.append("INDEX_BACKEND must be one of: sql, mongodb")

        if cls.FLUSH_BLOCK_COUNT <= 0:
            errors.append("FLUSH_BLOCK_COUNT must be positive")

        if cls.FLUSH_INTERVAL_SECONDS <= 0:
            errors.append("FLUSH_INTERVAL_SECONDS must be positive")

        if cls.BLOCK_CACHE_SIZE <= 0:
            errors.append("BLOCK_CACHE_SIZE must be positive")

        if not cls.STAGING_DIR:
            errors.append("STAGING_DIR must not be empty")

        return errors


# Environment-specific settings
class DevelopmentSettings(Settings):
    """Development environment settings"""
    LOG_LEVEL = "DEBUG"


class ProductionSettings(Settings):
    """Production environment settings"""
    LOG_LEVEL = "WARNING"
    INDEX_BACKEND = os.getenv("RICHSTORE_INDEX_BACKEND", "sql")


class TestingSettings(Settings):
    """Testing environment settings"""
    LOG_LEVEL = "DEBUG"
    DATABASE_URL = "sqlite://"
    FLUSH_BLOCK_COUNT = 5  # Smaller batches for testing
    FLUSH_INTERVAL_SECONDS = 1.0


# Get settings based on environment
def get_settings() -> Settings:
    """Get settings based on environment variable"""
    env = os.getenv("RICHSTORE_ENV", "development").lower()

    if env == "production":
        return ProductionSettings()
    elif env == "testing":
        return TestingSettings()
    else:
        return DevelopmentSettings()


# Global settings instance
settings = get_settings()
