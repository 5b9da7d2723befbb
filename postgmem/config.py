"""
Configuration for PostgMem
"""

import os
import logging
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


class PostgMemConfig:
    """
    Configuration class for the memory store.
    Loads settings from environment variables (or a .env file) or uses defaults.
    """

    # Database Configuration
    DB_HOST = os.getenv('POSTGMEM_DB_HOST', 'localhost')
    DB_PORT = int(os.getenv('POSTGMEM_DB_PORT', 5432))
    DB_NAME = os.getenv('POSTGMEM_DB_NAME', 'postgmem')
    DB_USER = os.getenv('POSTGMEM_DB_USER', 'postgres')
    DB_PASSWORD = os.getenv('POSTGMEM_DB_PASSWORD', 'postgres')

    # Connection Pool Configuration
    POOL_MIN_CONN = int(os.getenv('POSTGMEM_POOL_MIN_CONN', 1))
    POOL_MAX_CONN = int(os.getenv('POSTGMEM_POOL_MAX_CONN', 10))
    POOL_ACQUIRE_TIMEOUT = float(os.getenv('POSTGMEM_POOL_ACQUIRE_TIMEOUT', 30.0))

    # Embedding Configuration
    EMBEDDING_URL = os.getenv('POSTGMEM_EMBEDDING_URL', 'http://localhost:11434')
    EMBEDDING_MODEL = os.getenv('POSTGMEM_EMBEDDING_MODEL', 'all-minilm:33m-l12-v2-fp16')
    EMBEDDING_DIMENSION = int(os.getenv('POSTGMEM_EMBEDDING_DIMENSION', 384))
    EMBEDDING_TIMEOUT = float(os.getenv('POSTGMEM_EMBEDDING_TIMEOUT', 30.0))

    # Search Configuration
    DISTANCE_METRIC = os.getenv('POSTGMEM_DISTANCE_METRIC', 'cosine')

    LOG_LEVEL = os.getenv('POSTGMEM_LOG_LEVEL', 'INFO')

    @classmethod
    def get_db_config(cls) -> Dict:
        """Get database configuration as dictionary."""
        return {
            'host': cls.DB_HOST,
            'port': cls.DB_PORT,
            'database': cls.DB_NAME,
            'user': cls.DB_USER,
            'password': cls.DB_PASSWORD
        }

    @classmethod
    def get_pool_config(cls) -> Dict:
        """Get connection pool configuration as dictionary."""
        return {
            'minconn': cls.POOL_MIN_CONN,
            'maxconn': cls.POOL_MAX_CONN,
            'acquire_timeout': cls.POOL_ACQUIRE_TIMEOUT
        }

    @classmethod
    def get_embedding_config(cls) -> Dict:
        """Get embedding provider configuration as dictionary."""
        return {
            'base_url': cls.EMBEDDING_URL,
            'model': cls.EMBEDDING_MODEL,
            'dimension': cls.EMBEDDING_DIMENSION,
            'timeout': cls.EMBEDDING_TIMEOUT
        }


def setup_logging(level: str = None):
    """
    Configure root logging for applications embedding the store.

    Args:
        level: Log level name; defaults to POSTGMEM_LOG_LEVEL
    """
    level = (level or PostgMemConfig.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
