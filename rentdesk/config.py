"""
RentDesk Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Application configuration."""

    # Record store backend: 'postgres' for the live database, 'memory' for demo/offline use
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'postgres').lower()
    if STORE_BACKEND not in ('postgres', 'memory'):
        raise ValueError(f"STORE_BACKEND must be 'postgres' or 'memory', got {STORE_BACKEND!r}")

    # Database: must be set in .env when the postgres backend is used; never hardcode credentials here
    DATABASE_URL = os.getenv('DATABASE_URL')
    if STORE_BACKEND == 'postgres' and not DATABASE_URL:
        _logger.critical("DATABASE_URL is not set — cannot start. Copy .env.example to .env and configure it.")
        raise ValueError("DATABASE_URL environment variable is not set. Copy .env.example to .env and configure it.")
    DB_CONNECT_TIMEOUT_SECONDS = int(os.getenv('DB_CONNECT_TIMEOUT_SECONDS', '5'))

    # Lease documents: 'http' for a storage REST API, 'memory' for demo/offline use
    DOCUMENT_BACKEND = os.getenv('DOCUMENT_BACKEND', 'memory').lower()
    if DOCUMENT_BACKEND not in ('http', 'memory'):
        raise ValueError(f"DOCUMENT_BACKEND must be 'http' or 'memory', got {DOCUMENT_BACKEND!r}")
    DOCUMENT_STORE_URL = os.getenv('DOCUMENT_STORE_URL', '')
    DOCUMENT_STORE_KEY = os.getenv('DOCUMENT_STORE_KEY', '')
    DOCUMENT_BUCKET = os.getenv('DOCUMENT_BUCKET', 'contract-pdfs')
    DOCUMENT_TIMEOUT_SECONDS = float(os.getenv('DOCUMENT_TIMEOUT_SECONDS', '30'))

    # Renewal reminders: days before lease end at which a reminder becomes due
    DEFAULT_REMINDER_LEAD_DAYS = int(os.getenv('DEFAULT_REMINDER_LEAD_DAYS', '90'))


# Singleton instance
config = Config()
