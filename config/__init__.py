"""Configuration module for the chat server.

Supports multiple environments:
- development (default)
- staging
- production

Usage:
    from config import config

    # Access config values
    mongo_uri = config.MONGO_URI
    max_len = config.CHAT_MAX_BODY_LENGTH

    # Check environment
    if config.IS_PROD:
        config.validate_required()

Set environment via:
- FLASK_ENV=production
- APP_ENV=staging
"""
from .settings import config, Config, get_env

__all__ = ["config", "Config", "get_env"]
