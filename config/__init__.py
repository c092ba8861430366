"""Configuration module for the NSE stock validator.

Centralized configuration management using pydantic-settings; every
component receives the validated GlobalConfig by injection.
"""

from config.settings import GlobalConfig, load_config

__all__ = ["GlobalConfig", "load_config"]
