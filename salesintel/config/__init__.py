"""
E-Commerce Sales Intelligence
Configuration Module
"""
from .settings import AnalyticsSettings, Settings, build_analysis_config, get_settings

__all__ = ["AnalyticsSettings", "Settings", "build_analysis_config", "get_settings"]
