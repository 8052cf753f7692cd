# config/__init__.py
"""
Application configuration classes
"""

from .base import Config, DevelopmentConfig, ProductionConfig, TestingConfig

__all__ = ["Config", "DevelopmentConfig", "ProductionConfig", "TestingConfig"]
