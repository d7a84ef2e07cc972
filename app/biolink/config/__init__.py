# config/__init__.py
"""
Configuration package for the biosignal link client.

This package provides configuration management and settings for the application.
"""

from biolink.config.settings import Settings, ConfigurationError, settings, validate_link_options

__all__ = [
    'Settings',
    'ConfigurationError',
    'settings',
    'validate_link_options'
]
