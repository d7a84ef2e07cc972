"""
Utility package for the biosignal link client.
"""

from biolink.utils.logging import (
    setup_logging, get_logger, ConnectionLoggerAdapter, EndpointFilter, ColoredFormatter
)

__all__ = [
    'setup_logging',
    'get_logger',
    'ConnectionLoggerAdapter',
    'EndpointFilter',
    'ColoredFormatter'
]
