"""
MACWATCH API Module
===================

Flask metrics and status endpoint.
"""

from .app import create_app

__all__ = [
    "create_app",
]
