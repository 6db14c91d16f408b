"""
HTTP API for ForexRadar.
"""

from .app import create_app

__all__ = ["create_app"]
