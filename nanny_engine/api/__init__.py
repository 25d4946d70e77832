"""
HTTP surface for the dashboard sync engine.
"""
from .app import create_app

__all__ = ["create_app"]
