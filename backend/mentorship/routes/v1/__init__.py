# backend/mentorship/routes/v1/__init__.py
"""
API v1 routers. Prefixes are applied when mounting in main.py.
"""

from . import availability, health, sessions

__all__ = ["availability", "health", "sessions"]
