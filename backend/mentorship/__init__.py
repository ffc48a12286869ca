"""Mentorship session scheduling and availability backend."""

__version__ = "0.1.0"
