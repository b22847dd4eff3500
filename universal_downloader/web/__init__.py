"""
Web module for the universal downloader.

Provides a Flask-based JSON API for controlling crawls and downloads.
"""

from .app import create_app

__all__ = ["create_app"]
