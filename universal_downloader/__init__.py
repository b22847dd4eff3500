"""
Universal Downloader - find and download files linked from web pages.

This package crawls sites rendered with Playwright, filters discovered file
links by extension and text, and downloads the matches while remembering
what earlier runs already fetched.
"""

__version__ = "1.0.0"
__author__ = "Universal Downloader Team"
