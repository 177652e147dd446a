"""Render a single URI to a PDF or PNG file with headless Chromium."""

__version__ = "1.0.0"
