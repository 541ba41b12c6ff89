"""Phishing risk scanner for URLs and emails."""

__version__ = "1.0.0"
