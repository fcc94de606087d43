"""Automated pull request review and fix engine."""

__version__ = "0.1.0"
