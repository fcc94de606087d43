"""Configuration system for the review engine.

Example:
    >>> from pr_reviewer.config import ReviewerSettings
    >>> settings = ReviewerSettings.from_yaml("~/.pr-reviewer/settings.yaml")
    >>> settings.max_concurrent_prs
    2
"""

from pr_reviewer.config.settings import ReviewerSettings

__all__ = ["ReviewerSettings"]
