"""Shared utilities: command execution, retries, templates, logging."""
