"""
Configuration system using Pydantic for type-safe settings management.

Settings are stored as YAML in the store root (``settings.yaml``). Values
may reference environment variables with ``${VAR}`` or ``${VAR:-default}``,
and any field absent from the file can be supplied through a
``PR_REVIEWER_``-prefixed environment variable
(``PR_REVIEWER_MAX_CONCURRENT_PRS=4``).
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import structlog
import yaml
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pr_reviewer.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

DEFAULT_REVIEW_TEMPLATE = "codex review --base {{DEFAULT_BRANCH}}"
DEFAULT_FIX_TEMPLATE = (
    'codex exec "You are in a checked-out PR branch. Read findings and fix issues for '
    "PR #{{PR_NUMBER}} ({{PR_TITLE}}). Use report context at {{REPORT_PATH}} when relevant. "
    'Make minimal safe changes and update tests if needed."'
)


class ReviewerSettings(BaseSettings):
    """Engine settings.

    Read-only to the engine. ``repo_path`` must be set before any run starts;
    everything else has a working default.
    """

    model_config = SettingsConfigDict(
        env_prefix="PR_REVIEWER_",
        case_sensitive=False,
        extra="ignore",
    )

    repo_path: str = Field(default="", description="Local working tree of the tracked repository")
    repo_clone_url: str = Field(
        default="", description="Clone URL used to bootstrap repo_path when it is missing or empty"
    )
    default_branch: str = Field(default="main", description="Branch synced before every run")
    max_prs_per_run: int = Field(default=20, description="New PRs processed per run (0 or less = unlimited)")
    max_concurrent_prs: int = Field(default=2, description="Worker pool size (floored at 1)")
    max_command_retries: int = Field(default=2, ge=0, description="Retries after the first attempt")
    retry_delay_seconds: int = Field(default=15, ge=0, description="Fixed delay between attempts (floored at 1)")
    review_command_template: str = Field(default=DEFAULT_REVIEW_TEMPLATE, description="Review command template")
    fix_command_template: str = Field(default=DEFAULT_FIX_TEMPLATE, description="Fix command template")
    auto_push_enabled: bool = Field(default=True, description="Commit and push fixes after the fix command")
    hosting_cli: str = Field(default="gh", description="PR-hosting CLI executable")
    agent_executable: str = Field(default="codex", description="Review/fix agent executable")
    pr_list_limit: int = Field(default=200, ge=1, description="Maximum PRs requested from the hosting CLI")

    @model_validator(mode="after")
    def migrate_legacy_templates(self) -> ReviewerSettings:
        """Replace templates written for retired agent CLI flags with the current defaults."""
        review = self.review_command_template
        if (
            "codex review --pr" in review
            or "--repo {{REPO_PATH}}" in review
            or ("codex review --base" in review and ("{{PR_" in review or '"Review ' in review))
        ):
            self.review_command_template = DEFAULT_REVIEW_TEMPLATE
        if self.fix_command_template.lstrip().startswith("codex fix"):
            self.fix_command_template = DEFAULT_FIX_TEMPLATE
        return self

    @property
    def worker_count(self) -> int:
        return max(1, self.max_concurrent_prs)

    @property
    def required_executables(self) -> list[str]:
        return ["git", self.hosting_cli, self.agent_executable]

    def require_repo_path(self) -> str:
        """Return ``repo_path`` or raise if it is not configured."""
        if not self.repo_path.strip():
            raise ConfigurationError("repo_path is empty in settings")
        return self.repo_path

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> ReviewerSettings:
        """Load settings from YAML file with environment variable interpolation.

        Raises:
            ConfigurationError: If the file is missing, unreadable, not a
                mapping, or fails validation
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e
        except UnicodeDecodeError as e:
            raise ConfigurationError(f"Configuration file is not valid UTF-8: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @classmethod
    def load_or_default(cls, config_path: str | Path) -> ReviewerSettings:
        """Load settings, falling back to defaults when the file is missing or invalid.

        A missing file is normal on first use; an invalid one is logged so
        the operator can fix it, but never aborts loading.
        """
        if not Path(config_path).exists():
            return cls()
        try:
            return cls.from_yaml(config_path)
        except ConfigurationError as e:
            log.warning("settings_invalid_using_defaults", path=str(config_path), error=e.message)
            return cls()

    def to_yaml(self, config_path: str | Path) -> None:
        """Write settings as YAML (used by ``pr-reviewer init``)."""
        path = Path(config_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(self.model_dump(), sort_keys=False, allow_unicode=True), encoding="utf-8")

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports ``${VAR_NAME}`` (required) and ``${VAR_NAME:-default}``.
        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
