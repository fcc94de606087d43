"""Command template expansion.

Review and fix commands are configured as shell command templates with
``{{PLACEHOLDER}}`` tokens. Expansion substitutes every occurrence of each
recognized placeholder; every value except the bare PR number is
single-quoted so titles and URLs with spaces, quotes or shell
metacharacters reach the tool as exactly one argument.

Recognized placeholders:
    {{PR_NUMBER}}       PR number, unquoted digits
    {{PR_TITLE}}        PR title
    {{PR_URL}}          PR URL
    {{PR_BRANCH}}       PR head branch
    {{DEFAULT_BRANCH}}  tracked default branch
    {{REPO_PATH}}       repository path (the per-PR workspace)
    {{WORK_DIR}}        same value as {{REPO_PATH}}
    {{REPORT_PATH}}     markdown report file for this PR

Anything else that looks like a placeholder is left untouched.

Example:
    >>> ctx = TemplateContext(pr=pr, default_branch="main", repo_path="/tmp/w", report_path="/tmp/r.md")
    >>> expand_template("codex review --base {{DEFAULT_BRANCH}}", ctx)
    "codex review --base 'main'"
"""

import re
from dataclasses import dataclass

from pr_reviewer.models.domain import OpenPR

_PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Z_]+)\}\}")

PLACEHOLDERS = (
    "PR_NUMBER",
    "PR_TITLE",
    "PR_URL",
    "PR_BRANCH",
    "DEFAULT_BRANCH",
    "REPO_PATH",
    "WORK_DIR",
    "REPORT_PATH",
)


def sh_quote(value: str) -> str:
    """Quote ``value`` as one POSIX shell word.

    Always quotes, even for values without special characters, so expanded
    commands look the same regardless of the value.
    """
    return "'" + value.replace("'", "'\\''") + "'"


@dataclass(frozen=True)
class TemplateContext:
    """Values available to command templates for one PR."""

    pr: OpenPR
    default_branch: str
    repo_path: str
    report_path: str

    def values(self) -> dict[str, str]:
        return {
            "PR_NUMBER": str(self.pr.number),
            "PR_TITLE": sh_quote(self.pr.title),
            "PR_URL": sh_quote(self.pr.url),
            "PR_BRANCH": sh_quote(self.pr.head_ref_name),
            "DEFAULT_BRANCH": sh_quote(self.default_branch),
            "REPO_PATH": sh_quote(self.repo_path),
            "WORK_DIR": sh_quote(self.repo_path),
            "REPORT_PATH": sh_quote(self.report_path),
        }


def expand_template(template: str, context: TemplateContext) -> str:
    """Substitute all recognized placeholders in ``template``.

    Substitution is a single pass, so placeholder-like text inside a value
    (a PR titled "{{REPORT_PATH}}") is never expanded again.
    """
    values = context.values()

    def replace(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return _PLACEHOLDER_PATTERN.sub(replace, template)
