"""Tests for pr_reviewer.engine.discovery module."""

import json

import pytest

from pr_reviewer.engine.discovery import build_list_command, list_open_prs, parse_pr_list, select_new_prs
from pr_reviewer.exceptions import CommandError, DiscoveryError
from pr_reviewer.models.domain import OpenPR


def prs(*numbers: int) -> list[OpenPR]:
    return [OpenPR(number=n) for n in numbers]


class TestParsePRList:
    """Test decoding the hosting CLI output."""

    def test_sorted_by_updated_at_descending(self, make_pr_payload):
        """Test the most recently updated PR comes first."""
        payload = json.dumps(
            [
                make_pr_payload(1, "2026-10-01T00:00:00Z"),
                make_pr_payload(2, "2026-10-03T00:00:00Z"),
                make_pr_payload(3, "2026-10-02T00:00:00Z"),
            ]
        )

        assert [pr.number for pr in parse_pr_list(payload)] == [2, 3, 1]

    def test_empty_output_is_empty_list(self):
        """Test blank output means no open PRs."""
        assert parse_pr_list("") == []
        assert parse_pr_list("[]") == []

    @pytest.mark.parametrize("payload", ["not json", '{"number": 1}', '[{"title": "no number"}]'])
    def test_invalid_payload_raises(self, payload):
        """Test undecodable output is a discovery error."""
        with pytest.raises(DiscoveryError):
            parse_pr_list(payload)


class TestSelectNewPRs:
    """Test diffing against the processed set."""

    def test_filters_processed_and_keeps_order(self):
        """Test processed PRs are dropped and discovery order kept."""
        selected = select_new_prs(prs(5, 3, 9, 1), processed={3}, max_prs_per_run=10)

        assert [pr.number for pr in selected] == [5, 9, 1]

    def test_caps_batch(self):
        """Test the batch is truncated to the cap."""
        assert [pr.number for pr in select_new_prs(prs(5, 4, 3), set(), 2)] == [5, 4]

    @pytest.mark.parametrize("cap", [0, -1])
    def test_non_positive_cap_is_unlimited(self, cap):
        """Test a cap of zero or less selects everything."""
        assert len(select_new_prs(prs(1, 2, 3), set(), cap)) == 3

    def test_all_processed(self):
        """Test nothing is selected when every PR was processed."""
        assert select_new_prs(prs(1, 2), {1, 2}, 20) == []


class TestListOpenPRs:
    """Test listing through the hosting CLI."""

    @pytest.mark.asyncio
    async def test_runs_list_command_in_repo(self, fake_shell, settings, make_pr_payload):
        """Test the list command and its working directory."""
        fake_shell.pr_list = [make_pr_payload(8)]

        result = await list_open_prs(settings)

        assert [pr.number for pr in result] == [8]
        command, cwd = fake_shell.calls[-1]
        assert command == build_list_command(settings)
        assert command == "gh pr list --state open --limit 200 --json number,title,headRefName,url,updatedAt"
        assert cwd == settings.repo_path

    @pytest.mark.asyncio
    async def test_list_is_retried(self, fake_shell, settings, make_pr_payload):
        """Test a transient list failure is retried."""
        fake_shell.on(r"pr list", fake_shell.fail(), fake_shell.ok(json.dumps([make_pr_payload(2)])))

        result = await list_open_prs(settings)

        assert [pr.number for pr in result] == [2]
        assert len(fake_shell.commands("pr list")) == 2

    @pytest.mark.asyncio
    async def test_persistent_failure_raises(self, fake_shell, settings):
        """Test exhausting retries propagates the command error."""
        fake_shell.on(r"pr list", fake_shell.fail(stderr="gh: not logged in"))

        with pytest.raises(CommandError, match="not logged in"):
            await list_open_prs(settings)
        assert len(fake_shell.commands("pr list")) == settings.max_command_retries + 1
