"""Tests for pr_reviewer.models.domain and pr_reviewer.enums."""

import json

from pr_reviewer.enums import ExecutionStage, RunStatus
from pr_reviewer.models.domain import (
    MAX_LOG_LINES,
    SCHEMA_VERSION,
    EngineState,
    OpenPR,
    PRExecutionResult,
    RunSnapshot,
)


class TestOpenPR:
    """Test decoding of the hosting CLI's PR objects."""

    def test_decodes_camel_case_keys(self):
        """Test gh JSON keys map onto model fields."""
        pr = OpenPR.model_validate(
            {
                "number": 12,
                "title": "Add caching",
                "headRefName": "feature/cache",
                "url": "https://git.example.com/pull/12",
                "updatedAt": "2026-10-02T08:00:00Z",
            }
        )

        assert pr.number == 12
        assert pr.head_ref_name == "feature/cache"
        assert pr.updated_at == "2026-10-02T08:00:00Z"

    def test_missing_optional_fields_default(self):
        """Test only the number is required."""
        pr = OpenPR.model_validate({"number": 3})

        assert pr.title == ""
        assert pr.head_ref_name == ""


class TestEngineState:
    """Test the processed-set record."""

    def test_processed_numbers_sorted_and_unique(self):
        """Test loading normalizes the processed list."""
        state = EngineState.model_validate({"processedPRNumbers": [9, 3, 9, 1]})

        assert state.processed_pr_numbers == [1, 3, 9]

    def test_mark_processed_only_grows(self):
        """Test marking is a set union that never removes numbers."""
        state = EngineState(processed_pr_numbers=[1, 5])

        state.mark_processed({5, 2})
        state.mark_processed(set())

        assert state.processed_pr_numbers == [1, 2, 5]

    def test_json_uses_camel_case_and_schema_version(self):
        """Test the persisted form uses the documented keys."""
        payload = json.loads(EngineState(processed_pr_numbers=[4]).to_json())

        assert payload == {"schemaVersion": SCHEMA_VERSION, "processedPRNumbers": [4], "lastRunAt": None}

    def test_older_record_fills_missing_fields(self):
        """Test a record without newer fields still loads with defaults."""
        state = EngineState.model_validate_json('{"processedPRNumbers": [7]}')

        assert state.schema_version == SCHEMA_VERSION
        assert state.last_run_at is None
        assert state.processed_set == {7}


class TestPRExecutionResult:
    """Test per-PR result records."""

    def test_exit_codes_default_to_none(self):
        """Test steps that never ran have no exit code."""
        result = PRExecutionResult(number=1)

        assert result.review_exit_code is None
        assert result.fix_exit_code is None
        assert not result.failed

    def test_failed_when_error_message_set(self):
        """Test a result with an error message counts as failed."""
        assert PRExecutionResult(number=1, error_message="Command failed").failed


class TestRunSnapshot:
    """Test snapshot mutation helpers."""

    def test_start_sets_running(self):
        """Test a new run starts in the syncing stage."""
        snapshot = RunSnapshot.start()

        assert snapshot.status == RunStatus.RUNNING
        assert snapshot.stage == ExecutionStage.SYNCING_REPO
        assert snapshot.started_at is not None
        assert snapshot.finished_at is None

    def test_log_tail_is_bounded(self):
        """Test only the newest lines are kept."""
        snapshot = RunSnapshot()

        snapshot.extend_logs([f"line {i}" for i in range(MAX_LOG_LINES + 20)])
        snapshot.append_log("last")

        assert len(snapshot.log_lines) == MAX_LOG_LINES
        assert snapshot.log_lines[0] == "line 21"
        assert snapshot.log_lines[-1].endswith("] last")

    def test_merge_result_replaces_and_sorts(self):
        """Test merging keeps one entry per PR, ascending by number."""
        snapshot = RunSnapshot()

        snapshot.merge_result(PRExecutionResult(number=11))
        snapshot.merge_result(PRExecutionResult(number=3))
        snapshot.merge_result(PRExecutionResult(number=11, error_message="retry failed"))

        assert [item.number for item in snapshot.report] == [3, 11]
        assert snapshot.report[1].error_message == "retry failed"

    def test_finish_sets_terminal_stage(self):
        """Test finishing maps status onto the terminal stage."""
        succeeded = RunSnapshot.start()
        succeeded.finish(RunStatus.SUCCEEDED)
        failed = RunSnapshot.start()
        failed.finish(RunStatus.FAILED, "2 PR(s) failed. Check reports and logs.")

        assert succeeded.stage == ExecutionStage.COMPLETED
        assert succeeded.finished_at is not None
        assert failed.stage == ExecutionStage.FAILED
        assert failed.error_message == "2 PR(s) failed. Check reports and logs."

    def test_round_trip_preserves_enums(self):
        """Test stage and status serialize to their wire values."""
        snapshot = RunSnapshot.start()
        snapshot.stage = ExecutionStage.PUSHING_CHANGES

        payload = json.loads(snapshot.to_json())

        assert payload["status"] == "running"
        assert payload["stage"] == "pushingChanges"
        assert RunSnapshot.model_validate(payload).stage == ExecutionStage.PUSHING_CHANGES


class TestEnums:
    """Test enum presentation."""

    def test_stage_display_names(self):
        """Test every stage has a human-readable name."""
        for stage in ExecutionStage:
            assert stage.display_name

    def test_str_is_wire_value(self):
        """Test str() gives the serialized value."""
        assert str(RunStatus.SUCCEEDED) == "succeeded"
        assert str(ExecutionStage.LOADING_PRS) == "loadingPRs"
