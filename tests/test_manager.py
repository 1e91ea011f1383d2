"""End-to-end tests for PromptSheetManager against the in-memory client."""

import json

import pytest
from filelock import FileLock

from conftest import api_error, result_line, write_sheet
from promptsheet_batch_manager.core.batching import pricing
from promptsheet_batch_manager.core.batching.manager import PromptSheetManager, initialize_workbook
from promptsheet_batch_manager.core.errors import (
    BatchTooLargeError,
    NoEligibleRowsError,
    OperationInProgressError,
    PreconditionError,
    RemoteAPIError,
)
from promptsheet_batch_manager.core.utils.locking import lock_path
from promptsheet_batch_manager.core.utils.workbook import Workbook


class WordEncoding:
    def encode(self, text):
        return text.split()


def _statuses(folder):
    data = Workbook(folder).data
    return [data.get(row, "Status") for row in data.ordinals()]


def _batch_ids(folder):
    data = Workbook(folder).data
    return [data.get(row, "Batch ID") for row in data.ordinals()]


class TestCreateBatch:
    def test_submits_every_row_and_prompt(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        result = manager.create_batch()

        assert result.n_requests == 20
        assert (result.start, result.end, result.remaining) == (2, 11, 0)
        requests = fake_client.input_requests(result.provider_id)
        assert len({request["custom_id"] for request in requests}) == 20
        assert (workbook_folder / "batches" / result.local_id / "input.jsonl").exists()

        assert _statuses(workbook_folder) == ["1"] * 10
        assert _batch_ids(workbook_folder) == [result.local_id] * 10

        records = manager.list_batches()
        assert len(records) == 1
        assert records[0].local_id == result.local_id
        assert records[0].provider_id == result.provider_id
        assert records[0].total == 20

    def test_batch_size_from_config(self, workbook_folder, fake_client):
        write_sheet(workbook_folder, "Config", {"Key": ["API_KEY", "BATCH_SIZE"], "Value": ["sk", "4"]})
        manager = PromptSheetManager(fake_client, workbook_folder)
        first = manager.create_batch()
        second = manager.create_batch()

        assert (first.start, first.end, first.remaining) == (2, 5, 6)
        assert (second.start, second.end, second.remaining) == (6, 9, 2)
        assert first.local_id != second.local_id
        assert len(manager.list_batches()) == 2

    def test_no_eligible_rows(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        manager.create_batch()
        with pytest.raises(NoEligibleRowsError):
            manager.create_batch()
        assert len(fake_client.files.uploads) == 1

    def test_no_active_prompts(self, workbook_folder, fake_client):
        write_sheet(workbook_folder, "Prompts", {"Prompt Name": ["A"], "Prompt Text": ["a"], "Active": ["0"]})
        with pytest.raises(PreconditionError):
            PromptSheetManager(fake_client, workbook_folder).create_batch()

    def test_too_many_requests_uploads_nothing(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder, max_requests_per_batch=2)
        with pytest.raises(BatchTooLargeError):
            manager.create_batch()

        assert fake_client.files.uploads == []
        assert fake_client.batches.batches == {}
        assert manager.list_batches() == []
        assert _statuses(workbook_folder) == [""] * 10
        assert not (workbook_folder / "batches").exists()

    def test_document_too_large_uploads_nothing(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder, max_batch_file_bytes=100)
        with pytest.raises(PreconditionError):
            manager.create_batch()
        assert fake_client.files.uploads == []

    def test_provider_rejection_leaves_rows_untouched(self, workbook_folder, fake_client, monkeypatch):
        def reject(**kwargs):
            raise api_error("invalid batch")
        monkeypatch.setattr(fake_client.batches, "create", reject)

        manager = PromptSheetManager(fake_client, workbook_folder)
        with pytest.raises(RemoteAPIError):
            manager.create_batch()
        assert manager.list_batches() == []
        assert _statuses(workbook_folder) == [""] * 10

    def test_lock_held_elsewhere(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        with FileLock(str(lock_path(workbook_folder))):
            with pytest.raises(OperationInProgressError):
                manager.create_batch()
        assert fake_client.files.uploads == []


class TestProcessing:
    def test_full_cycle(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        submission = manager.create_batch()

        assert manager.process_next() == (None, None)
        assert manager.list_batches()[0].status == "validating"

        fake_client.complete_batch(submission.provider_id)
        record, summary = manager.process_next()

        assert record.local_id == submission.local_id
        assert (summary.total, summary.success, summary.failed) == (20, 20, 0)
        assert _statuses(workbook_folder) == ["2"] * 10
        data = Workbook(workbook_folder).data
        assert data.get(2, "Sentiment - label") == "positive"
        assert data.get(11, "Tone-Check - label") == "positive"
        assert (workbook_folder / "batches" / submission.local_id / "output.jsonl").exists()

        stored = manager.list_batches()[0]
        assert stored.processed and stored.status == "processed"
        assert manager.list_batches(status="processed") == [stored]

        assert manager.process_next() == (None, None)

    def test_reprocessing_returns_stored_summary_without_download(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        submission = manager.create_batch()
        fake_client.complete_batch(submission.provider_id)
        _, first = manager.process_next()
        downloads = list(fake_client.files.downloads)

        again = manager.process_batch(submission.local_id)
        by_provider_id = manager.process_batch(submission.provider_id)

        assert again == first == by_provider_id
        assert fake_client.files.downloads == downloads

    def test_partial_failures(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        submission = manager.create_batch()
        requests = fake_client.input_requests(submission.provider_id)
        lines = [result_line(r["custom_id"], json.dumps({"label": "x"})) for r in requests]
        lines[0] = result_line(requests[0]["custom_id"], error={"code": "server_error", "message": "boom"})
        fake_client.complete_batch(submission.provider_id, lines)

        summary = manager.process_batch(submission.local_id)

        assert (summary.total, summary.success, summary.failed) == (20, 19, 1)
        errors = Workbook(workbook_folder).sheet("Error Log").records()
        assert [(e["Row"], e["Error Type"], e["Batch ID"]) for e in errors] == [
            ("2", "API Error", submission.local_id)
        ]
        # Row 2 still got its second prompt
        assert _statuses(workbook_folder)[0] == "2"

    def test_odd_line_does_not_block_later_batches(self, workbook_folder, fake_client):
        write_sheet(workbook_folder, "Config", {"Key": ["API_KEY", "BATCH_SIZE"], "Value": ["sk", "5"]})
        manager = PromptSheetManager(fake_client, workbook_folder)
        first = manager.create_batch()
        second = manager.create_batch()

        requests = fake_client.input_requests(first.provider_id)
        lines = [result_line(r["custom_id"], json.dumps({"label": "x"})) for r in requests]
        lines[1]["response"] = "oops"
        lines[2]["response"]["body"]["usage"] = {"prompt_tokens": "lots"}
        fake_client.complete_batch(first.provider_id, lines)
        fake_client.complete_batch(second.provider_id)

        record, summary = manager.process_next()
        assert record.local_id == first.local_id
        assert (summary.total, summary.success, summary.failed) == (10, 9, 1)

        record, summary = manager.process_next()
        assert record.local_id == second.local_id
        assert (summary.total, summary.success, summary.failed) == (10, 10, 0)
        assert _statuses(workbook_folder) == ["2"] * 10
        assert all(stored.processed for stored in manager.list_batches())

    def test_process_unknown_or_unfinished_batch(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        with pytest.raises(PreconditionError):
            manager.process_batch("nope")
        submission = manager.create_batch()
        with pytest.raises(PreconditionError, match="not ready"):
            manager.process_batch(submission.local_id)

    def test_check_status_updates_ledger(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        submission = manager.create_batch()
        fake_client.batches.batches[submission.provider_id]["status"] = "in_progress"

        result = manager.check_status()

        assert result.updated == 1
        record = manager.list_batches()[0]
        assert record.status == "in_progress"
        assert record.last_checked_at
        assert _statuses(workbook_folder) == ["1"] * 10

    def test_check_status_lock_held_elsewhere(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        with FileLock(str(lock_path(workbook_folder))):
            with pytest.raises(OperationInProgressError):
                manager.check_status()


class TestCancel:
    def test_cancel_records_status_and_keeps_rows(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        submission = manager.create_batch()

        record = manager.cancel_batch(submission.local_id)

        assert record.status == "cancelling"
        assert manager.list_batches()[0].status == "cancelling"
        assert _statuses(workbook_folder) == ["1"] * 10

    def test_cancel_unknown(self, workbook_folder, fake_client):
        with pytest.raises(PreconditionError):
            PromptSheetManager(fake_client, workbook_folder).cancel_batch("nope")


class TestSyncRunAndEstimate:
    def test_run(self, workbook_folder, fake_client):
        summary = PromptSheetManager(fake_client, workbook_folder).run(max_rows=2)
        assert (summary.rows, summary.calls) == (2, 4)
        assert _batch_ids(workbook_folder)[:3] == ["0", "0", ""]

    def test_batch_after_sync_run_skips_done_rows(self, workbook_folder, fake_client):
        manager = PromptSheetManager(fake_client, workbook_folder)
        manager.run(max_rows=3)
        submission = manager.create_batch()
        assert (submission.start, submission.n_requests) == (5, 14)

    def test_estimate_uses_prompt_models_or_overrides(self, workbook_folder, monkeypatch):
        monkeypatch.setattr(pricing, "get_encoding", lambda model: WordEncoding())
        manager = PromptSheetManager(None, workbook_folder)

        estimates = manager.estimate_batch_cost()
        assert list(estimates) == [None]
        assert estimates[None]["requests"] == 20

        estimates = manager.estimate_batch_cost(models=["gpt-4o-mini", "gpt-4o"])
        assert estimates["gpt-4o"]["cost"] > estimates["gpt-4o-mini"]["cost"]
        assert _statuses(workbook_folder) == [""] * 10


class TestInitializeWorkbook:
    def test_creates_template_sheets(self, tmp_path):
        folder = tmp_path / "new"
        created = initialize_workbook(folder)

        assert set(created) == {"Data", "Prompts", "Config", "Batch Status"}
        workbook = Workbook(folder)
        assert workbook.data.headers == ["Status", "Batch ID"]
        assert workbook.sheet("Prompts").headers == ["Prompt Name", "Prompt Text", "Model", "Active"]
        keys = [r["Key"] for r in workbook.sheet("Config").records()]
        assert keys == ["API_KEY", "DEFAULT_MODEL", "DEBUG", "BATCH_SIZE", "MAX_TOKENS", "SYNC_PRICING"]

    def test_existing_workbook_is_kept(self, workbook_folder):
        created = initialize_workbook(workbook_folder)

        assert "Data" not in created and "Prompts" not in created
        workbook = Workbook(workbook_folder)
        assert workbook.data.n_rows == 10
        config = {r["Key"]: r["Value"] for r in workbook.sheet("Config").records()}
        assert config["API_KEY"] == "sk-test"
        assert config["MAX_TOKENS"] == "256"
        assert initialize_workbook(workbook_folder) == []
