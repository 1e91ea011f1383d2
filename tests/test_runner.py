"""Tests for the synchronous per-row runner."""

import json

import pytest

from conftest import FakeOpenAIClient, api_error
from promptsheet_batch_manager.core.batching.runner import run_prompts, select_sync_rows
from promptsheet_batch_manager.core.utils.config import Settings
from promptsheet_batch_manager.core.utils.logbook import Logbook
from promptsheet_batch_manager.core.utils.prompts import Prompt
from promptsheet_batch_manager.core.utils.workbook import Workbook

PROMPTS = [
    Prompt(name="Sentiment", text="Classify: {{Text}}", model="gpt-4o-mini", ordinal=0),
    Prompt(name="Tone-Check", text="Tone of {{Text}}", model="gpt-4o", ordinal=1),
]


def _run(workbook_folder, client, max_rows=None, debug=False, prompts=PROMPTS):
    workbook = Workbook(workbook_folder)
    settings = Settings(api_key="sk-test", debug=debug)
    summary = run_prompts(client, workbook, prompts, settings, Logbook(workbook, debug=debug), max_rows=max_rows)
    return summary, Workbook(workbook_folder)


class TestSelectSyncRows:
    def test_only_rows_without_status(self, workbook_folder):
        data = Workbook(workbook_folder).data
        data.set(2, "Status", 1)
        data.set(4, "Status", 2)
        data.set(5, "Batch ID", "some-batch")
        assert select_sync_rows(data, max_rows=3) == [3, 5, 6]

    def test_all_rows(self, workbook_folder):
        assert len(select_sync_rows(Workbook(workbook_folder).data)) == 10


class TestRunPrompts:
    def test_runs_limited_rows_and_marks_them(self, workbook_folder, fake_client):
        summary, reloaded = _run(workbook_folder, fake_client, max_rows=3)

        assert (summary.rows, summary.calls, summary.success, summary.failed) == (3, 6, 6, 0)
        data = reloaded.data
        assert [data.get(row, "Status") for row in range(2, 6)] == ["1", "1", "1", ""]
        assert [data.get(row, "Batch ID") for row in range(2, 6)] == ["0", "0", "0", ""]
        assert data.get(2, "Sentiment - label") == "positive"
        assert data.get(2, "Tone-Check - score") == "0.9"

    def test_prompts_are_rendered_and_sent_with_their_model(self, workbook_folder, fake_client):
        _run(workbook_folder, fake_client, max_rows=1)
        calls = fake_client.chat.completions.calls
        assert [call["model"] for call in calls] == ["gpt-4o-mini", "gpt-4o"]
        assert calls[0]["messages"][-1]["content"] == "Classify: review number 1"
        assert calls[0]["response_format"] == {"type": "json_object"}

    def test_failures_are_logged_and_the_run_continues(self, workbook_folder):
        def responder(body):
            prompt = body["messages"][-1]["content"]
            if prompt == "Tone of review number 2":
                raise api_error("rate limited upstream")
            if prompt == "Classify: review number 3":
                return "not json at all"
            return json.dumps({"label": "ok"})

        summary, reloaded = _run(workbook_folder, FakeOpenAIClient(responder), max_rows=3)

        assert (summary.calls, summary.success, summary.failed) == (6, 4, 2)
        errors = reloaded.sheet("Error Log").records()
        assert [(e["Row"], e["Error Type"]) for e in errors] == [("3", "API Error"), ("4", "Parse Error")]
        # Rows are marked done even when one of their prompts failed
        assert [reloaded.data.get(row, "Status") for row in (2, 3, 4)] == ["1", "1", "1"]

    def test_second_run_skips_done_rows(self, workbook_folder, fake_client):
        _run(workbook_folder, fake_client, max_rows=4)
        summary, _ = _run(workbook_folder, fake_client)
        assert summary.rows == 6

    def test_nothing_to_run(self, workbook_folder, fake_client):
        summary, _ = _run(workbook_folder, fake_client, prompts=[])
        assert summary.calls == 0
        assert fake_client.chat.completions.calls == []

    def test_cost_summary_per_prompt(self, workbook_folder, fake_client):
        summary, reloaded = _run(workbook_folder, fake_client, max_rows=2)
        records = reloaded.sheet("Cost Summary").records()
        assert [r["Prompt Title"] for r in records] == ["Sentiment", "Tone-Check"]
        assert [r["No. of Rows Executed"] for r in records] == ["2", "2"]
        assert records[0]["Total Input Tokens"] == "200"
        # 2 calls of 100 input / 50 output tokens at standard gpt-4o-mini rates
        assert float(records[0]["Total Cost (USD)"]) == pytest.approx(2 * (100 * 0.15 + 50 * 0.6) / 1e6, abs=1e-6)
        assert summary.cost == pytest.approx(sum(float(r["Total Cost (USD)"]) for r in records), abs=1e-5)

    def test_execution_log_in_debug(self, workbook_folder, fake_client):
        _, reloaded = _run(workbook_folder, fake_client, max_rows=1, debug=True)
        records = reloaded.sheet("Execution Log").records()
        assert len(records) == 2
        assert records[0]["Prompt Sent"] == "Classify: review number 1"
