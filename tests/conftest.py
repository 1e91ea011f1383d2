"""Shared fixtures: an in-memory OpenAI client and small workbooks on disk."""

import copy
import json
import time
from pathlib import Path
from types import SimpleNamespace

import httpx
import openai
import polars as pl
import pytest

from promptsheet_batch_manager.core.utils import registry as registry_module
from promptsheet_batch_manager.core.utils.registry import RunRegistry

# =============================================================================
# Fake OpenAI client
# =============================================================================


class FakeObject:
    """Attribute access over a dict, with the SDK's model_dump()."""

    def __init__(self, data: dict):
        self._data = data

    def __getattr__(self, name):
        if name == "_data":
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(name) from None

    def model_dump(self) -> dict:
        return copy.deepcopy(self._data)


class FakeFiles:
    def __init__(self):
        self.contents: dict[str, str] = {}
        self.uploads: list[str] = []
        self.downloads: list[str] = []

    def create(self, file, purpose):
        file_id = f"file-{len(self.contents) + 1}"
        data = file.read()
        self.contents[file_id] = data.decode("utf-8") if isinstance(data, bytes) else data
        self.uploads.append(file_id)
        return FakeObject({"id": file_id, "purpose": purpose})

    def content(self, file_id):
        self.downloads.append(file_id)
        return SimpleNamespace(content=self.contents[file_id].encode("utf-8"))


class FakeBatches:
    def __init__(self, files: FakeFiles):
        self.files = files
        self.batches: dict[str, dict] = {}
        self.retrieved: list[str] = []

    def create(self, input_file_id, endpoint, completion_window):
        batch_id = f"batch_{len(self.batches) + 1}"
        n_lines = len([line for line in self.files.contents[input_file_id].splitlines() if line.strip()])
        self.batches[batch_id] = {
            "id": batch_id,
            "object": "batch",
            "endpoint": endpoint,
            "completion_window": completion_window,
            "status": "validating",
            "created_at": int(time.time()),
            "input_file_id": input_file_id,
            "output_file_id": None,
            "error_file_id": None,
            "request_counts": {"total": n_lines, "completed": 0, "failed": 0},
        }
        return FakeObject(copy.deepcopy(self.batches[batch_id]))

    def list(self, limit=100):
        return [FakeObject(copy.deepcopy(batch)) for batch in reversed(self.batches.values())]

    def retrieve(self, batch_id):
        self.retrieved.append(batch_id)
        return FakeObject(copy.deepcopy(self.batches[batch_id]))

    def cancel(self, batch_id):
        self.batches[batch_id]["status"] = "cancelling"
        return FakeObject(copy.deepcopy(self.batches[batch_id]))


class FakeCompletions:
    def __init__(self, responder):
        self.responder = responder
        self.calls: list[dict] = []

    def create(self, **body):
        self.calls.append(body)
        content = self.responder(body)
        return SimpleNamespace(
            model=body["model"],
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=50, total_tokens=150),
        )


def default_responder(body: dict) -> str:
    return json.dumps({"label": "positive", "score": 0.9})


class FakeOpenAIClient:
    """Just enough of openai.OpenAI for files, batches and chat completions."""

    def __init__(self, responder=default_responder):
        self.files = FakeFiles()
        self.batches = FakeBatches(self.files)
        self.chat = SimpleNamespace(completions=FakeCompletions(responder))

    def input_requests(self, batch_id: str) -> list[dict]:
        input_file_id = self.batches.batches[batch_id]["input_file_id"]
        return [json.loads(line) for line in self.files.contents[input_file_id].splitlines() if line.strip()]

    def complete_batch(self, batch_id: str, lines: list[dict] | None = None) -> str:
        """Mark a batch completed with the given output lines (all successful by default)."""
        if lines is None:
            lines = [
                result_line(request["custom_id"], json.dumps({"label": "positive"}))
                for request in self.input_requests(batch_id)
            ]
        output_file_id = f"file-{len(self.files.contents) + 1}"
        self.files.contents[output_file_id] = "".join(json.dumps(line) + "\n" for line in lines)
        failed = sum(1 for line in lines if line.get("error"))
        batch = self.batches.batches[batch_id]
        batch["status"] = "completed"
        batch["output_file_id"] = output_file_id
        batch["request_counts"] = {"total": len(lines), "completed": len(lines) - failed, "failed": failed}
        return output_file_id


def result_line(custom_id: str, content: str | None = None, error: dict | None = None,
                status_code: int = 200, model: str = "gpt-4o-mini-2024-07-18") -> dict:
    """One line of a batch output document."""
    if error is not None:
        return {"id": f"req_{custom_id}", "custom_id": custom_id, "response": None, "error": error}
    return {
        "id": f"req_{custom_id}",
        "custom_id": custom_id,
        "response": {
            "status_code": status_code,
            "request_id": f"request-{custom_id}",
            "body": {
                "model": model,
                "choices": [{
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }],
                "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
            },
        },
        "error": None,
    }


def api_error(message: str = "boom") -> openai.APIError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.APIError(message, request=request, body=None)


# =============================================================================
# Workbooks
# =============================================================================


def write_sheet(folder: Path, name: str, columns: dict) -> Path:
    path = folder / f"{name}.csv"
    pl.DataFrame(columns, schema={column: pl.String for column in columns}).write_csv(path)
    return path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep settings independent of the developer's environment."""
    for name in ["OPENAI_API_KEY", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT",
                 "PSBM_DEFAULT_MODEL", "PSBM_DEBUG", "PSBM_BATCH_SIZE",
                 "PSBM_MAX_TOKENS", "PSBM_SYNC_PRICING"]:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_client() -> FakeOpenAIClient:
    return FakeOpenAIClient()


@pytest.fixture
def workbook_folder(tmp_path: Path) -> Path:
    """Ten data rows (sheet rows 2-11) and two active prompts."""
    folder = tmp_path / "workbook"
    folder.mkdir()
    write_sheet(folder, "Data", {
        "Text": [f"review number {i}" for i in range(1, 11)],
        "Lang": ["en"] * 10,
    })
    write_sheet(folder, "Prompts", {
        "Prompt Name": ["Sentiment", "Tone-Check"],
        "Prompt Text": ["Classify the sentiment of: {{Text}}", "Describe the tone of {{ Text }} ({{Lang}})"],
        "Model": ["", "gpt-4o"],
        "Active": ["1", "TRUE"],
    })
    write_sheet(folder, "Config", {
        "Key": ["API_KEY", "DEFAULT_MODEL", "DEBUG", "BATCH_SIZE"],
        "Value": ["sk-test", "gpt-4o-mini", "false", "2000"],
    })
    return folder


@pytest.fixture
def isolated_registry(tmp_path: Path, monkeypatch) -> RunRegistry:
    """Global run registry stored under tmp_path."""
    registry = RunRegistry(tmp_path / "config" / "runs_registry.yaml")
    monkeypatch.setattr(registry_module, "_registry", registry)
    return registry
