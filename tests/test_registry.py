"""Tests for the run registry."""

from promptsheet_batch_manager.core.utils.misc import write_yaml
from promptsheet_batch_manager.core.utils.registry import MANAGER_FILENAME, RunRegistry


class TestRunRegistry:
    def test_new_registry_file_is_created(self, tmp_path):
        path = tmp_path / "config" / "runs.yaml"
        registry = RunRegistry(path)
        assert path.exists()
        assert registry.list_runs() == []

    def test_register_and_load_config(self, tmp_path):
        registry = RunRegistry(tmp_path / "runs.yaml")
        folder = tmp_path / "wb"
        folder.mkdir()

        config_path = registry.register_run("demo", folder)
        assert config_path == folder.resolve() / MANAGER_FILENAME
        # Registered but the manager file is not written yet
        assert registry.get_run_config("demo") is None

        write_yaml({"run": "demo", "workbook_folder": str(folder)}, config_path)
        assert registry.get_run_config("demo") == {"run": "demo", "workbook_folder": str(folder)}
        assert registry.get_run_config("other") is None

    def test_reregistering_keeps_creation_date(self, tmp_path):
        registry = RunRegistry(tmp_path / "runs.yaml")
        registry.register_run("demo", tmp_path)
        created_at = registry.list_runs()[0]["created_at"]

        registry.register_run("demo", tmp_path)

        runs = registry.list_runs()
        assert len(runs) == 1
        assert runs[0]["created_at"] == created_at

    def test_unregister(self, tmp_path):
        registry = RunRegistry(tmp_path / "runs.yaml")
        registry.register_run("demo", tmp_path)

        assert registry.unregister_run("demo") is True
        assert registry.unregister_run("demo") is False
        assert registry.list_runs() == []

    def test_cleanup_orphaned_runs(self, tmp_path):
        registry = RunRegistry(tmp_path / "runs.yaml")
        kept = tmp_path / "kept"
        kept.mkdir()
        write_yaml({"run": "kept"}, registry.register_run("kept", kept))
        registry.register_run("gone", tmp_path / "gone")

        assert registry.cleanup_orphaned_runs() == ["gone"]
        assert [run["name"] for run in registry.list_runs()] == ["kept"]
        assert registry.list_runs()[0]["config_exists"] is True

    def test_corrupt_registry_reads_as_empty(self, tmp_path):
        path = tmp_path / "runs.yaml"
        path.write_text("runs: [unclosed", encoding="utf-8")
        assert RunRegistry(path).list_runs() == []
