# -*- coding: utf-8 -*-

"""
Per-user registry mapping run names to workbook folders.

Each run keeps its own ManagerFile.yaml inside the workbook folder; the
registry only remembers where that file lives.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import platformdirs

from .misc import read_yaml, write_yaml


MANAGER_FILENAME = "ManagerFile.yaml"

_registry = None


class RunRegistry:
    """Registry of runs stored as YAML in the user config directory."""

    def __init__(self, registry_path: Optional[Path] = None):
        self.registry_path = Path(registry_path) if registry_path else self._default_registry_path()
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.registry_path.exists():
            self._save({"runs": {}})

    @staticmethod
    def _default_registry_path() -> Path:
        config_dir = platformdirs.user_config_dir("promptsheet-batch-manager", "promptsheet")
        return Path(config_dir) / "runs_registry.yaml"

    def _load(self) -> Dict:
        try:
            registry = read_yaml(self.registry_path) or {}
        except Exception as e:
            logging.warning(f"Error loading registry: {e}. Starting with an empty registry.")
            registry = {}
        registry.setdefault("runs", {})
        return registry

    def _save(self, registry: Dict):
        write_yaml(registry, self.registry_path)

    def register_run(self, run_name: str, workbook_folder: str | Path) -> Path:
        """
        Register a run. Returns the path of its manager file, which the
        caller is expected to write.
        """
        workbook_folder = Path(workbook_folder).resolve()
        config_path = workbook_folder / MANAGER_FILENAME
        registry = self._load()
        now = datetime.now().isoformat()
        previous = registry["runs"].get(run_name, {})
        registry["runs"][run_name] = {
            "config_path": str(config_path),
            "workbook_folder": str(workbook_folder),
            "created_at": previous.get("created_at", now),
            "last_accessed": now,
        }
        self._save(registry)
        logging.debug(f"Registered run '{run_name}' in global registry")
        return config_path

    def get_run_config(self, run_name: str) -> Optional[Dict]:
        """Load the manager file of a run, or None when unknown or missing."""
        registry = self._load()
        run_info = registry["runs"].get(run_name)
        if not run_info:
            return None

        config_path = Path(run_info["config_path"])
        if not config_path.exists():
            logging.warning(f"Manager file for run '{run_name}' no longer exists: {config_path}")
            return None

        run_info["last_accessed"] = datetime.now().isoformat()
        self._save(registry)

        try:
            return read_yaml(config_path)
        except Exception as e:
            logging.error(f"Error loading config for run '{run_name}': {e}")
            return None

    def list_runs(self) -> List[Dict]:
        """Registered runs, most recently used first."""
        runs = [
            {
                "name": run_name,
                "workbook_folder": run_info["workbook_folder"],
                "created_at": run_info["created_at"],
                "last_accessed": run_info["last_accessed"],
                "config_exists": Path(run_info["config_path"]).exists(),
            }
            for run_name, run_info in self._load()["runs"].items()
        ]
        return sorted(runs, key=lambda x: x["last_accessed"], reverse=True)

    def unregister_run(self, run_name: str) -> bool:
        registry = self._load()
        if run_name not in registry["runs"]:
            return False
        del registry["runs"][run_name]
        self._save(registry)
        logging.info(f"Unregistered run '{run_name}' from global registry")
        return True

    def cleanup_orphaned_runs(self) -> List[str]:
        """Remove runs whose manager files no longer exist."""
        registry = self._load()
        orphaned = [
            run_name for run_name, run_info in registry["runs"].items()
            if not Path(run_info["config_path"]).exists()
        ]
        for run_name in orphaned:
            del registry["runs"][run_name]
        if orphaned:
            self._save(registry)
            logging.info(f"Cleaned up {len(orphaned)} orphaned runs: {orphaned}")
        return orphaned


def get_registry() -> RunRegistry:
    """Get the global run registry instance."""
    global _registry
    if _registry is None:
        _registry = RunRegistry()
    return _registry
