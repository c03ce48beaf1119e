"""Configuration and constants for promptpatch."""
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

# Constants
DEFAULT_HIDDEN = {
    ".git", ".svn", ".hg", ".DS_Store", "Thumbs.db",
    "__pycache__", ".pytest_cache", ".mypy_cache", ".ruff_cache", ".tox",
    ".vscode", ".idea", ".vs",
    "venv", ".venv", "env", "node_modules", "site-packages", # Python/Node
    "dist", "build", "target", "out", "bin", "obj", # Build artifacts
    "vendor", "coverage"
}

logger = logging.getLogger(__name__)

def get_app_data_dir() -> Path:
    """Get the application data directory for the current platform."""
    override = os.getenv("PROMPTPATCH_HOME")
    if override:
        return Path(override)
    home = Path.home()
    if sys.platform == "win32":
        return Path(os.getenv("APPDATA") or home / "AppData" / "Roaming") / "promptpatch"
    elif sys.platform == "darwin":
        return home / "Library" / "Application Support" / "promptpatch"
    return Path(os.getenv("XDG_CONFIG_HOME") or home / ".config") / "promptpatch"

APP_DATA_DIR = get_app_data_dir()
APP_DATA_DIR.mkdir(parents=True, exist_ok=True)

SETTINGS_FILENAME = "settings.json"
SETTINGS_PATH = APP_DATA_DIR / SETTINGS_FILENAME
DEFAULT_MAX_UNDO_BATCHES = 50

def load_json_file(path: Path | str, default: Any = None) -> Any:
    """Load a JSON file safely."""
    try:
        p = Path(path)
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load JSON {path}: {e}")
    return default

def save_json_file(path: Path | str, data: Any, indent: int = 2) -> bool:
    """Save data to a JSON file safely."""
    try:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent)
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Failed to save JSON {path}: {e}")
        return False

class PromptPatchConfig:
    """User settings backed by settings.json."""

    def __init__(self, settings_path: Path | str = SETTINGS_PATH):
        self.settings_path = Path(settings_path)
        self._settings: dict = load_json_file(self.settings_path, {}) or {}

        self.max_undo_batches = self._settings.get("max_undo_batches", DEFAULT_MAX_UNDO_BATCHES)
        self.strict_search = self._settings.get("strict_search", False)
        self.include_hidden = self._settings.get("include_hidden", False)
        self.use_gitignore = self._settings.get("use_gitignore", True)
        self.include_instructions = self._settings.get("include_instructions", True)

    def _save(self) -> None:
        save_json_file(self.settings_path, self._settings)

    def set_max_undo_batches(self, count: int | None) -> None:
        if count is not None and count < 1:
            raise ValueError("max_undo_batches must be at least 1")
        self.max_undo_batches = count
        self._settings["max_undo_batches"] = count
        self._save()

    def set_strict_search(self, enabled: bool) -> None:
        self.strict_search = enabled
        self._settings["strict_search"] = enabled
        self._save()

    def set_include_hidden(self, enabled: bool) -> None:
        self.include_hidden = enabled
        self._settings["include_hidden"] = enabled
        self._save()

    def set_use_gitignore(self, enabled: bool) -> None:
        self.use_gitignore = enabled
        self._settings["use_gitignore"] = enabled
        self._save()

    def set_include_instructions(self, enabled: bool) -> None:
        self.include_instructions = enabled
        self._settings["include_instructions"] = enabled
        self._save()

config = PromptPatchConfig()
