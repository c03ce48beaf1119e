import pytest
import shutil
import tempfile
import os
import stat
import logging
from pathlib import Path
from unittest.mock import patch

# Keep the import-time app data folder out of the user's profile
os.environ.setdefault("PROMPTPATCH_HOME", tempfile.mkdtemp(prefix="promptpatch_test_"))

from patchcore import config, ChangeAction, ChangeOperation, FileChange, LocalFileStore

# Helper for Windows permission removal
def remove_readonly(func, path, _):
    os.chmod(path, stat.S_IWRITE)
    func(path)

@pytest.fixture
def temp_cwd():
    """Create a temporary directory and change CWD to it."""
    orig_cwd = os.getcwd()
    temp_dir = tempfile.mkdtemp()
    os.chdir(temp_dir)
    yield Path(temp_dir).resolve()
    os.chdir(orig_cwd)
    shutil.rmtree(temp_dir, onerror=remove_readonly)

@pytest.fixture
def store(temp_cwd):
    """A LocalFileStore rooted at the temporary CWD."""
    return LocalFileStore([temp_cwd])

@pytest.fixture(autouse=True)
def mock_app_data(tmp_path, monkeypatch):
    """Redirect all app data writes to a temp directory and reset settings."""
    temp_app_data = tmp_path / "promptpatch_test_appdata"
    temp_app_data.mkdir(parents=True, exist_ok=True)

    monkeypatch.setattr(config, "settings_path", temp_app_data / "settings.json")
    monkeypatch.setattr(config, "_settings", {})
    monkeypatch.setattr(config, "max_undo_batches", 50)
    monkeypatch.setattr(config, "strict_search", False)
    monkeypatch.setattr(config, "include_hidden", False)
    monkeypatch.setattr(config, "use_gitignore", True)
    monkeypatch.setattr(config, "include_instructions", True)

    with patch("application_state.SELECTION_PATH", str(temp_app_data / "selection.json")), \
         patch("application_state.HISTORY_DIR", temp_app_data / "history"), \
         patch("application_state.LOG_DIR", temp_app_data / "logs"), \
         patch("cli.APP_DATA_DIR", temp_app_data):
         yield temp_app_data

@pytest.fixture(autouse=True)
def restore_root_logging():
    """setup_logging replaces root handlers; put pytest's back afterwards."""
    root_logger = logging.getLogger()
    handlers, level = root_logger.handlers[:], root_logger.level
    yield
    for h in root_logger.handlers[:]:
        if h not in handlers:
            root_logger.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root_logger.handlers:
            root_logger.addHandler(h)
    root_logger.setLevel(level)

def create(path: str, content: str) -> FileChange:
    return FileChange(path, ChangeAction.CREATE, (ChangeOperation(content=content),))

def rewrite(path: str, content: str) -> FileChange:
    return FileChange(path, ChangeAction.REWRITE, (ChangeOperation(content=content),))

def modify(path: str, *pairs: tuple[str, str]) -> FileChange:
    """Build a Modify change from (search, content) pairs."""
    return FileChange(path, ChangeAction.MODIFY, tuple(ChangeOperation(content=c, search=s) for s, c in pairs))

def delete(path: str) -> FileChange:
    return FileChange(path, ChangeAction.DELETE)

def file_block(path: str, action: str, *changes: str) -> str:
    """Wrap change bodies in a <file> block."""
    inner = "\n".join(changes)
    return f'<file path="{path}" action="{action}">\n{inner}\n</file>'

def change_block(content: str, search: str | None = None, description: str | None = None) -> str:
    """A <change> element with ===-framed bodies."""
    parts = ["<change>"]
    if description is not None:
        parts.append(f"<description>{description}</description>")
    if search is not None:
        parts.append(f"<search>\n===\n{search}\n===\n</search>")
    parts.append(f"<content>\n===\n{content}\n===\n</content>")
    parts.append("</change>")
    return "\n".join(parts)
