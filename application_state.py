"""Application state and persistence for the command line."""
import hashlib
import logging
from dataclasses import dataclass, field, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path

from patchcore import (
    APP_DATA_DIR, config, EditSession, LocalFileStore, SelectionTree,
    load_cwd_data, save_cwd_data, scan_tree
)

# Persistence files
SELECTION_PATH = str(APP_DATA_DIR / "selection.json")
HISTORY_DIR = APP_DATA_DIR / "history"
LOG_DIR = APP_DATA_DIR / "logs"

logger = logging.getLogger(__name__)

def to_relative(path: Path, cwd: Path | None = None) -> Path:
    """Convert path to relative to CWD if possible."""
    cwd = cwd or Path.cwd()
    try:
        return path.resolve().relative_to(cwd.resolve())
    except ValueError:
        return path

@dataclass
class AppState:
    """Selection state for one working directory."""
    cwd: Path = field(default_factory=Path.cwd)
    roots: list[str] = field(default_factory=lambda: ["."])
    selection: frozenset = field(default_factory=frozenset)
    tree: SelectionTree | None = None

    def scan(self) -> SelectionTree:
        """Rescan every root and drop selected paths that no longer exist."""
        trees = []
        for root in self.roots:
            p = Path(root) if Path(root).is_absolute() else self.cwd / root
            if not p.is_dir():
                logger.warning(f"Skipping missing root folder: {root}")
                continue
            tree = scan_tree(p, include_hidden=config.include_hidden, use_gitignore=config.use_gitignore)
            trees.append(_relativize(tree, self.cwd))
        self.tree = SelectionTree(trees)
        self.selection = self.tree.prune(self.selection)
        return self.tree

    def selected_files(self) -> list[str]:
        return sorted(self.selection, key=lambda p: p.lower())

    def to_dict(self) -> dict:
        return {"roots": self.roots, "selection": sorted(self.selection)}

    def from_dict(self, data: dict) -> None:
        self.roots = data.get("roots") or ["."]
        self.selection = frozenset(data.get("selection", []))

def _relativize(node, cwd: Path):
    """Rewrite scanned node paths relative to cwd where possible."""
    rel = str(to_relative(Path(node.path), cwd))
    return replace(node, path=rel, children=tuple(_relativize(c, cwd) for c in node.children))

def load_app_state(cwd: Path | None = None, scan: bool = True) -> AppState:
    app = AppState(cwd=cwd or Path.cwd())
    data = load_cwd_data(SELECTION_PATH, app.cwd)
    if isinstance(data, dict):
        app.from_dict(data)
    if scan:
        app.scan()
    return app

def save_app_state(app: AppState) -> None:
    save_cwd_data(SELECTION_PATH, app.to_dict(), app.cwd)

def undo_history_path(cwd: Path | None = None) -> Path:
    project_hash = hashlib.md5(str(cwd or Path.cwd()).encode()).hexdigest()[:8]
    return HISTORY_DIR / f"{project_hash}_undo_history.json"

def _store_roots(app: AppState) -> list[Path]:
    return [app.cwd] + [Path(r) if Path(r).is_absolute() else app.cwd / r for r in app.roots]

def open_prompt_reader(app: AppState) -> LocalFileStore:
    """Reader for building prompts; undecodable bytes become U+FFFD."""
    return LocalFileStore(_store_roots(app), errors="replace")

def open_edit_session(app: AppState, strict: bool | None = None) -> EditSession:
    store = LocalFileStore(_store_roots(app))
    session = EditSession(
        reader=store,
        writer=store,
        history_path=undo_history_path(app.cwd),
        max_undo_batches=config.max_undo_batches,
        strict=config.strict_search if strict is None else strict,
    )
    return session.open()

def setup_logging(console: bool = True, level: int = logging.INFO) -> None:
    """Configure application logging to a rotating file and stderr."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "promptpatch.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplicates
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)

    file_handler = RotatingFileHandler(log_file, maxBytes=1024*1024*5, backupCount=3, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        root_logger.addHandler(console_handler)
