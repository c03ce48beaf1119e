"""File system collaborators: reader, writer and scanner."""
import logging
import mimetypes
import os
import posixpath
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

import pathspec

from .config import DEFAULT_HIDDEN, load_json_file, save_json_file
from .models import FileTreeNode, NodeKind, PatchToolError

logger = logging.getLogger(__name__)

class FileStoreError(PatchToolError, OSError):
    """A read, write or delete failed."""

class PathNotFoundError(FileStoreError):
    pass

class OutsideRootError(FileStoreError):
    pass

class FileReader(Protocol):
    def read_file(self, path: str) -> str: ...

class FileWriter(Protocol):
    def write_file(self, path: str, content: str) -> None: ...
    def delete_file(self, path: str) -> None: ...

class TreeScanner(Protocol):
    def scan(self, root: str) -> FileTreeNode: ...

BINARY_EXTENSIONS = {
    '.pyc', '.pyo', '.pyd', '.so', '.dll', '.exe', '.bin', '.obj', '.o',
    '.a', '.lib', '.iso', '.tar', '.zip', '.7z', '.gz', '.rar', '.pdf',
    '.sqlite', '.db', '.class', '.jar', '.war', '.ear', '.parquet', '.ds_store'
}

def is_image_file(path: Path | str) -> bool:
    path_str = str(path).lower()
    if path_str.endswith(".svg"):
        return False
    guess, _ = mimetypes.guess_type(str(path))
    return guess is not None and guess.startswith("image/")

def is_binary_file(path: Path | str) -> bool:
    p = Path(path)
    if p.suffix.lower() in BINARY_EXTENSIONS:
        return True
    try:
        with open(p, "rb") as f:
            if b"\0" in f.read(1024):
                return True
    except OSError:
        pass
    return False

def get_display_path(path: Path | str, cwd: Path | None = None) -> str:
    if cwd is None:
        cwd = Path.cwd()
    p = Path(path)
    try:
        return str(p.relative_to(cwd)).replace("\\", "/")
    except ValueError:
        return str(p).replace("\\", "/")

def is_path_within(file_path: Path, root: Path) -> bool:
    try:
        return file_path.resolve().is_relative_to(root.resolve())
    except (OSError, ValueError):
        return False

def normalize_path(path: str) -> str:
    """Lexical key for a path: forward slashes, no `.` or `..` segments."""
    return posixpath.normpath(path.replace("\\", "/"))

class LocalFileStore:
    """Reader and writer over the local disk, confined to a set of roots.

    Relative paths resolve against the first root. Any path that resolves
    outside every root is rejected with OutsideRootError.

    Reads are strict UTF-8 by default so that content written back (by an
    edit or an undo) is byte-identical to what was read. Pass
    `errors="replace"` for read-only uses such as building a prompt.
    """

    def __init__(self, roots: Sequence[Path | str] | None = None, errors: str = "strict"):
        self.roots = [Path(r).resolve() for r in (roots or [Path.cwd()])]
        self.errors = errors

    def resolve(self, path: str) -> Path:
        p = Path(path)
        if not p.is_absolute():
            p = self.roots[0] / p
        p = p.resolve()
        if not any(is_path_within(p, root) for root in self.roots):
            raise OutsideRootError(f"Path is outside the workspace: {path}")
        return p

    def path_key(self, path: str) -> str:
        """One key per file, however the path is spelled.

        Files under the first root are keyed relative to it, others by their
        absolute path. Paths outside every root fall back to normalize_path.
        """
        try:
            p = self.resolve(path)
        except FileStoreError:
            return normalize_path(path)
        try:
            return p.relative_to(self.roots[0]).as_posix()
        except ValueError:
            return p.as_posix()

    def exists(self, path: str) -> bool:
        try:
            return self.resolve(path).is_file()
        except FileStoreError:
            return False

    def read_file(self, path: str) -> str:
        p = self.resolve(path)
        if not p.exists():
            raise PathNotFoundError(f"File does not exist: {path}")
        if not p.is_file():
            raise FileStoreError(f"Path is not a file: {path}")
        try:
            # Line endings are kept as stored
            with open(p, "r", encoding="utf-8", errors=self.errors, newline="") as f:
                return f.read()
        except UnicodeDecodeError as e:
            raise FileStoreError(f"Not a UTF-8 text file: {path} ({e.reason} at byte {e.start})") from e
        except OSError as e:
            raise FileStoreError(f"Failed to read {path}: {e}") from e

    def write_file(self, path: str, content: str) -> None:
        p = self.resolve(path)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            with open(p, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise FileStoreError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote {len(content)} chars to {p}")

    def delete_file(self, path: str) -> None:
        p = self.resolve(path)
        if not p.exists():
            raise PathNotFoundError(f"File does not exist: {path}")
        try:
            p.unlink()
        except OSError as e:
            raise FileStoreError(f"Failed to delete {path}: {e}") from e
        logger.debug(f"Deleted {p}")

def _is_hidden(name: str, include_hidden: bool) -> bool:
    if include_hidden:
        return False
    return name.startswith('.') or name in DEFAULT_HIDDEN

def path_key_for(store: Any) -> Callable[[str], str]:
    """Key function used to tell whether two spellings name the same file."""
    if isinstance(store, LocalFileStore):
        return store.path_key
    return normalize_path

GITIGNORE_FILENAME = ".gitignore"

IgnoreRules = list[tuple[Path, pathspec.GitIgnoreSpec]]

def load_ignore_spec(directory: Path) -> pathspec.GitIgnoreSpec | None:
    """Rules of the .gitignore file in `directory`, if there is one."""
    ignore_file = directory / GITIGNORE_FILENAME
    if not ignore_file.is_file():
        return None
    try:
        with open(ignore_file, "r", encoding="utf-8", errors="replace") as f:
            return pathspec.GitIgnoreSpec.from_lines(f.read().splitlines())
    except OSError as e:
        logger.warning(f"Cannot read {ignore_file}: {e}")
        return None

def is_ignored(path: Path, is_dir: bool, rules: IgnoreRules) -> bool:
    """Check `path` against the .gitignore rules of its ancestors.

    Each rule set matches relative to the folder holding its .gitignore.
    """
    for base, spec in rules:
        rel = path.relative_to(base).as_posix()
        if spec.match_file(rel + "/" if is_dir else rel):
            return True
    return False

def _scan_node(path: Path, include_hidden: bool, rules: IgnoreRules | None = None) -> FileTreeNode:
    files: list[FileTreeNode] = []
    dirs: list[FileTreeNode] = []
    if rules is not None:
        spec = load_ignore_spec(path)
        if spec is not None:
            rules = rules + [(path, spec)]
    try:
        with os.scandir(str(path)) as it:
            for entry in it:
                if _is_hidden(entry.name, include_hidden):
                    continue
                is_dir = entry.is_dir(follow_symlinks=False)
                if rules and is_ignored(path / entry.name, is_dir, rules):
                    continue
                if is_dir:
                    dirs.append(_scan_node(path / entry.name, include_hidden, rules))
                elif entry.is_file():
                    try:
                        size = entry.stat().st_size
                    except OSError:
                        size = None
                    files.append(FileTreeNode(path=str(path / entry.name), name=entry.name, kind=NodeKind.FILE, size=size))
    except OSError as e:
        logger.warning(f"Cannot scan {path}: {e}")

    dirs.sort(key=lambda n: n.name.lower())
    files.sort(key=lambda n: n.name.lower())
    return FileTreeNode(path=str(path), name=path.name or str(path.resolve().name or path), kind=NodeKind.DIRECTORY, children=tuple(dirs + files))

def scan_tree(root: Path | str, include_hidden: bool = False, use_gitignore: bool = False) -> FileTreeNode:
    """Scan a directory into a FileTreeNode tree, directories first.

    With `use_gitignore`, entries matched by a .gitignore file in the root or
    any folder below it are left out. Ignore files above the root are not
    consulted.
    """
    p = Path(root)
    if not p.exists():
        raise PathNotFoundError(f"Directory does not exist: {root}")
    if not p.is_dir():
        raise FileStoreError(f"Path is not a directory: {root}")
    return _scan_node(p, include_hidden, [] if use_gitignore else None)

class DirectoryScanner:
    def __init__(self, include_hidden: bool = False, use_gitignore: bool = False):
        self.include_hidden = include_hidden
        self.use_gitignore = use_gitignore

    def scan(self, root: str) -> FileTreeNode:
        return scan_tree(root, self.include_hidden, self.use_gitignore)

def load_cwd_data(filepath: Path | str, cwd: Path | None = None) -> Any:
    data = load_json_file(filepath, {})
    if isinstance(data, dict):
        return data.get(str(cwd or Path.cwd()))
    return None

def save_cwd_data(filepath: Path | str, value: Any, cwd: Path | None = None, indent: int = 2) -> None:
    data = load_json_file(filepath, {})
    if not isinstance(data, dict):
        data = {}
    data[str(cwd or Path.cwd())] = value
    save_json_file(filepath, data, indent)
