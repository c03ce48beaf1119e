"""Facade for patchcore."""

from .config import (
    config, APP_DATA_DIR, SETTINGS_PATH, DEFAULT_HIDDEN,
    load_json_file, save_json_file
)

from .models import (
    PatchToolError, ChangeAction, ChangeOperation, FileChange, ChangeResult,
    DiffPreview, UndoSnapshot, UndoBatch, FileTreeNode, NodeKind, CheckState
)

from .fs import (
    FileStoreError, PathNotFoundError, OutsideRootError, LocalFileStore,
    DirectoryScanner, scan_tree, get_display_path, normalize_path, load_cwd_data, save_cwd_data
)

from .parsing import (
    ParseError, InvalidActionError, MalformedDocumentError,
    parse_change_document, serialize_change_document
)

from .preview import (
    SearchNotFoundError, NOT_FOUND_PLACEHOLDER, compute_new_content,
    preview_changes, preview_from_reader
)

from .applier import ChangeApplier, summarize_results

from .undo import UndoManager

from .selection import SelectionTree, selection_status, toggle_selection

from .prompt import build_prompt

from .session import EditSession, SessionBusyError, SessionClosedError
