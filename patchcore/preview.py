"""Before/after computation shared by the diff preview and the applier."""
import logging
from typing import Callable, Mapping, Sequence

from .fs import FileReader, FileStoreError, PathNotFoundError, normalize_path, path_key_for
from .models import ChangeAction, ChangeOperation, DiffPreview, FileChange, PatchToolError

logger = logging.getLogger(__name__)

NOT_FOUND_PLACEHOLDER = "<file not found>"
EMPTY_PLACEHOLDER = ""
UNREADABLE_PLACEHOLDER = "<file could not be read>"

class SearchNotFoundError(PatchToolError):
    def __init__(self, path: str, search: str):
        self.path = path
        self.search = search
        head = search.strip().splitlines()[0] if search.strip() else search
        super().__init__(f"{path}: Search text not found: {head[:60]!r}")

def _describe(op: ChangeOperation) -> str:
    if op.description:
        return op.description
    lines = op.search.strip().splitlines() if op.search else []
    return lines[0][:60] if lines else "(empty search)"

def apply_operations(content: str, operations: Sequence[ChangeOperation]) -> tuple[str, list[ChangeOperation]]:
    """Replace the first occurrence of each search fragment in order.

    Returns the new content and the operations whose search text was not
    present at the time they were applied (those are skipped).
    """
    unmatched = []
    for op in operations:
        if not op.search:
            unmatched.append(op)
            continue
        index = content.find(op.search)
        if index < 0:
            unmatched.append(op)
            continue
        content = content[:index] + op.content + content[index + len(op.search):]
    return content, unmatched

def compute_new_content(change: FileChange, current: str | None, strict: bool = False) -> str | None:
    """Content a change leaves behind; None means the path is removed.

    `current` is None when the file does not exist. In strict mode a Modify
    operation whose search text is missing raises SearchNotFoundError instead
    of being skipped.
    """
    if change.action is ChangeAction.DELETE:
        return None
    if change.action in (ChangeAction.CREATE, ChangeAction.REWRITE):
        return change.content

    if current is None:
        raise PathNotFoundError(f"File does not exist: {change.path}")
    modified, unmatched = apply_operations(current, change.operations)
    if strict and unmatched:
        raise SearchNotFoundError(change.path, unmatched[0].search or "")
    return modified

def preview_change(change: FileChange, current: str | None, strict: bool = False) -> DiffPreview:
    if change.action is ChangeAction.CREATE:
        return DiffPreview(change.path, change.action, EMPTY_PLACEHOLDER, change.content, True)

    original = current if current is not None else NOT_FOUND_PLACEHOLDER

    if change.action is ChangeAction.DELETE:
        return DiffPreview(change.path, change.action, original, EMPTY_PLACEHOLDER, True)

    if change.action is ChangeAction.REWRITE:
        modified = change.content
        return DiffPreview(change.path, change.action, original, modified, original != modified)

    if current is None:
        # Nothing to search in; every operation is unmatched
        unmatched = tuple(_describe(op) for op in change.operations)
        return DiffPreview(change.path, change.action, original, original, False, unmatched,
                           error=f"File does not exist: {change.path}")

    modified, skipped = apply_operations(current, change.operations)
    unmatched = tuple(_describe(op) for op in skipped)
    if strict and skipped:
        error = str(SearchNotFoundError(change.path, skipped[0].search or ""))
        return DiffPreview(change.path, change.action, original, original, False, unmatched, error=error)
    return DiffPreview(change.path, change.action, original, modified, original != modified, unmatched)

def preview_changes(changes: Sequence[FileChange], current_contents: Mapping[str, str], strict: bool = False,
                    key: Callable[[str], str] = normalize_path,
                    read_errors: Mapping[str, str] | None = None) -> list[DiffPreview]:
    """Compute a DiffPreview per change; `current_contents` may be partial.

    Repeated paths see the result of the earlier entries, matching the order
    in which the applier writes them. Paths are compared through `key`, so
    two spellings of one file share their simulated content. In strict mode a
    Modify with a missing search leaves the file untouched and carries an
    error, as the applier refuses it. `read_errors` maps keys of files that
    could not be read to the reason; every change to them is an error. The
    mappings themselves are never mutated.
    """
    simulated = {key(path): content for path, content in current_contents.items()}
    unreadable = {key(path): reason for path, reason in (read_errors or {}).items()}
    previews = []
    for change in changes:
        k = key(change.path)
        if k in unreadable:
            previews.append(DiffPreview(change.path, change.action, UNREADABLE_PLACEHOLDER,
                                        UNREADABLE_PLACEHOLDER, False, error=unreadable[k]))
            continue
        preview = preview_change(change, simulated.get(k), strict=strict)
        previews.append(preview)
        if change.action is ChangeAction.DELETE:
            simulated.pop(k, None)
        elif change.action is not ChangeAction.MODIFY or k in simulated:
            simulated[k] = preview.modified
    return previews

def read_current_contents(changes: Sequence[FileChange], reader: FileReader,
                          key: Callable[[str], str] = normalize_path) -> tuple[dict[str, str], dict[str, str]]:
    """Read every distinct file once.

    Returns the contents and the read errors, both keyed by `key`. Missing
    files are in neither.
    """
    contents: dict[str, str] = {}
    errors: dict[str, str] = {}
    seen: set[str] = set()
    for change in changes:
        k = key(change.path)
        if k in seen:
            continue
        seen.add(k)
        try:
            contents[k] = reader.read_file(change.path)
        except PathNotFoundError:
            logger.debug(f"{change.path}: not found while building preview")
        except FileStoreError as e:
            logger.warning(f"{change.path}: {e}")
            errors[k] = f"Error reading file: {e}"
    return contents, errors

def preview_from_reader(changes: Sequence[FileChange], reader: FileReader, strict: bool = False) -> list[DiffPreview]:
    key = path_key_for(reader)
    contents, errors = read_current_contents(changes, reader, key)
    return preview_changes(changes, contents, strict=strict, key=key, read_errors=errors)
