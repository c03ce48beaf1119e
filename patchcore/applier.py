"""Applying parsed changes to storage."""
import logging
from typing import Sequence

from .fs import FileReader, FileWriter, PathNotFoundError, path_key_for
from .models import ChangeResult, FileChange, PatchToolError, UndoSnapshot
from .preview import compute_new_content
from .undo import UndoManager

logger = logging.getLogger(__name__)

def describe_batch(changes: Sequence[FileChange]) -> str:
    paths = list(dict.fromkeys(c.path for c in changes))
    shown = ", ".join(paths[:3])
    if len(paths) > 3:
        shown += f" (+{len(paths) - 3} more)"
    return f"{len(changes)} change(s) to {shown}"

class ChangeApplier:
    def __init__(self, reader: FileReader, writer: FileWriter, undo_manager: UndoManager | None = None, strict: bool = False):
        self.reader = reader
        self.writer = writer
        self.undo_manager = undo_manager
        self.strict = strict
        self.key = path_key_for(writer)

    def _read_current(self, path: str) -> str | None:
        try:
            return self.reader.read_file(path)
        except PathNotFoundError:
            return None

    def apply(self, changes: Sequence[FileChange], dry_run: bool = False) -> list[ChangeResult]:
        """Apply every change in order; one ChangeResult per input change.

        A failing entry never stops the batch. Snapshots of every attempted
        entry are pushed to the undo manager as a single batch afterwards.
        """
        results: list[ChangeResult] = []
        snapshots: dict[str, UndoSnapshot] = {}

        for change in changes:
            try:
                current = self._read_current(change.path)
            except OSError as e:
                logger.error(f"{change.path}: {e}")
                results.append(ChangeResult(change.path, change.action, False, f"Error reading file: {e}"))
                continue

            key = self.key(change.path)
            if key not in snapshots and not dry_run:
                # The first snapshot of a file in a batch is its pre-batch state
                snapshots[key] = UndoSnapshot(key, current)

            try:
                new_content = compute_new_content(change, current, strict=self.strict)
                if dry_run:
                    pass
                elif new_content is None:
                    self.writer.delete_file(change.path)
                else:
                    self.writer.write_file(change.path, new_content)
            except (OSError, PatchToolError) as e:
                logger.error(f"Failed to apply {change.action.label} to {change.path}: {e}")
                results.append(ChangeResult(change.path, change.action, False, str(e)))
                continue

            results.append(ChangeResult(change.path, change.action, True))
            logger.debug(f"{change.action.label} applied to {change.path}")

        if snapshots and self.undo_manager is not None:
            self.undo_manager.record_batch(list(snapshots.values()), describe_batch(changes))

        ok = sum(1 for r in results if r.success)
        logger.info(f"Applied {ok}/{len(results)} change(s){' (dry run)' if dry_run else ''}")
        return results

def summarize_results(results: Sequence[ChangeResult]) -> str:
    lines = []
    for r in results:
        status = "OK" if r.success else "FAILED"
        line = f"[{status}] {r.action.label} {r.path}"
        if r.message:
            line += f": {r.message}"
        lines.append(line)
    return "\n".join(lines)
