"""CLI implementation for promptpatch."""
import argparse
import glob as globlib
import sys
from datetime import datetime
from pathlib import Path
import logging

from patchcore import (
    APP_DATA_DIR, CheckState, NodeKind, ParseError, PatchToolError, config,
    build_prompt, summarize_results
)
from application_state import (
    load_app_state, save_app_state, open_edit_session, open_prompt_reader, setup_logging, to_relative
)

STATE_MARKS = {
    CheckState.CHECKED: "[x]",
    CheckState.INDETERMINATE: "[-]",
    CheckState.UNCHECKED: "[ ]",
}

def _read_reply(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")

def _match_tree_paths(app, pattern: str) -> list[str]:
    """Resolve a pattern to tree paths (files or folders)."""
    matched = globlib.glob(pattern, recursive=True) or [pattern]
    paths = []
    for m in matched:
        rel = str(to_relative(Path(m), app.cwd))
        if rel in app.tree:
            paths.append(rel)
    return paths

def _parse_on_off(value: str) -> bool:
    return value.lower() in ("on", "true", "1", "yes")

def _load_changes(session, source: str):
    try:
        return session.parse(_read_reply(source))
    except OSError as e:
        print(f"Error: Cannot read reply: {e}", file=sys.stderr)
        sys.exit(1)
    except ParseError as e:
        print(f"Error: Invalid change document: {e}", file=sys.stderr)
        sys.exit(1)

def run_cli():
    """Run in CLI mode with subcommands."""
    parser = argparse.ArgumentParser(
        description="promptpatch - bundle files into a prompt and apply the assistant's change document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  promptpatch add src/ README.md
  promptpatch prompt "Add error handling" -o request.txt
  promptpatch preview reply.xml
  promptpatch apply reply.xml
  promptpatch undo
"""
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings to the console")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_parser = subparsers.add_parser("add", help="Select files or folders")
    add_parser.add_argument("patterns", nargs="+", help="File or folder patterns to select")

    remove_parser = subparsers.add_parser("remove", help="Deselect files or folders")
    remove_parser.add_argument("patterns", nargs="+", help="File or folder patterns to deselect")

    subparsers.add_parser("clear", help="Clear the selection")

    state_parser = subparsers.add_parser("state", help="Show the selection tree")
    state_parser.add_argument("-a", "--all", action="store_true", help="Show unselected entries too")

    roots_parser = subparsers.add_parser("roots", help="List or change root folders")
    roots_parser.add_argument("--add", dest="add_root", help="Add a root folder")
    roots_parser.add_argument("--remove", dest="remove_root", help="Remove a root folder")

    prompt_parser = subparsers.add_parser("prompt", help="Build a request payload")
    prompt_parser.add_argument("prompt", help="Instructions for the assistant")
    prompt_parser.add_argument("files", nargs="*", help="Files to include instead of the selection")
    prompt_parser.add_argument("-o", "--output", help="Write the payload to a file instead of stdout")
    prompt_parser.add_argument("--no-instructions", action="store_true", help="Leave out the change document format")

    preview_parser = subparsers.add_parser("preview", help="Show the diff a reply would produce")
    preview_parser.add_argument("reply", help="Reply file, or - for stdin")
    preview_parser.add_argument("--strict", action="store_true", help="Show files that a strict apply would refuse")

    apply_parser = subparsers.add_parser("apply", help="Apply a reply to disk")
    apply_parser.add_argument("reply", help="Reply file, or - for stdin")
    apply_parser.add_argument("--strict", action="store_true", help="Fail a file when a search fragment is missing")
    apply_parser.add_argument("--dry-run", action="store_true", help="Report outcomes without writing")

    subparsers.add_parser("undo", help="Undo the last applied batch")

    undo_file_parser = subparsers.add_parser("undo-file", help="Undo the last change to one file")
    undo_file_parser.add_argument("path", help="File to restore")

    subparsers.add_parser("history", help="List undo history")

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument("--path", action="store_true", help="Print the app data folder path")
    config_parser.add_argument("--max-undo", type=int, help="Number of batches kept in the undo history")
    config_parser.add_argument("--strict", choices=["on", "off"], help="Default for strict search matching")
    config_parser.add_argument("--hidden", choices=["on", "off"], help="Include hidden files when scanning")
    config_parser.add_argument("--gitignore", choices=["on", "off"], help="Leave out files matched by .gitignore when scanning")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging(console=True, level=logging.WARNING if args.quiet else logging.INFO)

    if args.command in ("add", "remove"):
        app = load_app_state()
        checked = args.command == "add"
        for pattern in args.patterns:
            paths = _match_tree_paths(app, pattern)
            if not paths:
                print(f"Warning: No files found for: {pattern}", file=sys.stderr)
                continue
            for path in paths:
                before = len(app.selection)
                app.selection = app.tree.toggle(path, app.selection, checked)
                changed = abs(len(app.selection) - before)
                print(f"{'Added' if checked else 'Removed'}: {path} ({changed} file(s))")
        save_app_state(app)
        print(f"\nTotal: {len(app.selection)} files selected")

    elif args.command == "clear":
        app = load_app_state(scan=False)
        app.selection = frozenset()
        save_app_state(app)
        print("Cleared the selection")

    elif args.command == "state":
        app = load_app_state()
        save_app_state(app)
        for node, check in app.tree.walk(app.selection):
            if not args.all and check is CheckState.UNCHECKED:
                continue
            suffix = "/" if node.kind is NodeKind.DIRECTORY else ""
            print(f"{'  ' * node.depth}{STATE_MARKS[check]} {node.name}{suffix}")
        print(f"\n{len(app.selection)} of {len(app.tree.file_paths())} files selected")

    elif args.command == "roots":
        app = load_app_state()
        if args.add_root:
            p = Path(args.add_root)
            if not p.is_dir():
                print(f"Error: Not a directory: {args.add_root}", file=sys.stderr)
                sys.exit(1)
            root = str(to_relative(p, app.cwd))
            if root not in app.roots:
                app.roots.append(root)
                app.scan()
                print(f"Added root: {root}")
        if args.remove_root:
            root = str(to_relative(Path(args.remove_root), app.cwd))
            if root not in app.roots:
                print(f"Error: Not a root folder: {args.remove_root}", file=sys.stderr)
                sys.exit(1)
            app.roots.remove(root)
            try:
                app.tree = app.tree.without_root(root)
                app.selection = app.tree.prune(app.selection)
            except (KeyError, ValueError):
                # Nested or missing root folders need a full rescan
                app.scan()
            print(f"Removed root: {root}")
        save_app_state(app)
        for root in app.roots:
            print(root)

    elif args.command == "prompt":
        app = load_app_state()
        if args.files:
            files = set()
            for pattern in args.files:
                for path in _match_tree_paths(app, pattern):
                    files |= app.tree.descendant_files(path)
            files = sorted(files)
        else:
            files = app.selected_files()
            if files:
                print(f"Using {len(files)} files from the selection", file=sys.stderr)

        if not files:
            print("Error: No files specified and nothing selected", file=sys.stderr)
            sys.exit(1)

        payload = build_prompt(
            files, args.prompt, open_prompt_reader(app), cwd=app.cwd,
            include_instructions=config.include_instructions and not args.no_instructions,
        )
        if args.output:
            Path(args.output).write_text(payload, encoding="utf-8")
            print(f"Wrote {len(payload)} chars to {args.output}", file=sys.stderr)
        else:
            print(payload, end="")

    elif args.command == "preview":
        app = load_app_state(scan=False)
        session = open_edit_session(app, strict=True if args.strict else None)
        changes = _load_changes(session, args.reply)
        previews = session.preview(changes)
        session.close()
        if not previews:
            print("No file changes found in reply")
        for preview in previews:
            print(f"=== {preview.action.label}: {preview.path}")
            if preview.error:
                print(f"(would fail: {preview.error})")
            elif preview.has_changes:
                print(preview.unified_diff(), end="")
            else:
                print("(no changes)")
            for description in preview.unmatched:
                print(f"Warning: search text not found, skipped: {description}", file=sys.stderr)

    elif args.command == "apply":
        app = load_app_state(scan=False)
        session = open_edit_session(app, strict=True if args.strict else None)
        try:
            changes = _load_changes(session, args.reply)
            if not changes:
                print("No file changes found in reply")
                return
            results = session.apply(changes, dry_run=args.dry_run)
        finally:
            session.close()
        print(summarize_results(results))
        failed = [r for r in results if not r.success]
        print(f"\n{len(results) - len(failed)} succeeded, {len(failed)} failed{' (dry run)' if args.dry_run else ''}")
        if failed:
            sys.exit(1)

    elif args.command == "undo":
        app = load_app_state(scan=False)
        session = open_edit_session(app)
        try:
            summary = session.undo_last_batch()
        finally:
            session.close()
        print(summary or "Nothing to undo")

    elif args.command == "undo-file":
        app = load_app_state(scan=False)
        session = open_edit_session(app)
        path = str(to_relative(Path(args.path), app.cwd))
        try:
            restored = session.undo_path(path)
        except PatchToolError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        finally:
            session.close()
        print(f"Restored {path}" if restored else f"Nothing to undo for {path}")

    elif args.command == "history":
        app = load_app_state(scan=False)
        session = open_edit_session(app)
        batches = list(session.undo_manager.batches)
        session.close()
        if not batches:
            print("No undo history")
        for i, batch in enumerate(reversed(batches)):
            stamp = datetime.fromtimestamp(batch.timestamp).strftime("%Y-%m-%d %H:%M:%S")
            print(f"  {i}: {stamp} {batch.description}")
            for snapshot in batch.snapshots:
                kind = "restore" if snapshot.existed else "remove"
                print(f"       {kind} {snapshot.path}")

    elif args.command == "config":
        if args.max_undo is not None:
            try:
                config.set_max_undo_batches(args.max_undo)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                sys.exit(1)
            print(f"Undo history keeps {args.max_undo} batches.")
        if args.strict:
            config.set_strict_search(_parse_on_off(args.strict))
            print(f"Strict search: {args.strict}")
        if args.hidden:
            config.set_include_hidden(_parse_on_off(args.hidden))
            print(f"Include hidden files: {args.hidden}")
        if args.gitignore:
            config.set_use_gitignore(_parse_on_off(args.gitignore))
            print(f"Use .gitignore: {args.gitignore}")
        if args.path:
            print(str(APP_DATA_DIR))
